import os

# Must run before inkwell is imported: settings and the engine read these once.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["ENVIRONMENT"] = "test"
for var in (
    "OPENAI_API_KEY",
    "GCS_BUCKET_NAME",
    "BIGQUERY_AUDIT_TABLE",
    "GOOGLE_CLIENT_ID",
    "GHOST_API_URL",
    "GHOST_ADMIN_API_KEY",
    "WORDPRESS_API_URL",
    "WORDPRESS_USERNAME",
    "WORDPRESS_APP_PASSWORD",
    "BLOGGER_BLOG_ID",
    "BLOGGER_ACCESS_TOKEN",
    "MEDIUM_INTEGRATION_TOKEN",
):
    # empty rather than unset so a local .env cannot fill them in
    os.environ[var] = ""

import pytest
from fastapi.testclient import TestClient

from inkwell import tables  # noqa: F401
from inkwell.cache import ALL_CACHES
from inkwell.database import Base, SessionLocal, engine
from inkwell.main import app

PASSWORD = "correct-horse"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    for cache in ALL_CACHES.values():
        cache.clear()
    app.state.metrics.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_client():
    """Factory for logged-in clients; each keeps its own session cookie."""

    def _make(email: str = "reader@example.com", name: str = None):
        client = TestClient(app)
        res = client.post("/api/auth/register", json={"email": email, "password": PASSWORD, "name": name})
        assert res.status_code == 201, res.text
        client.user = res.json()["user"]
        return client

    return _make


@pytest.fixture
def anon():
    return TestClient(app)


@pytest.fixture
def author(make_client):
    return make_client("author@example.com", "Ada Author")


@pytest.fixture
def reader(make_client):
    return make_client("reader@example.com", "Rex Reader")


@pytest.fixture
def admin(make_client):
    return make_client("admin@example.com", "Ann Admin")


def publish(client, title="Hello World", content="word " * 450, tags=("python",), **extra):
    body = {"title": title, "content": content, "tags": list(tags), "published": True, **extra}
    res = client.post("/api/posts", json=body)
    assert res.status_code == 201, res.text
    return res.json()
