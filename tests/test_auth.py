from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import PASSWORD

from inkwell import services
from inkwell.config import settings
from inkwell.dependencies import get_http_client
from inkwell.main import app
from inkwell.tables import AuditLog, User


def test_register_logs_the_user_in(reader):
    assert reader.user["email"] == "reader@example.com"
    assert reader.user["role"] == "READER"
    status = reader.get("/api/auth/status").json()
    assert status["authenticated"] is True
    assert status["user"]["id"] == reader.user["id"]


def test_password_is_hashed(reader, db):
    user = db.get(User, reader.user["id"])
    assert user.password_hash != PASSWORD
    assert services.verify_password(PASSWORD, user.password_hash)


def test_duplicate_email_is_rejected(reader, anon):
    res = anon.post("/api/auth/register", json={"email": "READER@example.com", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json() == {"error": "Email already registered"}


def test_short_password_is_a_validation_error(anon):
    res = anon.post("/api/auth/register", json={"email": "x@example.com", "password": "short"})
    assert res.status_code == 422


def test_login_and_logout(reader, anon):
    assert anon.get("/api/auth/status").json()["authenticated"] is False
    res = anon.post("/api/auth/login", json={"email": "reader@example.com", "password": PASSWORD})
    assert res.status_code == 200
    assert anon.get("/api/auth/status").json()["authenticated"] is True
    anon.post("/api/auth/logout")
    assert anon.get("/api/auth/status").json()["authenticated"] is False


def test_wrong_password(reader, anon):
    res = anon.post("/api/auth/login", json={"email": "reader@example.com", "password": "wrong-password"})
    assert res.status_code == 401
    assert res.json()["error"] == "Invalid email or password"


def test_admin_emails_get_admin_role(admin):
    assert admin.user["role"] == "ADMIN"


def test_protected_routes_need_a_session(anon):
    assert anon.get("/api/notifications").status_code == 401
    assert anon.get("/api/profile").json() == {"error": "Unauthorized"}


def test_banned_user_is_refused(reader, anon, db):
    db.query(User).filter(User.id == reader.user["id"]).update({User.banned: True})
    db.commit()
    assert reader.get("/api/notifications").status_code == 403
    res = anon.post("/api/auth/login", json={"email": "reader@example.com", "password": PASSWORD})
    assert res.status_code == 403


def test_login_is_audited(reader, db):
    actions = [row.action for row in db.query(AuditLog).filter(AuditLog.user_email == "reader@example.com")]
    assert "USER_REGISTERED" in actions


def test_google_login_requires_configuration(anon):
    res = anon.get("/api/auth/google/login", follow_redirects=False)
    assert res.status_code == 500
    assert "OAuth" in res.json()["error"]


def test_unknown_route_renders_error_body(anon):
    res = anon.get("/api/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"error": "Not Found"}


@pytest.fixture
def google(monkeypatch):
    monkeypatch.setattr(settings, "google_client_id", "client-id")
    monkeypatch.setattr(settings, "google_client_secret", "client-secret")
    monkeypatch.setattr(settings, "google_redirect_uri", "http://testserver/api/auth/google/callback")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "google-token"})
        return httpx.Response(200, json={"email": "gail@example.com", "name": "Gail Google", "email_verified": True})

    async def override():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            yield client

    app.dependency_overrides[get_http_client] = override


def google_round_trip(client, **params):
    start = client.get("/api/auth/google/login", params=params, follow_redirects=False)
    assert start.status_code == 302
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
    return client.get(
        "/api/auth/google/callback", params={"code": "auth-code", "state": state}, follow_redirects=False
    )


def test_google_login_signs_the_user_in(google, anon):
    done = google_round_trip(anon, next="/posts/mine?tab=drafts")
    assert done.status_code == 303
    assert done.headers["location"] == "/posts/mine?tab=drafts"
    assert anon.get("/api/auth/status").json()["user"]["email"] == "gail@example.com"


@pytest.mark.parametrize("target", ["https://evil.example/", "//evil.example/path", "/\\evil.example", "javascript:alert(1)"])
def test_google_login_never_redirects_off_site(google, anon, target):
    done = google_round_trip(anon, next=target)
    assert done.headers["location"] == settings.login_success_redirect


def test_google_callback_rejects_a_forged_state(google, anon):
    anon.get("/api/auth/google/login", follow_redirects=False)
    res = anon.get("/api/auth/google/callback", params={"code": "c", "state": "forged"})
    assert res.status_code == 400
