import asyncio
from types import SimpleNamespace

import pytest
from conftest import publish

from inkwell import ai
from inkwell.dependencies import get_llm_client
from inkwell.errors import IntegrationError
from inkwell.main import app


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeImages:
    async def generate(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(data=[SimpleNamespace(url="https://img.example/cover.png")])


class FakeClient:
    def __init__(self, *replies):
        self.chat = SimpleNamespace(completions=FakeCompletions(replies))
        self.images = FakeImages()


def use_client(client):
    app.dependency_overrides[get_llm_client] = lambda: client


# ---------------------------
# Offline (no API key)
# ---------------------------
def test_routes_need_a_session(anon):
    assert anon.post("/api/ai/summary", json={"content": "x"}).status_code == 401


def test_mock_generation(reader):
    res = reader.post("/api/ai/generate", json={"prompt": "FastAPI", "type": "title"}).json()
    assert res == {
        "success": True,
        "mock": True,
        "type": "title",
        "content": "The Ultimate Guide to FastAPI: Best Practices and Implementation",
    }
    tags = reader.post("/api/ai/generate", json={"prompt": "FastAPI", "type": "tags"}).json()["content"]
    assert "fastapi" in tags


def test_unknown_generate_type_is_rejected(reader):
    assert reader.post("/api/ai/generate", json={"prompt": "x", "type": "poem"}).status_code == 422


def test_mock_moderation_flags_spam(reader):
    clean = reader.post("/api/ai/moderate", json={"content": "A thoughtful comment about testing."}).json()
    assert clean["mock"] is True
    assert clean["result"]["is_approved"] is True
    spam = reader.post("/api/ai/moderate", json={"content": "Claim your free money at the casino"}).json()
    assert spam["result"]["action"] == "flag"
    assert "potential_spam" in spam["result"]["flags"]


def test_mock_summary_seo_and_image(reader):
    summary = reader.post("/api/ai/summary", json={"content": "short text", "title": "Caching In Practice"}).json()
    assert summary["summary"].startswith("TL;DR:")
    seo = reader.post("/api/ai/seo", json={"content": "a b c", "title": "T", "tags": ["x", "y"]}).json()
    assert seo["analysis"]["content_analysis"]["word_count"] == 3
    assert seo["analysis"]["keyword_analysis"]["primary_keywords"] == ["x", "y"]
    image = reader.post("/api/ai/image", json={"prompt": "sunset over code", "type": "thumbnail"}).json()
    assert image["image_url"].startswith("https://via.placeholder.com/400x400/")


def test_mock_recommendations_use_tag_overlap(author, reader, make_client):
    liked = publish(author, title="Liked", tags=["python"])
    stranger = make_client("stranger@example.com")
    candidate = publish(stranger, title="Also Python", tags=["python", "asyncio"])
    publish(stranger, title="Cooking", tags=["food"])
    reader.post("/api/reactions", json={"post_id": liked["id"], "type": "HEART"})
    reader.post("/api/reactions", json={"post_id": candidate["id"], "type": "CLAP"})

    res = reader.get("/api/ai/recommend?limit=5").json()
    assert res["mock"] is True
    titles = [r["title"] for r in res["recommendations"]]
    # already-reacted posts are excluded
    assert "Liked" not in titles and "Also Python" not in titles
    assert titles == ["Cooking"]
    assert res["recommendations"][0]["reason"] == "Popular post with 0 reactions"


def test_basic_recommendation_scoring():
    recs = ai.basic_recommendations(
        [{"id": "p1", "title": "Async IO", "tags": ["python", "asyncio", "io", "extra"], "reactions": 100}],
        ["python", "asyncio"],
    )
    assert recs == [{
        "title": "Async IO",
        "reason": "Based on your interest in: python, asyncio",
        "relevance_score": 0.8,
        "tags": ["python", "asyncio", "io"],
        "type": "post",
        "post_id": "p1",
    }]


# ---------------------------
# With a client
# ---------------------------
def test_generate_uses_past_posts_as_context(author):
    publish(author, title="My Earlier Post", tags=["rust"])
    client = FakeClient('["rust", "wasm"]')
    use_client(client)
    res = author.post("/api/ai/generate", json={"prompt": "WebAssembly", "type": "tags"}).json()
    assert res == {"success": True, "content": ["rust", "wasm"], "type": "tags"}
    call = client.chat.completions.calls[0]
    assert call["max_tokens"] == 500
    assert "My Earlier Post" in call["messages"][1]["content"]


def test_generate_tags_falls_back_to_comma_split(reader):
    use_client(FakeClient("Python, FastAPI , Testing"))
    res = reader.post("/api/ai/generate", json={"prompt": "x", "type": "keywords"}).json()
    assert res["content"] == ["python", "fastapi", "testing"]


def test_summary_truncates_input(reader):
    client = FakeClient("TL;DR: short.")
    use_client(client)
    res = reader.post("/api/ai/summary", json={"content": "z" * 5000}).json()
    assert res == {"success": True, "summary": "TL;DR: short."}
    prompt = client.chat.completions.calls[0]["messages"][1]["content"]
    assert "z" * 2000 in prompt and "z" * 2001 not in prompt


def test_unparsable_moderation_is_safe_default(reader):
    use_client(FakeClient("looks fine to me"))
    res = reader.post("/api/ai/moderate", json={"content": "hello there"}).json()
    assert res["result"] == ai.SAFE_MODERATION


def test_moderation_accepts_fenced_json(reader):
    use_client(FakeClient('```json\n{"isApproved": false, "action": "reject", "flags": ["hate_speech"]}\n```'))
    result = reader.post("/api/ai/moderate", json={"content": "..."}).json()["result"]
    assert result["is_approved"] is False
    assert result["action"] == "reject"


def test_llm_failure_is_a_bad_gateway(reader):
    use_client(FakeClient(RuntimeError("rate limited")))
    res = reader.post("/api/ai/summary", json={"content": "text"})
    assert res.status_code == 502
    assert res.json()["error"] == "openai: rate limited"


def test_recommendations_fall_back_when_reply_is_not_json(reader):
    use_client(FakeClient("I recommend reading more."))
    res = reader.get("/api/ai/recommend").json()
    assert res == {"success": True, "recommendations": []}


def test_image_with_client():
    client = FakeClient()
    url = asyncio.run(ai.generate_image(client, "a lighthouse", "thumbnail", "watercolor"))
    assert url == "https://img.example/cover.png"
    assert client.images.kwargs["size"] == "1792x1024"
    assert "watercolor" in client.images.kwargs["prompt"]


def test_empty_completion_raises():
    with pytest.raises(IntegrationError):
        asyncio.run(ai.summarize(FakeClient(""), "text"))
