# inkwell/ai.py
"""Writing aids backed by the OpenAI chat and image APIs.

Every helper takes the client as its first argument. ``None`` means no key is
configured: the helper then returns a deterministic offline result and the
routes flag the response with ``mock: true``.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from openai import AsyncOpenAI

from .config import settings
from .errors import IntegrationError

logger = logging.getLogger(__name__)

SUMMARY_INPUT_CHARS = 2000
SEO_INPUT_CHARS = 3000

_client: Optional[AsyncOpenAI] = None


def get_client() -> Optional[AsyncOpenAI]:
    """Lazily build the shared client; ``None`` without an API key."""
    global _client
    if not settings.openai_api_key:
        return None
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.http_timeout * 4)
    return _client


async def _chat(client: AsyncOpenAI, system: str, user: str, max_tokens: int, temperature: float) -> str:
    try:
        completion = await client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
    except Exception as e:
        logger.exception("OpenAI chat completion failed")
        raise IntegrationError("openai", str(e)) from e
    content = (completion.choices[0].message.content or "").strip() if completion.choices else ""
    if not content:
        raise IntegrationError("openai", "empty completion")
    return content


def _parse_json(text: str) -> Any:
    """Parse a JSON reply, tolerating a ```json fenced block."""
    body = text.strip()
    if body.startswith("```"):
        body = body.strip("`")
        if body.lower().startswith("json"):
            body = body[4:]
    return json.loads(body)


# =============================================================================
# generate
# =============================================================================
_GENERATE_PROMPTS = {
    "title": (
        "Generate an engaging, SEO-friendly blog post title that matches the user's writing style "
        "and follows their topic patterns. Make it compelling.",
        "Create a title for a blog post about: {prompt}",
    ),
    "excerpt": (
        "Generate a concise, engaging excerpt for a blog post that matches the user's writing voice. "
        "Keep it under 160 characters.",
        "Create an excerpt for a blog post about: {prompt}",
    ),
    "content": (
        "Generate a comprehensive blog post in Markdown that matches the user's writing style and tone. "
        "Include an introduction, sections with headers, practical examples, and a conclusion with key takeaways.",
        "Write a detailed blog post about: {prompt}",
    ),
    "tags": (
        "Generate relevant tags for a blog post based on the user's past tagging patterns. "
        "Return a JSON array of strings.",
        "Generate SEO-friendly tags for a blog post about: {prompt}",
    ),
    "seo-description": (
        "Generate an SEO meta description that matches the user's content style. Keep it under 160 characters.",
        "Create a meta description for: {prompt}",
    ),
    "keywords": (
        "Generate SEO keywords based on the user's content patterns. "
        "Return a JSON array of keywords and phrases.",
        "Generate SEO keywords for: {prompt}",
    ),
}


def style_context(past_posts: Sequence[Dict[str, Any]]) -> str:
    """Summarize an author's recent posts (dicts with title, content, tags)."""
    if not past_posts:
        return ""
    topics = ", ".join(p["title"] for p in past_posts)
    tags: List[str] = []
    for p in past_posts:
        for t in p.get("tags", []):
            if t not in tags:
                tags.append(t)
    sample = " ".join(p["content"][:200] for p in past_posts[:3])
    return (
        "\n\nUser's writing context:"
        f"\n- Past topics: {topics}"
        f"\n- Common tags: {', '.join(tags)}"
        f"\n- Writing style sample: {sample}"
    )


def _as_list(text: str) -> List[str]:
    try:
        parsed = _parse_json(text)
    except ValueError:
        return [part.strip().lower() for part in text.split(",") if part.strip()]
    if isinstance(parsed, list):
        return [str(item) for item in parsed]
    return [str(parsed)]


async def generate(
    client: Optional[AsyncOpenAI],
    prompt: str,
    type_: str,
    context: Optional[str] = None,
    past_posts: Sequence[Dict[str, Any]] = (),
):
    if client is None:
        return mock_generate(prompt, type_)
    system, template = _GENERATE_PROMPTS[type_]
    user = template.format(prompt=prompt)
    if context:
        user += f"\n\nAdditional context: {context}"
    user += style_context(past_posts)
    text = await _chat(client, system, user, max_tokens=2000 if type_ == "content" else 500, temperature=0.7)
    if type_ in ("tags", "keywords"):
        return _as_list(text)
    return text


def mock_generate(prompt: str, type_: str):
    if type_ == "title":
        return f"The Ultimate Guide to {prompt}: Best Practices and Implementation"
    if type_ == "excerpt":
        return (
            f"Discover everything you need to know about {prompt}. This guide covers the fundamentals "
            "and real-world applications."
        )
    if type_ == "content":
        return (
            f"# {prompt}\n\n## Introduction\n\nWelcome to this guide on {prompt}.\n\n"
            "## Key Concepts\n\nStart with the fundamentals, follow conventions and test thoroughly.\n\n"
            f"## Conclusion\n\n{prompt} can significantly improve your workflow."
        )
    if type_ == "tags":
        return ["web-development", "tutorial", "best-practices", prompt.lower()]
    if type_ == "seo-description":
        return f"Learn everything about {prompt} with this guide covering best practices and real-world examples."
    if type_ == "keywords":
        return [prompt, "tutorial", "guide", "best practices", "implementation"]
    return f"Generated content for {prompt} of type {type_}"


# =============================================================================
# summary
# =============================================================================
async def summarize(client: Optional[AsyncOpenAI], content: str, title: Optional[str] = None) -> str:
    if client is None:
        return mock_summary(content, title)
    system = (
        "Generate a concise TL;DR summary for a blog post. Use 2-3 sentences at most, capture the key "
        "takeaways, use the title as context if provided, and start with \"TL;DR:\"."
    )
    header = f"Title: {title}\n\n" if title else ""
    user = f"Generate a TL;DR summary for this blog post:\n\n{header}Content:\n{content[:SUMMARY_INPUT_CHARS]}"
    return await _chat(client, system, user, max_tokens=150, temperature=0.3)


def mock_summary(content: str, title: Optional[str] = None) -> str:
    kind = "guide" if len(content.split()) > 500 else "article"
    topic = " ".join((title or "").split()[:3]).lower() or "key concepts"
    return f"TL;DR: This {kind} covers {topic} with practical insights and actionable takeaways."


# =============================================================================
# moderate
# =============================================================================
SPAM_WORDS = ("viagra", "casino", "lottery", "winner", "free money")
HATE_WORDS = ("hate", "stupid", "idiot", "dumb")

SAFE_MODERATION = {
    "is_approved": True,
    "confidence": 0.8,
    "flags": [],
    "categories": {"spam": 0.1, "hate": 0.0, "inappropriate": 0.0, "quality": 0.8},
    "suggestions": ["Content appears appropriate"],
    "action": "approve",
}


def _normalize_moderation(raw: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(SAFE_MODERATION)
    result["is_approved"] = raw.get("is_approved", raw.get("isApproved", result["is_approved"]))
    for key in ("confidence", "flags", "categories", "suggestions", "action"):
        if key in raw:
            result[key] = raw[key]
    return result


async def moderate(client: Optional[AsyncOpenAI], content: str, type_: str = "comment") -> Dict[str, Any]:
    if client is None:
        return mock_moderation(content)
    system = (
        "Analyze content for moderation: spam, hate speech, inappropriate content and quality. "
        "Return JSON: {\"is_approved\": bool, \"confidence\": 0-1, \"flags\": [str], "
        "\"categories\": {\"spam\": 0-1, \"hate\": 0-1, \"inappropriate\": 0-1, \"quality\": 0-1}, "
        "\"suggestions\": [str], \"action\": \"approve\"|\"flag\"|\"reject\"}"
    )
    user = f"Moderate this {type_} content:\n\n{content}"
    text = await _chat(client, system, user, max_tokens=1000, temperature=0.2)
    try:
        parsed = _parse_json(text)
    except ValueError:
        logger.warning("Unparsable moderation reply, using safe default")
        return dict(SAFE_MODERATION)
    if not isinstance(parsed, dict):
        return dict(SAFE_MODERATION)
    return _normalize_moderation(parsed)


def mock_moderation(content: str) -> Dict[str, Any]:
    lowered = content.lower()
    spam = any(w in lowered for w in SPAM_WORDS)
    hate = any(w in lowered.split() for w in HATE_WORDS)
    flags = []
    if spam:
        flags.append("potential_spam")
    if hate:
        flags.append("hate_speech")
    if len(content) < 10:
        flags.append("too_short")
    suggestions = []
    if len(content) < 20:
        suggestions.append("Consider adding more detail")
    if spam:
        suggestions.append("Remove promotional content")
    if not suggestions:
        suggestions.append("No major issues detected")
    approved = not spam and not hate
    return {
        "is_approved": approved,
        "confidence": 0.85,
        "flags": flags,
        "categories": {
            "spam": 0.75 if spam else 0.05,
            "hate": 0.35 if hate else 0.0,
            "inappropriate": 0.0,
            "quality": 0.85 if len(content) > 50 and not spam else 0.5,
        },
        "suggestions": suggestions,
        "action": "approve" if approved else "flag",
    }


# =============================================================================
# SEO
# =============================================================================
def default_seo(content: str, tags: Sequence[str] = ()) -> Dict[str, Any]:
    words = len(content.split())
    return {
        "score": 75,
        "title_analysis": {"score": 80, "suggestions": ["Consider adding a target keyword"]},
        "content_analysis": {
            "score": 70,
            "word_count": words,
            "readability": "Good" if words > 1000 else "Could be improved",
            "suggestions": ["Add more subheadings", "Include bullet points"],
        },
        "keyword_analysis": {
            "primary_keywords": list(tags[:3]) if tags else ["blog", "content", "article"],
            "secondary_keywords": ["writing", "tips", "guide"],
            "density": {},
        },
        "technical_seo": {"score": 85, "issues": [], "recommendations": ["Add meta description", "Optimize images"]},
        "overall_suggestions": ["Consider adding more internal links"],
    }


async def analyze_seo(
    client: Optional[AsyncOpenAI],
    content: str,
    title: str,
    excerpt: Optional[str] = None,
    tags: Sequence[str] = (),
) -> Dict[str, Any]:
    if client is None:
        return default_seo(content, tags)
    system = (
        "Analyze the SEO quality of a blog post. Return a JSON object with keys score (0-100), "
        "title_analysis {score, suggestions}, content_analysis {score, word_count, readability, suggestions}, "
        "keyword_analysis {primary_keywords, secondary_keywords, density}, "
        "technical_seo {score, issues, recommendations} and overall_suggestions."
    )
    user = (
        f"Analyze this blog post for SEO:\n\nTitle: {title}\n"
        f"Excerpt: {excerpt or 'No excerpt provided'}\n"
        f"Tags: {', '.join(tags) or 'No tags provided'}\n\n"
        f"Content:\n{content[:SEO_INPUT_CHARS]}"
    )
    text = await _chat(client, system, user, max_tokens=1500, temperature=0.3)
    try:
        parsed = _parse_json(text)
    except ValueError:
        logger.warning("Unparsable SEO reply, using default analysis")
        return default_seo(content, tags)
    return parsed if isinstance(parsed, dict) else default_seo(content, tags)


# =============================================================================
# images
# =============================================================================
_IMAGE_PROMPTS = {
    "cover": (
        "Create a professional blog post cover image for: {prompt}. Style: {style}.",
        "modern, clean, tech-focused",
    ),
    "illustration": (
        "Create an illustration for: {prompt}. Style: {style}. Suitable for inline content in a blog post.",
        "minimalist, tech-themed",
    ),
    "thumbnail": (
        "Create a thumbnail image for: {prompt}. Style: {style}. Optimized for social media sharing.",
        "eye-catching, modern",
    ),
}

_PLACEHOLDERS = {
    "cover": ("1200x400/4f46e5/ffffff", 30),
    "illustration": ("600x400/10b981/ffffff", 20),
    "thumbnail": ("400x400/f59e0b/ffffff", 15),
}


async def generate_image(
    client: Optional[AsyncOpenAI], prompt: str, type_: str = "cover", style: Optional[str] = None
) -> str:
    if client is None:
        return mock_image(prompt, type_)
    template, default_style = _IMAGE_PROMPTS[type_]
    try:
        response = await client.images.generate(
            model=settings.openai_image_model,
            prompt=template.format(prompt=prompt, style=style or default_style),
            size="1792x1024" if type_ == "thumbnail" else "1024x1024",
            quality="standard",
            n=1,
        )
    except Exception as e:
        logger.exception("OpenAI image generation failed")
        raise IntegrationError("openai", str(e)) from e
    url = response.data[0].url if response.data else None
    if not url:
        raise IntegrationError("openai", "no image returned")
    return url


def mock_image(prompt: str, type_: str = "cover") -> str:
    path, chars = _PLACEHOLDERS[type_]
    return f"https://via.placeholder.com/{path}?text={quote(prompt[:chars])}"


# =============================================================================
# recommendations
# =============================================================================
def basic_recommendations(candidates: Sequence[Dict[str, Any]], preferred_tags: Sequence[str]) -> List[Dict[str, Any]]:
    """Score popular posts by overlap with the reader's preferred tags.

    ``candidates`` are dicts with id, title, tags and reactions (total count).
    """
    recs = []
    for post in candidates:
        post_tags = post.get("tags", [])
        matching = [
            t for t in preferred_tags if any(t.lower() in pt.lower() for pt in post_tags)
        ]
        score = min(1.0, len(matching) * 0.2 + post.get("reactions", 0) * 0.001 + 0.3)
        if matching:
            reason = f"Based on your interest in: {', '.join(matching[:2])}"
        else:
            reason = f"Popular post with {post.get('reactions', 0)} reactions"
        recs.append({
            "title": post["title"],
            "reason": reason,
            "relevance_score": round(score, 2),
            "tags": list(post_tags[:3]),
            "type": "post",
            "post_id": post["id"],
        })
    return recs


async def recommend(
    client: Optional[AsyncOpenAI],
    history: Dict[str, Any],
    preferences: Dict[str, Any],
    candidates: Sequence[Dict[str, Any]],
    limit: int = 10,
    type_: str = "posts",
) -> List[Dict[str, Any]]:
    fallback = basic_recommendations(candidates, preferences.get("preferred_tags", []))
    if client is None:
        return fallback
    following = ", ".join(f["name"] or "" for f in preferences.get("following", [])) or "None"
    topics = ", ".join(history.get("recent_topics", [])[:5]) or "None"
    system = (
        "Generate personalized content recommendations from a reader's history and preferences. "
        "Return a JSON array of objects with title, reason, relevance_score (0-1), tags and "
        "type (post, author or topic)."
    )
    user = (
        f"Generate {limit} personalized {type_} recommendations for this user:\n\n"
        f"- Following: {following}\n"
        f"- Preferred tags: {', '.join(preferences.get('preferred_tags', [])) or 'None'}\n"
        f"- Reacted to {history.get('reactions', 0)} posts, bookmarked {history.get('bookmarks', 0)}\n"
        f"- Recent topics: {topics}"
    )
    try:
        text = await _chat(client, system, user, max_tokens=1500, temperature=0.7)
        parsed = _parse_json(text)
    except (IntegrationError, ValueError):
        logger.warning("LLM recommendations unavailable, using tag overlap")
        return fallback
    if not isinstance(parsed, list):
        return fallback
    return parsed[:limit]
