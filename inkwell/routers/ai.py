# inkwell/routers/ai.py
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from .. import ai, dependencies, models, services
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/ai", tags=["AI"])


def _response(client: Optional[AsyncOpenAI], **body):
    body["success"] = True
    if client is None:
        body["mock"] = True
    return body


@router.post("/generate")
async def generate(
    payload: models.GeneratePayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    past_posts = []
    if client is not None:
        past_posts = [
            {"title": p.title, "content": p.content, "tags": p.tag_names}
            for p in services.recent_posts_by(db, user.id, limit=10)
        ]
    content = await ai.generate(client, payload.prompt, payload.type.value, payload.context, past_posts)
    return _response(client, content=content, type=payload.type.value)


@router.post("/summary")
async def summary(
    payload: models.SummaryPayload,
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    return _response(client, summary=await ai.summarize(client, payload.content, payload.title))


@router.post("/moderate")
async def moderate(
    payload: models.ModeratePayload,
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    return _response(client, result=await ai.moderate(client, payload.content, payload.type))


@router.post("/seo")
async def seo(
    payload: models.SEOPayload,
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    analysis = await ai.analyze_seo(client, payload.content, payload.title, payload.excerpt, payload.tags)
    return _response(client, analysis=analysis)


@router.post("/image")
async def image(
    payload: models.ImagePayload,
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    url = await ai.generate_image(client, payload.prompt, payload.type.value, payload.style)
    return _response(client, image_url=url)


@router.get("/recommend")
async def recommend(
    limit: int = Query(10, ge=1, le=50),
    type: Literal["posts", "authors", "topics"] = "posts",
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
    client: Optional[AsyncOpenAI] = Depends(dependencies.get_llm_client),
):
    history = services.reading_history(db, user.id)
    prefs = services.preferences(db, user.id)
    seen_posts = [r.post_id for r in history["reactions"]] + [b.post_id for b in history["bookmarks"]]
    exclude_authors = [f["id"] for f in prefs["following"]] + [user.id]
    candidates = [
        {"id": p.id, "title": p.title, "tags": p.tag_names, "reactions": len(p.reactions)}
        for p in services.popular_posts(db, limit, exclude_post_ids=seen_posts, exclude_author_ids=exclude_authors)
    ]
    recent_topics = []
    for item in history["reactions"] + history["bookmarks"]:
        for name in item.post.tag_names:
            if name not in recent_topics:
                recent_topics.append(name)
    summary = {
        "reactions": len(history["reactions"]),
        "bookmarks": len(history["bookmarks"]),
        "recent_topics": recent_topics,
    }
    recommendations = await ai.recommend(client, summary, prefs, candidates, limit=limit, type_=type)
    return _response(client, recommendations=recommendations)
