# inkwell/routers/posts.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import cache_keys, invalidate_post_cache, invalidate_user_cache, post_cache
from ..database import get_db
from ..errors import NotFoundError
from ..tables import User

router = APIRouter(prefix="/api/posts", tags=["Posts"])

TRENDING_TTL = 60 * 10


def _list_key(page: int, limit: int, tag: Optional[str], author: Optional[str]) -> str:
    key = cache_keys.posts(page, limit)
    if tag or author:
        key += f":{tag or ''}:{author or ''}"
    return key


def _forget_post(post: dict) -> None:
    invalidate_post_cache(post["id"])
    post_cache.delete(cache_keys.post(post["slug"]))
    invalidate_user_cache(post["author"]["id"])


@router.get("", response_model=models.PostListResponse)
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    tag: Optional[str] = None,
    author: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return await post_cache.get_or_compute(
        _list_key(page, limit, tag, author),
        lambda: services.list_posts(db, page=page, limit=limit, tag=tag, author=author),
    )


@router.post("", status_code=201)
async def create_post(
    payload: models.PostCreate,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    post = services.serialize_post(services.create_post(db, user, payload), include_content=True)
    # new posts shift every listing page
    post_cache.clear()
    invalidate_user_cache(user.id)
    services.log_action(db, user.email, "POST_CREATED", {"post_id": post["id"], "title": post["title"]})
    return post


@router.get("/trending-tags")
async def trending_tags(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    tags = await post_cache.get_or_compute(
        cache_keys.trending_tags(), lambda: services.trending_tags(db, limit=50), ttl=TRENDING_TTL
    )
    return {"tags": tags[:limit]}


@router.get("/feed", response_model=models.PostListResponse)
async def following_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    return services.feed(db, user, page=page, limit=limit)


@router.get("/{post_id}")
async def get_post(
    post_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(dependencies.get_optional_user),
):
    post = await post_cache.get_or_compute(
        cache_keys.post(post_id),
        lambda: services.serialize_post(services.get_post(db, post_id), include_content=True),
    )
    owner = user is not None and (user.id == post["author"]["id"] or user.is_admin)
    if not post["published"] and not owner:
        # drafts are only visible to their author
        raise NotFoundError("Post")
    if services.can_read_full(db, post, user):
        return {**post, "locked": False}
    return {**post, "content": post["excerpt"], "locked": True}


@router.patch("/{post_id}")
async def update_post(
    post_id: str,
    payload: models.PostUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    before = services.serialize_post(services.get_post(db, post_id))
    post = services.serialize_post(services.update_post(db, post_id, user, payload), include_content=True)
    _forget_post(before)
    post_cache.delete(cache_keys.post(post["slug"]))
    services.log_action(db, user.email, "POST_UPDATED", {"post_id": post["id"]})
    return post


@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    post = services.serialize_post(services.get_post(db, post_id))
    services.delete_post(db, post_id, user)
    _forget_post(post)
    post_cache.delete(cache_keys.trending_tags())
    services.log_action(db, user.email, "POST_DELETED", {"post_id": post["id"]})
    return {"message": "Post deleted"}


# =============================================================================
# Comments
# =============================================================================
@router.get("/{post_id}/comments")
async def list_comments(post_id: str, db: Session = Depends(get_db)):
    return {"comments": services.list_comments(db, post_id)}


@router.post("/{post_id}/comments", status_code=201)
async def create_comment(
    post_id: str,
    payload: models.CommentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    comment = services.create_comment(db, post_id, user, payload)
    invalidate_post_cache(comment.post_id)
    return services.serialize_comment(comment)


@router.delete("/{post_id}/comments/{comment_id}")
async def delete_comment(
    post_id: str,
    comment_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    comment = services.delete_comment(db, comment_id, user)
    invalidate_post_cache(comment.post_id)
    return {"message": "Comment deleted"}
