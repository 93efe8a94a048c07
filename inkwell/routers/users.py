# inkwell/routers/users.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, services
from ..cache import cache_keys, user_cache
from ..database import get_db
from ..errors import NotFoundError

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/{user_id}")
async def get_user(user_id: str, db: Session = Depends(get_db)):
    profile = await user_cache.get_or_compute(cache_keys.user(user_id), lambda: services.public_profile(db, user_id))
    stats = await user_cache.get_or_compute(cache_keys.user_stats(user_id), lambda: services.user_stats(db, user_id))
    return {**profile, "stats": stats}


@router.get("/{user_id}/posts", response_model=models.PostListResponse)
async def get_user_posts(
    user_id: str,
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    if services.get_user(db, user_id) is None:
        raise NotFoundError("User")
    return await user_cache.get_or_compute(
        cache_keys.user_posts(user_id, page), lambda: services.list_posts(db, page=page, limit=10, author=user_id)
    )
