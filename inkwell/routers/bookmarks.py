# inkwell/routers/bookmarks.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/bookmarks", tags=["Bookmarks"])


@router.post("")
async def update_bookmark(
    payload: models.BookmarkPayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    if payload.action == "bookmark":
        services.add_bookmark(db, payload.post_id, user)
        return {"message": "Post bookmarked", "bookmarked": True}
    services.remove_bookmark(db, payload.post_id, user)
    return {"message": "Bookmark removed", "bookmarked": False}


@router.get("")
async def get_bookmarks(
    post_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    """Status for one post when ``post_id`` is given, otherwise every bookmarked post."""
    if post_id:
        return {"bookmarked": services.is_bookmarked(db, post_id, user.id)}
    return {"bookmarks": services.list_bookmarks(db, user)}
