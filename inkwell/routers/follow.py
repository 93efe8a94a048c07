# inkwell/routers/follow.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import invalidate_user_cache
from ..database import get_db
from ..errors import NotFoundError
from ..tables import User

router = APIRouter(tags=["Follow"])


@router.post("/api/follow")
async def follow(
    payload: models.FollowPayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    if payload.action == "follow":
        services.follow_user(db, user, payload.user_id)
        message = "Successfully followed user"
    else:
        services.unfollow_user(db, user, payload.user_id)
        message = "Successfully unfollowed user"
    invalidate_user_cache(payload.user_id)
    invalidate_user_cache(user.id)
    return {"message": message, **services.follow_status(db, user.id, payload.user_id)}


@router.get("/api/follow")
async def follow_status(
    user_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    if services.get_user(db, user_id) is None:
        raise NotFoundError("User")
    return services.follow_status(db, user.id, user_id)


@router.get("/api/users/{user_id}/followers")
async def followers(user_id: str, db: Session = Depends(get_db)):
    if services.get_user(db, user_id) is None:
        raise NotFoundError("User")
    return {"followers": services.list_followers(db, user_id)}


@router.get("/api/users/{user_id}/following")
async def following(user_id: str, db: Session = Depends(get_db)):
    if services.get_user(db, user_id) is None:
        raise NotFoundError("User")
    return {"following": services.list_following(db, user_id)}
