# inkwell/routers/crosspost.py
import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crosspost, dependencies, models, services
from ..config import settings
from ..database import get_db
from ..errors import ForbiddenError
from ..tables import User

router = APIRouter(prefix="/api/crosspost", tags=["Cross-post"])


def _own_post(db: Session, post_id: str, user: User):
    post = services.get_post(db, post_id)
    if post.author_id != user.id:
        raise ForbiddenError("Only the author can cross-post this post")
    return post


@router.post("", response_model=models.CrossPostResponse)
async def cross_post(
    payload: models.CrossPostPayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
    http: httpx.AsyncClient = Depends(dependencies.get_http_client),
):
    post = _own_post(db, payload.post_id, user)
    publishers = crosspost.build_publishers(http, settings)
    results = await crosspost.dispatch(
        publishers, services.serialize_post(post, include_content=True), payload.platforms
    )
    crosspost.record_results(db, post.id, user.id, results, publishers)
    services.log_action(
        db, user.email, "POST_CROSSPOSTED",
        {"post_id": post.id, "results": {r.platform: r.success for r in results}},
    )
    return {"success": True, "results": [r.as_dict() for r in results]}


@router.get("")
async def list_cross_posts(
    post_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    post = _own_post(db, post_id, user)
    return {"cross_posts": crosspost.list_records(db, post.id)}
