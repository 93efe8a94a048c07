# inkwell/routers/reactions.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import invalidate_post_cache
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/reactions", tags=["Reactions"])


@router.post("")
async def toggle_reaction(
    payload: models.ReactionPayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    """Adds the reaction, or removes it when the caller already reacted with that type."""
    action = services.toggle_reaction(db, payload.post_id, user, payload.type.value)
    invalidate_post_cache(payload.post_id)
    return {"action": action, **services.reaction_summary(db, payload.post_id, user.id)}


@router.get("")
async def get_reactions(
    post_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(dependencies.get_optional_user),
):
    services.get_post(db, post_id)
    return services.reaction_summary(db, post_id, user.id if user else None)
