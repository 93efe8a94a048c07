# inkwell/routers/purchase.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import invalidate_post_cache
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/purchase", tags=["Purchases"])


@router.post("", status_code=201)
async def purchase_post(
    payload: models.PurchasePayload,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    purchase = services.purchase_post(db, user, payload.post_id)
    invalidate_post_cache(purchase.post_id)
    services.log_action(db, user.email, "POST_PURCHASED", {"post_id": purchase.post_id, "amount": purchase.amount})
    return {
        "id": purchase.id,
        "post_id": purchase.post_id,
        "amount": purchase.amount,
        "status": purchase.status,
    }


@router.get("")
async def check_access(
    post_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    post = services.serialize_post(services.get_post(db, post_id))
    return {
        "has_access": services.can_read_full(db, post, user),
        "purchased": services.has_purchased(db, user.id, post["id"]),
    }
