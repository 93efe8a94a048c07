# inkwell/routers/notifications.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    return services.list_notifications(db, user, limit=limit, offset=offset, unread_only=unread_only)


@router.patch("")
async def update_notifications(
    payload: models.NotificationAction,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    if payload.action == "mark_all_as_read":
        updated = services.mark_all_notifications_read(db, user)
        return {"message": "All notifications marked as read", "updated": updated}
    if not payload.notification_id:
        raise HTTPException(status_code=400, detail="notification_id is required")
    services.mark_notification_read(db, user, payload.notification_id)
    return {"message": "Notification marked as read"}
