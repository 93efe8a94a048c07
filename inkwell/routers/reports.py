# inkwell/routers/reports.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..database import get_db
from ..tables import User

router = APIRouter(prefix="/api/reports", tags=["Reports"])


@router.post("", status_code=201)
async def create_report(
    payload: models.ReportCreate,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    report = services.create_report(db, user, payload)
    services.log_action(
        db, user.email, "CONTENT_REPORTED", {"target_type": report.target_type, "target_id": report.target_id}
    )
    return services.serialize_report(report)
