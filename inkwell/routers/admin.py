# inkwell/routers/admin.py
from __future__ import annotations

import platform
import sys
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import ALL_CACHES, invalidate_post_cache, invalidate_user_cache
from ..config import settings
from ..database import get_db
from ..performance import PerformanceMonitor
from ..tables import User

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(dependencies.get_current_admin_user)],
)


class HealthResponse(BaseModel):
    status: str = "ok"
    python: str = Field(default_factory=lambda: sys.version.split()[0])
    platform: str = Field(default_factory=platform.platform)
    app_version: Optional[str] = settings.app_version
    env: Optional[str] = settings.environment


# =============================================================================
# Users
# =============================================================================
@router.get("/users", summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[models.Role] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return services.list_users(db, page=page, limit=limit, role=role.value if role else None, search=search)


@router.patch("/users", summary="Change role or ban/unban")
async def update_user(
    payload: models.AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(dependencies.get_current_admin_user),
):
    if payload.role is None and payload.action is None:
        raise HTTPException(status_code=400, detail="Nothing to update: pass role or action.")
    if payload.user_id == admin.id:
        raise HTTPException(status_code=400, detail="Admins cannot change their own account here.")
    if payload.role is not None:
        user = services.set_role(db, payload.user_id, payload.role.value)
    if payload.action is not None:
        user = services.set_banned(db, payload.user_id, payload.action == "ban")
    invalidate_user_cache(user.id)
    services.log_action(
        db, admin.email, "ADMIN_USER_UPDATED",
        {"user_id": user.id, "role": user.role, "banned": user.banned},
    )
    return {"id": user.id, "email": user.email, "role": user.role, "banned": user.banned}


# =============================================================================
# Reports
# =============================================================================
@router.get("/reports", summary="List content reports")
async def list_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[Literal["pending", "approved", "rejected", "resolved"]] = None,
    type: Optional[Literal["post", "comment"]] = None,
    db: Session = Depends(get_db),
):
    return services.list_reports(db, page=page, limit=limit, status=status, target_type=type)


@router.post("/reports", summary="Act on a report")
async def act_on_report(
    payload: models.ReportAction,
    db: Session = Depends(get_db),
    admin: User = Depends(dependencies.get_current_admin_user),
):
    report = services.act_on_report(db, payload.report_id, payload.action, payload.reason)
    if report.target_type == "post":
        invalidate_post_cache(report.target_id)
    services.log_action(
        db, admin.email, "REPORT_REVIEWED",
        {"report_id": report.id, "action": payload.action, "status": report.status},
    )
    return services.serialize_report(report)


# =============================================================================
# Observability
# =============================================================================
@router.get("/logs", response_model=models.LogsResponse, summary="Recent audit logs")
async def get_logs(limit: int = Query(200, ge=1, le=1000), db: Session = Depends(get_db)) -> models.LogsResponse:
    return models.LogsResponse(items=[models.LogEntry(**row) for row in services.get_recent_logs(db, limit)])


@router.get("/performance", summary="Timing report")
async def performance_report(metrics: PerformanceMonitor = Depends(dependencies.get_metrics)):
    return metrics.generate_report(ALL_CACHES)


@router.delete("/performance", summary="Reset timing samples")
async def reset_performance(metrics: PerformanceMonitor = Depends(dependencies.get_metrics)):
    metrics.clear()
    return {"ok": True}


@router.get("/cache", summary="Cache sizes")
async def cache_stats():
    return {name: cache.stats() for name, cache in ALL_CACHES.items()}


@router.delete("/cache", summary="Clear caches")
async def clear_cache(
    name: Optional[Literal["users", "posts", "search"]] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(dependencies.get_current_admin_user),
):
    targets = [name] if name else list(ALL_CACHES)
    for target in targets:
        ALL_CACHES[target].clear()
    services.log_action(db, admin.email, "CACHE_CLEARED", {"caches": targets})
    return {"cleared": targets}


@router.get("/health", response_model=HealthResponse, summary="Healthcheck")
async def health() -> HealthResponse:
    return HealthResponse()
