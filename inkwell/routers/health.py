# inkwell/routers/health.py
"""Liveness and readiness checks."""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..cache import ALL_CACHES
from ..config import settings
from ..database import ping

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/healthz", include_in_schema=False)
def healthz():
    """Lightweight liveness check, no I/O."""
    return {"ok": True, "env": settings.environment}


@router.get("/api/health")
def health(request: Request):
    """Deep check: database probe plus cache and integration status."""
    result = {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 1),
        "database": "connected",
        "caches": {name: cache.stats() for name, cache in ALL_CACHES.items()},
        "integrations": {
            "openai": bool(settings.openai_api_key),
            "google_oauth": settings.google_oauth_configured,
            "storage": bool(settings.gcs_bucket_name),
            "bigquery_audit": bool(settings.bigquery_audit_table),
        },
    }
    try:
        ping()
    except SQLAlchemyError as e:
        logger.exception("Database health check failed")
        result.update(status="unhealthy", database="disconnected", error=str(e))
        return JSONResponse(result, status_code=503)
    return result
