"""FastAPI application entry point for Inkwell."""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .database import engine, init_db
from .errors import register_error_handlers
from .performance import PerformanceMonitor
from .routers import (
    admin,
    ai,
    auth,
    bookmarks,
    crosspost,
    follow,
    health,
    notifications,
    posts,
    profile,
    purchase,
    reactions,
    reports,
    search,
    users,
)

# JSON lines in production, human-readable locally
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.started_at = time.monotonic()
    missing = settings.validate()
    if missing:
        logger.warning("Missing env vars (optional integrations disabled): %s", ", ".join(missing))
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Inkwell",
        description="API for the Inkwell blogging platform.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.metrics = PerformanceMonitor()
    app.state.metrics.watch_engine(engine)
    app.state.started_at = time.monotonic()

    # ==== Sessions ====
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        same_site="lax",
        https_only=settings.sessions_https_only,
    )

    # ==== CORS ====
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=settings.cors_origins != ["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.middleware("http")
    async def record_response_time(request: Request, call_next):
        metrics: PerformanceMonitor = request.app.state.metrics
        return await metrics.measure("api_response", lambda: call_next(request))

    register_error_handlers(app)

    for module in (
        auth, posts, reactions, bookmarks, follow, notifications, search,
        users, profile, purchase, reports, admin, crosspost, ai, health,
    ):
        app.include_router(module.router)

    return app


app = create_app()
