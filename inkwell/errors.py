"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class InkwellError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(InkwellError):
    def __init__(self, what: str):
        super().__init__(f"{what} not found", status_code=404)


class ForbiddenError(InkwellError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class ConflictError(InkwellError):
    """Duplicate or state-violating requests (already following, already bought...)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class IntegrationError(InkwellError):
    """An external service (LLM, CMS, storage) failed or is not configured."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}", status_code=502)
        self.service = service


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse({"error": detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(InkwellError)
    async def handle_inkwell_error(_request: Request, exc: InkwellError):
        if exc.status_code >= 500:
            logger.warning("Request failed: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
