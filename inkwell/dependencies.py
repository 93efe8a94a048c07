# inkwell/dependencies.py
from typing import AsyncIterator, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from . import ai
from .config import settings
from .database import get_db
from .performance import PerformanceMonitor
from .tables import User


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """User from the session cookie, or None for anonymous visitors."""
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    user = db.get(User, user_id)
    if user is None:
        # account removed since the cookie was issued
        request.session.clear()
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if user.banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")
    return user


def get_current_admin_user(user: User = Depends(get_current_user)) -> User:
    """Restricts a route to administrators."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def get_metrics(request: Request) -> PerformanceMonitor:
    return request.app.state.metrics


def get_llm_client() -> Optional[AsyncOpenAI]:
    return ai.get_client()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        yield client
