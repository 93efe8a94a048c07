# inkwell/routers/auth.py
from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..config import settings
from ..database import get_db

router = APIRouter(tags=["Auth"])

GOOGLE_AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_ENDPOINT = "https://www.googleapis.com/oauth2/v3/userinfo"


class AuthStatus(BaseModel):
    authenticated: bool = False
    user: Optional[Dict[str, Any]] = None
    ts: int = Field(default_factory=lambda: int(time.time()))


def _start_session(request: Request, user) -> Dict[str, Any]:
    if user.banned:
        raise HTTPException(status_code=403, detail="Account suspended")
    request.session["user_id"] = user.id
    return services.serialize_session_user(user)


def _local_path(next_url: Optional[str]) -> str:
    """Only same-site paths are accepted as post-login targets."""
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return settings.login_success_redirect


def _require_oauth_config():
    if not settings.google_oauth_configured:
        raise HTTPException(
            status_code=500,
            detail="Incomplete OAuth configuration (GOOGLE_CLIENT_ID/SECRET/REDIRECT_URI).",
        )


# =============================================================================
# Credentials
# =============================================================================
@router.post("/api/auth/register", status_code=201)
async def register(payload: models.RegisterPayload, request: Request, db: Session = Depends(get_db)):
    user = services.create_user(db, payload.email, payload.password, payload.name)
    session_user = _start_session(request, user)
    services.log_action(db, user.email, "USER_REGISTERED")
    return {"user": session_user}


@router.post("/api/auth/login")
async def login(payload: models.LoginPayload, request: Request, db: Session = Depends(get_db)):
    user = services.authenticate(db, payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    session_user = _start_session(request, user)
    services.log_action(db, user.email, "USER_LOGIN")
    return {"user": session_user}


@router.post("/api/auth/logout")
async def logout(request: Request):
    request.session.clear()
    return {"ok": True}


@router.get("/api/auth/status", response_model=AuthStatus)
async def auth_status(user=Depends(dependencies.get_optional_user)) -> AuthStatus:
    if user is None or user.banned:
        return AuthStatus(authenticated=False, user=None)
    return AuthStatus(authenticated=True, user=services.serialize_session_user(user))


# =============================================================================
# OAuth flow (Google)
# =============================================================================
@router.get("/api/auth/google/login")
async def google_login(request: Request, next: Optional[str] = None):
    _require_oauth_config()

    # CSRF state
    state = os.urandom(12).hex()
    request.session["oauth_state"] = state
    request.session["post_login_redirect"] = _local_path(next)

    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "access_type": "online",
        "include_granted_scopes": "true",
        "prompt": "consent",
        "state": state,
    }
    return RedirectResponse(url=f"{GOOGLE_AUTH_ENDPOINT}?{urlencode(params)}", status_code=302)


@router.get("/api/auth/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: Session = Depends(get_db),
    http: httpx.AsyncClient = Depends(dependencies.get_http_client),
):
    """Google redirects here (GOOGLE_REDIRECT_URI); the user lands in the session."""
    _require_oauth_config()

    expected_state = request.session.get("oauth_state")
    if not state or not expected_state or state != expected_state:
        raise HTTPException(status_code=400, detail="Invalid OAuth state.")
    if not code:
        raise HTTPException(status_code=400, detail="Missing OAuth code.")

    try:
        token_res = await http.post(
            GOOGLE_TOKEN_ENDPOINT,
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
        )
    except httpx.HTTPError as e:
        raise HTTPException(status_code=400, detail=f"Network error fetching token: {e}")
    if token_res.status_code != 200:
        raise HTTPException(status_code=400, detail=f"Failed to obtain token: {token_res.text}")

    access_token = token_res.json().get("access_token")
    if not access_token:
        raise HTTPException(status_code=400, detail="Invalid token received.")

    try:
        ui_res = await http.get(GOOGLE_USERINFO_ENDPOINT, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as e:
        raise HTTPException(status_code=400, detail=f"Network error fetching profile: {e}")
    if ui_res.status_code != 200:
        raise HTTPException(status_code=400, detail=f"Failed to fetch profile: {ui_res.text}")
    info = ui_res.json()

    if not info.get("email") or not info.get("email_verified", True):
        raise HTTPException(status_code=403, detail="Google email not verified.")

    user = services.upsert_oauth_user(db, info["email"], info.get("name") or info.get("given_name"), info.get("picture"))
    _start_session(request, user)
    request.session.pop("oauth_state", None)
    services.log_action(db, user.email, "USER_LOGIN", {"provider": "google"})

    next_url = request.session.pop("post_login_redirect", settings.login_success_redirect)
    return RedirectResponse(url=next_url, status_code=303)
