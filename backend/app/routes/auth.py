"""Sign-in, registration and session cookie handling."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status

from ..identity import Principal, SessionStore
from ..schemas.subscriptions import FederatedLoginRequest, LoginRequest, RegisterRequest
from ..services import subscriptions as subscription_services

logger = logging.getLogger(__name__)

# Fixed at import: the cookie dependencies below bind the name as their alias.
SESSION_COOKIE_NAME = subscription_services.get_settings().session_cookie_name

router = APIRouter(prefix="/api/auth", tags=["auth"])


def resolve_principal_from_token(session_token: str) -> Optional[Principal]:
    principal_id = subscription_services.get_identity_provider().resolve_session_token(session_token)
    if principal_id is None:
        return None
    return subscription_services.get_profile_repository().get_profile(principal_id)


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Principal:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    principal = resolve_principal_from_token(session_token)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal


def get_optional_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Optional[Principal]:
    if not session_token:
        return None

    try:
        return resolve_principal_from_token(session_token)
    except Exception:
        logger.exception("Unexpected error while resolving optional session token")
        return None


def _start_session(session: SessionStore, response: Response) -> Principal:
    principal = session.principal
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    settings = subscription_services.get_settings()
    token = subscription_services.get_identity_provider().issue_session_token(principal.id)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
        max_age=int(timedelta(minutes=settings.jwt_exp_minutes).total_seconds()),
        path="/",
    )
    return principal


@router.post("/login", response_model=Principal)
def login(payload: LoginRequest, response: Response) -> Principal:
    session = subscription_services.new_session()
    if not session.login(payload.email, payload.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return _start_session(session, response)


@router.post("/federated", response_model=Principal)
def login_federated(payload: FederatedLoginRequest, response: Response) -> Principal:
    session = subscription_services.new_session()
    if not session.login_with_oauth(payload.id_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign-in failed")
    return _start_session(session, response)


@router.post("/register", response_model=Principal, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, response: Response) -> Principal:
    session = subscription_services.new_session()
    if not session.register(payload.name, payload.email, payload.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Registration failed")
    return _start_session(session, response)


@router.post("/logout")
def logout(response: Response):
    settings = subscription_services.get_settings()
    subscription_services.new_session().logout()
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    return {"ok": True}


@router.get("/me", response_model=Principal)
def read_current_user(current_user: Principal = Depends(get_current_user)) -> Principal:
    return current_user
