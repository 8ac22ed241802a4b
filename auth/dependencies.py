"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Session tokens are accepted from two places, checked in priority order:
  1. "Authorization" cookie -- set by POST /signup and POST /login.
  2. Authorization: Bearer <token> header -- API clients.

get_current_user() raises InvalidTokenError (a ServiceError) on any failure;
the exception handler in api/main.py renders it as 401 in the caller's locale.

get_locale() picks the response language: ?language= query parameter, then the
"language" cookie, then DEFAULT_LOCALE.

Layer rule: may import from fastapi because this module is part of the
dependency injection system. No imports from api/ or orgs/.
"""

from __future__ import annotations

from fastapi import Request

from auth.access import AccessControlService
from auth.models import Identity
from auth.service import AuthService
from auth.tokens import COOKIE_NAME


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_access_control(request: Request) -> AccessControlService:
    return request.app.state.access_control


def get_request_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_user(request: Request) -> Identity:
    """Require a valid session. Use as a FastAPI dependency:

        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_user)): ...
    """
    identity = get_auth_service(request).authenticate_token(get_request_token(request))
    request.state.identity = identity
    return identity


def get_locale(request: Request) -> str:
    catalog = request.app.state.messages
    requested = request.query_params.get("language") or request.cookies.get("language")
    return catalog.normalize_locale(requested)
