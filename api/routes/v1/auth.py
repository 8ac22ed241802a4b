"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/signup    -- register; 201 + Authorization cookie
  POST /api/v1/login     -- password login; 200 + Authorization cookie
  POST /api/v1/logout    -- re-verify credentials, clear cookie (requires auth)
  GET  /api/v1/verify    -- follow an email verification link (?token=)
  GET  /api/v1/auth/me   -- current identity (requires auth)

Every rejection is a ServiceError raised by auth/service.py; api/main.py turns
it into the status code and localized message. Handlers here only translate
between HTTP and the service.

Security:
  POST /signup and /login are rate-limited by LOGIN_RATE_LIMIT.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import CredentialsRequest, IdentityResponse, SessionResponse, SignupRequest
from auth.dependencies import get_auth_service, get_current_user, get_locale
from auth.models import Credentials, Identity
from auth.service import AuthService
from auth.tokens import COOKIE_NAME

# Auth policy:
# - POST /signup, /login, GET /verify: public
# - POST /logout, GET /auth/me:        requires auth (get_current_user)
router = APIRouter()


def _session_response(status_code: int, identity: Identity, cookie: str, token: str, expires_in: int, message: str):
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            data=IdentityResponse.from_identity(identity),
            token=token,
            expires_in=expires_in,
            message=message,
        ).model_dump(),
    )
    resp.headers["Set-Cookie"] = cookie
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_rate_limit)
@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    request: Request,
    body: SignupRequest,
    auth: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> JSONResponse:
    """Create an identity, open a session, and send the verification mail."""
    result = await auth.signup(
        Credentials(email=body.email, password=body.password, full_name=body.full_name),
        locale=locale,
    )
    return _session_response(
        201,
        result.identity,
        result.cookie,
        result.token_data.token,
        result.token_data.expires_in,
        "signup",
    )


@limiter.limit(login_rate_limit)
@router.post("/login", response_model=SessionResponse)
async def login(
    request: Request,
    body: CredentialsRequest,
    auth: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    result = await auth.login(Credentials(email=body.email, password=body.password), locale=locale)
    return _session_response(
        200,
        result.identity,
        result.cookie,
        result.token_data.token,
        result.token_data.expires_in,
        "login",
    )


@router.post("/logout", response_model=IdentityResponse)
async def logout(
    body: CredentialsRequest,
    identity: Identity = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Re-verify the caller's credentials and clear the session cookie.

    The credentials must belong to the session's own identity.
    """
    logged_out = await auth.logout(
        Credentials(email=body.email, password=body.password),
        session_identity_id=identity.id,
    )
    resp = JSONResponse(content=IdentityResponse.from_identity(logged_out).model_dump())
    resp.headers["Set-Cookie"] = f"{COOKIE_NAME}=; Max-age=0"
    return resp


@router.get("/verify", response_model=IdentityResponse)
async def verify_email(token: str = "", auth: AuthService = Depends(get_auth_service)) -> IdentityResponse:
    """Mark the identity behind a verification token as verified."""
    identity = await auth.verify_email_token(token)
    return IdentityResponse.from_identity(identity)


@router.get("/auth/me", response_model=IdentityResponse)
async def me(identity: Identity = Depends(get_current_user)) -> IdentityResponse:
    return IdentityResponse.from_identity(identity)
