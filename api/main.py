"""
api/main.py -- FastAPI application entry point for OrgWarden.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan wires the stores and services onto app.state and runs the access
control bootstrap (default roles + root identity) to completion before the
server accepts its first request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.organizations import router as organizations_router
from api.routes.v1.roles import router as roles_router
from auth.access import AccessControlService
from auth.dependencies import get_current_user, get_locale
from auth.models import Identity
from auth.notifications import Notifier, SmtpNotifier
from auth.service import AuthService
from auth.store import IdentityStore
from auth.tokens import PasswordHasher, TokenCodec
from core.config import Settings, get_settings
from core.errors import ServiceError
from core.messages import MessageCatalog
from orgs.store import OrganizationStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("orgwarden.api")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def init_app_state(
    app: FastAPI,
    settings: Settings,
    identity_store: IdentityStore,
    org_store: OrganizationStore,
    notifier: Notifier | None = None,
) -> None:
    """Build the services from their collaborators and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    graph; only the stores (and optionally the notifier) differ.
    """
    messages = MessageCatalog(default_locale=settings.default_locale)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, timeout_seconds=settings.hash_timeout_seconds)
    codec = TokenCodec(
        settings.secret_key,
        default_ttl=settings.token_expire_seconds,
        secure_cookies=settings.secure_cookies,
    )
    app.state.settings = settings
    app.state.messages = messages
    app.state.identity_store = identity_store
    app.state.org_store = org_store
    app.state.auth_service = AuthService(
        identity_store,
        hasher,
        codec,
        notifier or SmtpNotifier(settings, messages),
        settings,
    )
    app.state.access_control = AccessControlService(identity_store, hasher, settings)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores, wire services, bootstrap access control; close on shutdown."""
    settings = get_settings()
    logger.info("OrgWarden API starting up")
    init_app_state(app, settings, IdentityStore(settings.auth_db_url), OrganizationStore(settings.orgs_db_url))
    root = await app.state.access_control.bootstrap()
    logger.info("Access control initialized (root identity %s)", root.email)

    yield

    app.state.identity_store.close()
    app.state.org_store.close()
    logger.info("OrgWarden API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="OrgWarden API",
    description="Multi-tenant authentication and organization-scoped access control.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in docs are replaced by auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack -- registered in the order a request meets them.
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(organizations_router, prefix="/api/v1", tags=["Organizations"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(identity: Identity = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="OrgWarden API")


@app.get("/redoc", include_in_schema=False)
async def redoc(identity: Identity = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="OrgWarden API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map a core error kind to its status and render the phrase in the caller's locale."""
    message = request.app.state.messages.resolve(exc.phrase, get_locale(request), exc.args_map)
    if exc.status_code >= 500:
        logger.error("%r on %s %s", exc, request.method, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.kind.value, message=message)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a Retry-After hint when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- defined here so it is reachable regardless of routers.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
