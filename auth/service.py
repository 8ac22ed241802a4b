"""
auth/service.py -- Signup, login, logout, and email verification.

Each call is one authentication attempt: it starts unauthenticated and ends
either authenticated (a result object, usually with a session cookie) or
rejected (a ServiceError from core/errors.py). Every precondition fails fast;
nothing is retried here.

Rejections carry catalog phrases, not text. "Email not found" and "Wrong
password" are different phrases but map to the same 409 status.

Hashing goes through PasswordHasher's async wrappers and store calls through
asyncio.to_thread, so neither bcrypt nor the database runs on the event loop.
Token issue/verify is synchronous and pure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError

from auth.access import DEFAULT_USER_ROLE
from auth.models import Credentials, Identity, TokenData
from auth.notifications import Notifier, dispatch_in_background
from auth.store import IdentityStore
from auth.tokens import MAX_PASSWORD_BYTES, VERIFICATION_TOKEN_TTL, PasswordHasher, TokenCodec
from core.config import Settings
from core.errors import (
    BadCredentialsError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    PersistenceFailureError,
    UnauthorizedError,
)

logger = logging.getLogger("orgwarden.auth")


@dataclass
class SignupResult:
    identity: Identity
    cookie: str
    token_data: TokenData
    verification_token: TokenData


@dataclass
class LoginResult:
    identity: Identity
    cookie: str
    token_data: TokenData


class AuthService:
    def __init__(
        self,
        store: IdentityStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.notifier = notifier
        self.settings = settings

    async def signup(self, credentials: Optional[Credentials], locale: Optional[str] = None) -> SignupResult:
        """Register a new identity and open a session for it.

        The verification mail is dispatched in the background; its failure is
        logged and never affects the result.
        """
        if credentials is None or credentials.is_empty():
            raise BadCredentialsError("Credentials are required")
        if len(credentials.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise BadCredentialsError("Password must be at most {{max}} bytes", max=MAX_PASSWORD_BYTES)

        if await asyncio.to_thread(self.store.get_by_email, credentials.email) is not None:
            raise ConflictError("Email {{email}} already exists", email=credentials.email)

        hashed = await self.hasher.hash_async(credentials.password)
        default_role = await asyncio.to_thread(self.store.find_role, DEFAULT_USER_ROLE)
        try:
            identity_id = await asyncio.to_thread(
                self.store.create_identity,
                Identity(
                    email=credentials.email,
                    hashed_password=hashed,
                    full_name=credentials.full_name,
                    role_ids=[default_role.id] if default_role else [],
                ),
            )
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email.
            raise ConflictError("Email {{email}} already exists", email=credentials.email) from exc
        identity = await asyncio.to_thread(self.store.get_by_id, identity_id)
        if identity is None:
            raise PersistenceFailureError("Unable to update user")

        token_data = self.codec.issue(identity.id)
        cookie = self.codec.create_cookie(token_data)
        verification_token = self.codec.issue(identity.id, ttl=VERIFICATION_TOKEN_TTL)

        dispatch_in_background(
            self.notifier.send_verification(
                identity,
                self.verify_link(verification_token.token),
                locale or self.settings.default_locale,
            ),
            f"Verification mail to {identity.email}",
        )
        logger.info("Signed up %s", identity.email)
        return SignupResult(
            identity=identity,
            cookie=cookie,
            token_data=token_data,
            verification_token=verification_token,
        )

    async def login(self, credentials: Optional[Credentials], locale: Optional[str] = None) -> LoginResult:
        if credentials is None or credentials.is_empty():
            raise BadCredentialsError("Credentials are required")

        identity = await asyncio.to_thread(self.store.get_by_email, credentials.email)
        if identity is None:
            raise NotFoundError("Email {{email}} not found", email=credentials.email)

        if not await self.hasher.verify_async(credentials.password, identity.hashed_password):
            raise ConflictError("Wrong password")

        token_data = self.codec.issue(identity.id)
        return LoginResult(identity=identity, cookie=self.codec.create_cookie(token_data), token_data=token_data)

    async def logout(self, credentials: Optional[Credentials], session_identity_id: Optional[str] = None) -> Identity:
        """Re-verify the caller's email and plaintext password; return the identity.

        When session_identity_id is given the credentials must belong to that
        identity, otherwise UnauthorizedError. Clearing the session cookie is
        the caller's job.
        """
        if credentials is None or credentials.is_empty():
            raise BadCredentialsError("Credentials are required")

        identity = await asyncio.to_thread(self.store.get_by_email, credentials.email)
        if identity is None:
            raise NotFoundError("Email {{email}} not found", email=credentials.email)
        if not await self.hasher.verify_async(credentials.password, identity.hashed_password):
            raise ConflictError("Wrong password")
        if session_identity_id is not None and identity.id != session_identity_id:
            raise UnauthorizedError()
        return identity

    async def verify_email(self, identity_id: Optional[str]) -> Identity:
        """Stamp email_verified_at on the identity and return the saved record."""
        if not identity_id:
            raise BadCredentialsError("An ID is required")

        if await asyncio.to_thread(self.store.get_by_id, identity_id) is None:
            raise NotFoundError("User not found")

        updated = await asyncio.to_thread(
            self.store.update_identity,
            identity_id,
            email_verified_at=datetime.now(timezone.utc).isoformat(),
        )
        if updated is None:
            raise PersistenceFailureError("Unable to update user")
        logger.info("Verified email for %s", updated.email)
        return updated

    async def verify_email_token(self, token: str) -> Identity:
        """Accept a verification token (expired or not) and verify its identity."""
        claims = self.codec.verify(token, ignore_expiry=True)
        return await self.verify_email(claims.identity_id)

    def authenticate_token(self, token: Optional[str]) -> Identity:
        """Resolve a session token to its identity.

        The token must verify, be unexpired, and reference an identity that
        still exists; every failure is the same InvalidTokenError.
        """
        if not token:
            raise InvalidTokenError("Authentication token missing")
        claims = self.codec.verify(token)
        identity = self.store.get_by_id(claims.identity_id)
        if identity is None:
            raise InvalidTokenError()
        return identity

    def verify_link(self, token: str) -> str:
        return f"{self.settings.platform_url.rstrip('/')}/api/v1/verify?token={quote(token)}"
