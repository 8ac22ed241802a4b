"""
auth/tokens.py -- Password hashing and session token utilities.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The cost factor comes
       from Settings.bcrypt_rounds. Hashing is CPU-bound, so the async variants
       push the work onto a worker thread and bound it with a deadline; the
       event loop keeps serving other requests while bcrypt grinds.

  Tokens: python-jose with HS256. A token carries only the identity id plus
       iat/exp. Verification raises InvalidTokenError for every failure mode
       (bad signature, malformed payload, expired) so callers cannot tell a
       forged token from an expired one.

  Verification tokens: issued with ttl 0, i.e. exp == iat. verify() refuses
       zero-lifetime tokens unless ignore_expiry=True, so only the
       email-verification flow accepts them.

  SECRET_KEY: passed in from core.config.get_settings() by whoever builds the
       codec (see api/main.py lifespan). Settings validates its length.

Layer rule: no imports from api/ or orgs/.
"""

from __future__ import annotations

import asyncio
import logging
from calendar import timegm
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenClaims, TokenData
from core.errors import HashingError, InvalidTokenError

logger = logging.getLogger("orgwarden.auth")

ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = 3600
VERIFICATION_TOKEN_TTL = 0
COOKIE_NAME = "Authorization"
# bcrypt rejects (or silently truncates) longer input.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


class PasswordHasher:
    """One-way salted bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 10, timeout_seconds: float = 5.0) -> None:
        self.rounds = rounds
        self.timeout_seconds = timeout_seconds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain. Raises HashingError if bcrypt fails.

        Callers reject passwords over MAX_PASSWORD_BYTES before getting here.
        """
        try:
            return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            logger.error("bcrypt hashing failed: %s", exc)
            raise HashingError() from exc

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. A malformed hash never matches."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    async def hash_async(self, plain: str) -> str:
        return await self._offload(self.hash, plain)

    async def verify_async(self, plain: str, hashed: str) -> bool:
        return await self._offload(self.verify, plain, hashed)

    async def _offload(self, fn, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("%s exceeded %.1fs deadline", fn.__name__, self.timeout_seconds)
            raise HashingError() from exc


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies compact expiring tokens carrying an identity id."""

    def __init__(self, secret_key: str, default_ttl: int = DEFAULT_TOKEN_TTL, secure_cookies: bool = False) -> None:
        self._secret_key = secret_key
        self.default_ttl = default_ttl
        self.secure_cookies = secure_cookies

    def issue(
        self,
        identity_id: str,
        ttl: Optional[int] = None,
        issued_at: Optional[datetime] = None,
    ) -> TokenData:
        """Sign {_id, iat, exp} for identity_id.

        Args:
            identity_id: Store id of the identity.
            ttl:         Lifetime in seconds. None means default_ttl; 0 issues a
                         verification token (see module docstring).
            issued_at:   Override the issue time. Same inputs give the same token.
        """
        ttl = self.default_ttl if ttl is None else ttl
        iat = issued_at or datetime.now(timezone.utc)
        payload = {
            "_id": identity_id,
            "iat": timegm(iat.utctimetuple()),
            "exp": timegm((iat + timedelta(seconds=ttl)).utctimetuple()),
        }
        return TokenData(token=jwt.encode(payload, self._secret_key, algorithm=ALGORITHM), expires_in=ttl)

    def verify(self, token: str, ignore_expiry: bool = False) -> TokenClaims:
        """Decode and verify token. Raises InvalidTokenError on any failure."""
        if not token:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": not ignore_expiry, "require_exp": True, "require_iat": True},
            )
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidTokenError() from exc
        # Zero-lifetime tokens are verification tokens, never sessions.
        if not ignore_expiry and payload["exp"] <= payload["iat"]:
            raise InvalidTokenError()
        identity_id = payload.get("_id")
        if not isinstance(identity_id, str) or not identity_id:
            raise InvalidTokenError()
        return TokenClaims(identity_id=identity_id)

    def create_cookie(self, token_data: TokenData) -> str:
        """Render the Set-Cookie value used to carry a session token.

        Secure is only added when secure_cookies is on (HTTPS deployments).
        """
        cookie = f"{COOKIE_NAME}={token_data.token}; HttpOnly; Max-Age={token_data.expires_in};"
        if self.secure_cookies:
            cookie += " Secure;"
        return cookie
