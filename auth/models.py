"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these dataclasses own the domain shape.

Layer rule: no imports from api/ or orgs/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from auth.permissions import PermissionMatrix


@dataclass
class Identity:
    """An authenticated principal (user account).

    role_ids is ordered: the order roles were assigned in. The ids are weak
    references -- a role deleted out from under an identity is simply skipped
    when roles are hydrated.

    email_verified_at is None until the verification link is followed.
    """

    email: str
    hashed_password: str
    full_name: str = ""
    id: str | None = None
    email_verified_at: str | None = None  # ISO 8601
    role_ids: list[str] = field(default_factory=list)
    created_at: str | None = None


@dataclass
class Role:
    """A named permission bundle, global when organization_id is None."""

    name: str
    resources: PermissionMatrix = field(default_factory=PermissionMatrix)
    organization_id: str | None = None
    id: str | None = None
    created_at: str | None = None

    @property
    def is_global(self) -> bool:
        return self.organization_id is None


@dataclass
class Credentials:
    """Credential payload supplied by the HTTP layer."""

    email: str = ""
    password: str = ""
    full_name: str = ""

    def is_empty(self) -> bool:
        return not self.email or not self.password


@dataclass(frozen=True)
class TokenData:
    """A signed token plus the ttl it was issued with (0 = verification token)."""

    token: str
    expires_in: int


@dataclass(frozen=True)
class TokenClaims:
    """Data stored in a token: only the identity reference."""

    identity_id: str
