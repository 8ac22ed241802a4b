"""
API request and response models for OrgWarden REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are separate
from the dataclasses in auth/models.py and orgs/models.py, which own the
internal domain representation. Route handlers map between the two.

Credential fields default to "" rather than being required: an empty payload
is a 400 "Credentials are required" from the auth service, not a 422 schema
error.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity, Role
from orgs.models import Organization

# bcrypt only reads the first 72 bytes of a password.
_MAX_PASSWORD_LENGTH = 72

# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /login and POST /logout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=_MAX_PASSWORD_LENGTH)


class SignupRequest(CredentialsRequest):
    """Request body for POST /signup."""

    full_name: str = Field(default="", max_length=255)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """Public view of an identity. The password hash never leaves the server."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    full_name: str
    email_verified_at: Optional[str]
    role_ids: list[str]
    created_at: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            full_name=identity.full_name,
            email_verified_at=identity.email_verified_at,
            role_ids=list(identity.role_ids),
            created_at=identity.created_at or "",
        )


class SessionResponse(BaseModel):
    """Response for POST /signup and POST /login. The token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    data: IdentityResponse
    token: str
    expires_in: int
    message: str


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class OrganizationCreate(BaseModel):
    """Request body for POST /organizations/createOrg."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)


class OrganizationUpdate(OrganizationCreate):
    """Request body for PUT /organizations/update/organization/{id}."""


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    created_at: str

    @classmethod
    def from_organization(cls, org: Organization) -> "OrganizationResponse":
        return cls(id=org.id, name=org.name, description=org.description, created_at=org.created_at)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

# {"Organization": {"read:any": ["*"]}} -- parsed by PermissionMatrix.from_dict.
ResourcesPayload = dict[str, dict[str, list[str]]]


class RoleCreate(BaseModel):
    """Request body for POST /roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    organization_id: Optional[str] = Field(default=None, max_length=32)
    resources: ResourcesPayload = Field(default_factory=dict)


class RoleResourcesUpdate(BaseModel):
    """Request body for PUT /roles/{role_id}/resources."""

    resources: ResourcesPayload


class RoleAssign(BaseModel):
    """Request body for POST /identities/{identity_id}/roles."""

    role_id: str = Field(min_length=1, max_length=32)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    organization_id: Optional[str]
    resources: ResourcesPayload
    created_at: str

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            organization_id=role.organization_id,
            resources=role.resources.to_dict(),
            created_at=role.created_at or "",
        )


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
