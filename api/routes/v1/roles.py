"""
api/routes/v1/roles.py -- Role administration routes.

Routes:
  GET  /roles                              -- list roles (read RolePermission)
  POST /roles                              -- create a role (create RolePermission)
  PUT  /roles/{role_id}/resources          -- replace a role's matrix (update RolePermission)
  POST /identities/{identity_id}/roles     -- assign a role to an identity

Organization-scoped roles are checked with their organization as context, so
an organization admin can manage that organization's roles without any global
grant. Assigning a role needs both "update User" on the target identity and
"update RolePermission" on the role; holding update:own on your own User
record is not enough to hand yourself SuperAdmin.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import IdentityResponse, RoleAssign, RoleCreate, RoleResourcesUpdate, RoleResponse
from auth.access import AccessControlService
from auth.dependencies import get_access_control, get_current_user
from auth.models import Identity, Role
from auth.permissions import Action, PermissionMatrix, ResourceType
from auth.store import IdentityStore
from core.errors import BadCredentialsError, ConflictError, NotFoundError, PersistenceFailureError, UnauthorizedError
from orgs.store import OrganizationStore

router = APIRouter(dependencies=[Depends(get_current_user)])


def _identity_store(request: Request) -> IdentityStore:
    return request.app.state.identity_store


def _org_store(request: Request) -> OrganizationStore:
    return request.app.state.org_store


def _parse_matrix(resources: dict) -> PermissionMatrix:
    try:
        return PermissionMatrix.from_dict(resources)
    except ValueError as exc:
        raise BadCredentialsError("Invalid permission matrix: {{detail}}", detail=str(exc)) from exc


def _enforce_on_role(access: AccessControlService, identity: Identity, action: Action, role: Role) -> None:
    decision = access.enforce(identity, ResourceType.role_permission, action, organization_id=role.organization_id)
    if not decision.allows(role.id):
        raise UnauthorizedError()


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(
    organization_id: str | None = None,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: IdentityStore = Depends(_identity_store),
) -> list[RoleResponse]:
    """List roles, optionally only those of one organization."""
    decision = access.enforce(identity, ResourceType.role_permission, Action.read, organization_id=organization_id)
    roles = store.list_roles(organization_id)
    return [RoleResponse.from_role(r) for r in roles if decision.allows(r.id)]


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    body: RoleCreate,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: IdentityStore = Depends(_identity_store),
    orgs: OrganizationStore = Depends(_org_store),
) -> RoleResponse:
    access.enforce(identity, ResourceType.role_permission, Action.create, organization_id=body.organization_id)
    if body.organization_id and orgs.get_organization(body.organization_id) is None:
        raise NotFoundError("Organization not found")
    matrix = _parse_matrix(body.resources)
    if store.find_role(body.name, body.organization_id) is not None:
        raise ConflictError("Role {{name}} already exists", name=body.name)
    try:
        role_id = store.create_role(Role(name=body.name, organization_id=body.organization_id, resources=matrix))
    except IntegrityError as exc:
        raise ConflictError("Role {{name}} already exists", name=body.name) from exc
    return RoleResponse.from_role(store.get_role(role_id))


@router.put("/roles/{role_id}/resources", response_model=RoleResponse)
def update_role_resources(
    role_id: str,
    body: RoleResourcesUpdate,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: IdentityStore = Depends(_identity_store),
) -> RoleResponse:
    role = store.get_role(role_id)
    if role is None:
        raise NotFoundError("Role not found")
    _enforce_on_role(access, identity, Action.update, role)
    updated = store.update_role_resources(role_id, _parse_matrix(body.resources))
    if updated is None:
        raise PersistenceFailureError("Role not found")
    return RoleResponse.from_role(updated)


@router.post("/identities/{identity_id}/roles", response_model=IdentityResponse)
def assign_role(
    identity_id: str,
    body: RoleAssign,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: IdentityStore = Depends(_identity_store),
) -> IdentityResponse:
    role = store.get_role(body.role_id)
    if role is None:
        raise NotFoundError("Role not found")
    decision = access.enforce(
        identity,
        ResourceType.user,
        Action.update,
        organization_id=role.organization_id,
        is_owner=lambda: identity_id == identity.id,
    )
    if not decision.allows(identity_id):
        raise UnauthorizedError()
    _enforce_on_role(access, identity, Action.update, role)

    if store.get_by_id(identity_id) is None:
        raise NotFoundError("User not found")
    store.assign_role(identity_id, role.id)
    updated = store.get_by_id(identity_id)
    if updated is None:
        raise PersistenceFailureError("Unable to update user")
    return IdentityResponse.from_identity(updated)
