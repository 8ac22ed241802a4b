"""
api/routes/v1/organizations.py -- Tenant CRUD routes.

Routes:
  POST   /organizations/createOrg                          -- create (201)
  GET    /organizations/getOrganizations                   -- list readable orgs
  GET    /organizations/getMyOrganizations                 -- orgs the caller has roles in
  PUT    /organizations/update/organization/{organization_id}
  DELETE /organizations/delete/organization/{organization_id}

Every handler except getMyOrganizations goes through AccessControlService
.enforce() with resource type Organization. Update and delete evaluate with the
target organization as context, so a role scoped to that organization counts;
the granted scope must also include the target id.

A read grant limited to an allow-list narrows getOrganizations to those ids.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import OrganizationCreate, OrganizationResponse, OrganizationUpdate
from auth.access import AccessControlService
from auth.dependencies import get_access_control, get_current_user
from auth.models import Identity
from auth.permissions import Action, ResourceType
from core.errors import ConflictError, NotFoundError, PersistenceFailureError, UnauthorizedError
from orgs.models import Organization
from orgs.store import OrganizationStore

# All routes require a session; the permission check is per handler.
router = APIRouter(dependencies=[Depends(get_current_user)])


def _org_store(request: Request) -> OrganizationStore:
    return request.app.state.org_store


def _enforce_on(
    access: AccessControlService, identity: Identity, action: Action, organization_id: str
) -> None:
    decision = access.enforce(identity, ResourceType.organization, action, organization_id=organization_id)
    if not decision.allows(organization_id):
        raise UnauthorizedError()


@router.post("/organizations/createOrg", response_model=OrganizationResponse, status_code=201)
def create_organization(
    body: OrganizationCreate,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: OrganizationStore = Depends(_org_store),
) -> OrganizationResponse:
    access.enforce(identity, ResourceType.organization, Action.create)
    if store.get_by_name(body.name) is not None:
        raise ConflictError("Organization {{name}} already exists", name=body.name)
    try:
        org_id = store.create_organization(Organization(name=body.name, description=body.description))
    except IntegrityError as exc:
        raise ConflictError("Organization {{name}} already exists", name=body.name) from exc
    return OrganizationResponse.from_organization(store.get_organization(org_id))


@router.get("/organizations/getOrganizations", response_model=list[OrganizationResponse])
def list_organizations(
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: OrganizationStore = Depends(_org_store),
) -> list[OrganizationResponse]:
    decision = access.enforce(identity, ResourceType.organization, Action.read)
    ids = None if decision.scope.unrestricted else decision.scope.record_ids
    return [OrganizationResponse.from_organization(o) for o in store.list_organizations(ids)]


@router.get("/organizations/getMyOrganizations", response_model=list[OrganizationResponse])
def my_organizations(
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: OrganizationStore = Depends(_org_store),
) -> list[OrganizationResponse]:
    """Organizations the caller holds an organization-scoped role in."""
    org_ids = {role.organization_id for role in access.roles_for(identity) if role.organization_id}
    if not org_ids:
        return []
    return [OrganizationResponse.from_organization(o) for o in store.list_organizations(org_ids)]


@router.put("/organizations/update/organization/{organization_id}", response_model=OrganizationResponse)
def update_organization(
    organization_id: str,
    body: OrganizationUpdate,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: OrganizationStore = Depends(_org_store),
) -> OrganizationResponse:
    _enforce_on(access, identity, Action.update, organization_id)
    if store.get_organization(organization_id) is None:
        raise NotFoundError("Organization not found")
    clash = store.get_by_name(body.name)
    if clash is not None and clash.id != organization_id:
        raise ConflictError("Organization {{name}} already exists", name=body.name)
    updated = store.update_organization(organization_id, name=body.name, description=body.description)
    if updated is None:
        raise PersistenceFailureError("Unable to update organization")
    return OrganizationResponse.from_organization(updated)


@router.delete("/organizations/delete/organization/{organization_id}", response_model=OrganizationResponse)
def delete_organization(
    organization_id: str,
    identity: Identity = Depends(get_current_user),
    access: AccessControlService = Depends(get_access_control),
    store: OrganizationStore = Depends(_org_store),
) -> OrganizationResponse:
    _enforce_on(access, identity, Action.delete, organization_id)
    deleted = store.delete_organization(organization_id)
    if deleted is None:
        raise NotFoundError("Organization not found")
    return OrganizationResponse.from_organization(deleted)
