"""
auth/access.py -- Access control: default-role bootstrap and permission checks.

Bootstrap runs once from the application lifespan, before traffic is accepted:

    access = AccessControlService(store, hasher, settings)
    await access.bootstrap()

It is idempotent instead of locked. Running it twice, or in two processes at
once, converges on one SuperAdmin role and one root identity:
  - canonical roles are found by (name, global scope) before inserting
  - a lost insert race (IntegrityError) re-reads the winner's record
  - a canonical role whose matrix drifted is reconciled in place

can() / enforce() are the single authorization gate. Route handlers call
enforce() before reading or mutating scoped resources.

Layer rule: no imports from api/ or orgs/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Identity, Role
from auth.permissions import (
    Action,
    Decision,
    PermissionMatrix,
    Possession,
    ResourceType,
    UNRESTRICTED,
    resolve_permission,
)
from auth.store import IdentityStore
from auth.tokens import PasswordHasher
from core.config import Settings
from core.errors import UnauthorizedError

logger = logging.getLogger("orgwarden.access")

SUPER_ADMIN_ROLE = "SuperAdmin"
DEFAULT_USER_ROLE = "User"


def _user_matrix() -> PermissionMatrix:
    matrix = PermissionMatrix()
    matrix.grant(ResourceType.user, Action.read, Possession.own, UNRESTRICTED)
    matrix.grant(ResourceType.user, Action.update, Possession.own, UNRESTRICTED)
    return matrix


# Canonical global roles, rebuilt on every bootstrap so new resource types
# reach existing deployments.
DEFAULT_ROLES: dict[str, Callable[[], PermissionMatrix]] = {
    SUPER_ADMIN_ROLE: PermissionMatrix.full_access,
    DEFAULT_USER_ROLE: _user_matrix,
}


class AccessControlService:
    """Owns default roles, the root identity, and the permission gate."""

    def __init__(self, store: IdentityStore, hasher: PasswordHasher, settings: Settings) -> None:
        self.store = store
        self.hasher = hasher
        self.settings = settings

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def bootstrap(self) -> Identity:
        """Ensure default roles and the root identity exist. Returns the root."""
        await self.init_access_control()
        return await self.create_super_admin()

    async def init_access_control(self) -> list[Role]:
        """Ensure every canonical role exists with its canonical matrix."""
        return [self._ensure_role(name, build()) for name, build in DEFAULT_ROLES.items()]

    async def create_super_admin(self) -> Identity:
        """Ensure exactly one identity holds SuperAdmin and return it.

        An existing holder is returned unchanged. Otherwise the configured
        bootstrap email is promoted if it is already registered, or created.
        """
        role = self.store.find_role(SUPER_ADMIN_ROLE) or self._ensure_role(
            SUPER_ADMIN_ROLE, DEFAULT_ROLES[SUPER_ADMIN_ROLE]()
        )
        holders = self.store.find_role_holders(role.id)
        if holders:
            if len(holders) > 1:
                logger.warning("%d identities hold %s; using the oldest", len(holders), SUPER_ADMIN_ROLE)
            return holders[0]

        email = self.settings.superadmin_email
        identity = self.store.get_by_email(email)
        if identity is None:
            hashed = await self.hasher.hash_async(self.settings.superadmin_password)
            try:
                self.store.create_identity(
                    Identity(
                        email=email,
                        hashed_password=hashed,
                        full_name=self.settings.superadmin_name,
                        email_verified_at=datetime.now(timezone.utc).isoformat(),
                        role_ids=[role.id],
                    )
                )
                logger.info("Created root identity %s", email)
            except IntegrityError:
                logger.info("Root identity %s was created concurrently", email)
            identity = self.store.get_by_email(email)
        if identity is not None and role.id not in identity.role_ids:
            self.store.assign_role(identity.id, role.id)
            logger.info("Granted %s to existing identity %s", SUPER_ADMIN_ROLE, email)
            identity = self.store.get_by_id(identity.id)
        return identity

    def _ensure_role(self, name: str, matrix: PermissionMatrix) -> Role:
        role = self.store.find_role(name)
        if role is None:
            try:
                self.store.create_role(Role(name=name, resources=matrix))
                logger.info("Created default role %s", name)
            except IntegrityError:
                logger.info("Default role %s was created concurrently", name)
            role = self.store.find_role(name)
        elif role.resources != matrix:
            role = self.store.update_role_resources(role.id, matrix) or role
            logger.info("Reconciled permissions of default role %s", name)
        return role

    # ------------------------------------------------------------------
    # Permission checks
    # ------------------------------------------------------------------

    def roles_for(self, identity: Identity) -> list[Role]:
        """Hydrate the identity's role references in assignment order."""
        return self.store.get_roles(identity.role_ids)

    def can(
        self,
        identity: Identity,
        resource: ResourceType,
        action: Action,
        organization_id: Optional[str] = None,
        is_owner: Optional[Callable[[], bool]] = None,
    ) -> Decision:
        decision = resolve_permission(self.roles_for(identity), resource, action, organization_id, is_owner)
        if not decision:
            logger.debug(
                "Denied %s %s:%s (org=%s) for %s",
                identity.id,
                ResourceType(resource).value,
                Action(action).value,
                organization_id,
                identity.email,
            )
        return decision

    def enforce(
        self,
        identity: Identity,
        resource: ResourceType,
        action: Action,
        organization_id: Optional[str] = None,
        is_owner: Optional[Callable[[], bool]] = None,
    ) -> Decision:
        """Like can(), but raise UnauthorizedError when denied."""
        decision = self.can(identity, resource, action, organization_id, is_owner)
        if not decision:
            raise UnauthorizedError()
        return decision
