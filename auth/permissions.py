"""
auth/permissions.py -- Permission matrix and role resolver.

A role's matrix maps resource type -> grant -> scope, where a grant is an
(action, possession) pair written "read:any" / "read:own" on the wire and a
scope is either "*" (every record) or an allow-list of record ids.

    {
        "Organization": {"read:any": ["*"], "update:any": ["61f7f6c6e2994443"]},
        "User": {"read:own": ["*"], "update:own": ["*"]},
    }

Resource types and actions are closed enums. Matrices are still data (loaded
from the store, assigned at bootstrap or by an administrator); only the
vocabulary is fixed, so a typo in a stored matrix fails at parse time instead
of silently never matching.

Resolution rules (resolve_permission):
  - deny by default: a resource type missing from every applicable role is
    denied; there is no explicit deny entry
  - organization-scoped roles only apply inside their own organization
  - grants are additive across roles; the broadest scope wins

Layer rule: pure logic, no I/O, no imports from api/, orgs/, or the stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Optional

if TYPE_CHECKING:
    from auth.models import Role

ANY_RECORD = "*"


class ResourceType(str, Enum):
    user = "User"
    role_permission = "RolePermission"
    organization = "Organization"


class Action(str, Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"


class Possession(str, Enum):
    any = "any"
    own = "own"


Grant = tuple[Action, Possession]


def grant_key(action: Action, possession: Possession) -> str:
    return f"{action.value}:{possession.value}"


def parse_grant_key(key: str) -> Grant:
    """Parse "update:own" into (Action.update, Possession.own). Raises ValueError."""
    action, sep, possession = key.partition(":")
    if not sep:
        raise ValueError(f"Grant {key!r} must look like 'action:any' or 'action:own'")
    return Action(action), Possession(possession)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scope:
    """Either every record (unrestricted) or an explicit set of record ids."""

    unrestricted: bool = False
    record_ids: frozenset[str] = frozenset()

    @classmethod
    def from_list(cls, values: Iterable[str]) -> "Scope":
        ids = frozenset(str(v) for v in values)
        if ANY_RECORD in ids:
            return UNRESTRICTED
        return cls(record_ids=ids)

    def is_empty(self) -> bool:
        return not self.unrestricted and not self.record_ids

    def union(self, other: "Scope") -> "Scope":
        if self.unrestricted or other.unrestricted:
            return UNRESTRICTED
        return Scope(record_ids=self.record_ids | other.record_ids)

    def allows(self, record_id: str) -> bool:
        return self.unrestricted or record_id in self.record_ids

    def to_list(self) -> list[str]:
        if self.unrestricted:
            return [ANY_RECORD]
        return sorted(self.record_ids)


UNRESTRICTED = Scope(unrestricted=True)
EMPTY_SCOPE = Scope()


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------


class PermissionMatrix:
    """Mutable resource -> grant -> scope table owned by a single Role."""

    def __init__(self, grants: Optional[Mapping[ResourceType, Mapping[Grant, Scope]]] = None) -> None:
        self._grants: dict[ResourceType, dict[Grant, Scope]] = {}
        for resource, entries in (grants or {}).items():
            self._grants[ResourceType(resource)] = dict(entries)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Iterable[str]]]) -> "PermissionMatrix":
        """Build a matrix from its JSON shape. Raises ValueError on unknown names."""
        matrix = cls()
        for resource_name, entries in (data or {}).items():
            try:
                resource = ResourceType(resource_name)
            except ValueError:
                raise ValueError(f"Unknown resource type {resource_name!r}") from None
            if not isinstance(entries, Mapping):
                raise ValueError(f"Grants for {resource_name!r} must be an object")
            # An entry with no grants still marks the resource as present.
            matrix._grants.setdefault(resource, {})
            for key, values in entries.items():
                if isinstance(values, str):
                    values = [values]
                action, possession = parse_grant_key(key)
                matrix.grant(resource, action, possession, Scope.from_list(values))
        return matrix

    @classmethod
    def full_access(cls) -> "PermissionMatrix":
        """Every resource type, every action, both possessions, unrestricted."""
        matrix = cls()
        for resource in ResourceType:
            for action in Action:
                for possession in Possession:
                    matrix.grant(resource, action, possession, UNRESTRICTED)
        return matrix

    def to_dict(self) -> dict[str, dict[str, list[str]]]:
        return {
            resource.value: {grant_key(a, p): scope.to_list() for (a, p), scope in entries.items()}
            for resource, entries in self._grants.items()
        }

    def grant(self, resource: ResourceType, action: Action, possession: Possession, scope: Scope) -> None:
        """Add scope to the grant, widening whatever is already there."""
        entries = self._grants.setdefault(ResourceType(resource), {})
        key = (Action(action), Possession(possession))
        existing = entries.get(key)
        entries[key] = scope if existing is None else existing.union(scope)

    def has_resource(self, resource: ResourceType) -> bool:
        return resource in self._grants

    def scope_for(self, resource: ResourceType, action: Action, possession: Possession) -> Optional[Scope]:
        """Return the granted scope, or None when the matrix says nothing."""
        entries = self._grants.get(resource)
        if entries is None:
            return None
        return entries.get((action, possession))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionMatrix):
            return NotImplemented
        return self._grants == other._grants

    def __repr__(self) -> str:
        return f"PermissionMatrix({self.to_dict()!r})"


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decision:
    """Outcome of a permission check: granted with a scope, or denied."""

    granted: bool
    scope: Scope = EMPTY_SCOPE

    def allows(self, record_id: str) -> bool:
        return self.granted and self.scope.allows(record_id)

    def __bool__(self) -> bool:
        return self.granted


DENIED = Decision(granted=False)


def applicable_roles(roles: Iterable[Role], organization_id: Optional[str] = None) -> list[Role]:
    """Global roles plus the roles scoped to organization_id (when given)."""
    return [
        role
        for role in roles
        if role.is_global or (organization_id is not None and role.organization_id == organization_id)
    ]


def resolve_permission(
    roles: Iterable[Role],
    resource: ResourceType,
    action: Action,
    organization_id: Optional[str] = None,
    is_owner: Optional[Callable[[], bool]] = None,
) -> Decision:
    """Merge the roles' matrices into a single decision for one resource/action.

    is_owner is the caller's ownership test for the target record. The "own"
    grants only count when it is supplied and returns True; it is evaluated at
    most once, and only if some role actually has an "own" grant.
    """
    resource = ResourceType(resource)
    action = Action(action)
    owner_checked: list[bool] = []

    def owns() -> bool:
        if is_owner is None:
            return False
        if not owner_checked:
            owner_checked.append(bool(is_owner()))
        return owner_checked[0]

    effective: Optional[Scope] = None
    for role in applicable_roles(roles, organization_id):
        matrix = role.resources
        if not matrix.has_resource(resource):
            continue
        candidates = [matrix.scope_for(resource, action, Possession.any)]
        own_scope = matrix.scope_for(resource, action, Possession.own)
        if own_scope is not None and owns():
            candidates.append(own_scope)
        for scope in candidates:
            if scope is None or scope.is_empty():
                continue
            effective = scope if effective is None else effective.union(scope)
        if effective is not None and effective.unrestricted:
            break

    if effective is None:
        return DENIED
    return Decision(granted=True, scope=effective)
