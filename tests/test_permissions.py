"""Unit tests for auth/permissions.py -- matrix parsing and role resolution.

Covers:
- PermissionMatrix.from_dict() accepts the wire shape and rejects unknown names
- Scope union: "*" absorbs allow-lists, allow-lists merge
- resolve_permission(): deny by default, organization scoping, additive grants
- "own" grants only count when the ownership predicate says so
"""

import pytest

from auth.models import Role
from auth.permissions import (
    DENIED,
    UNRESTRICTED,
    Action,
    PermissionMatrix,
    Possession,
    ResourceType,
    Scope,
    parse_grant_key,
    resolve_permission,
)


def _role(resources: dict, organization_id=None, name="R") -> Role:
    return Role(name=name, resources=PermissionMatrix.from_dict(resources), organization_id=organization_id)


# ---------------------------------------------------------------------------
# Matrix parsing
# ---------------------------------------------------------------------------


class TestPermissionMatrix:
    def test_from_dict_round_trips_wire_shape(self):
        data = {"Organization": {"read:any": ["*"], "update:any": ["org-1"]}}
        matrix = PermissionMatrix.from_dict(data)
        assert matrix.scope_for(ResourceType.organization, Action.read, Possession.any) == UNRESTRICTED
        assert matrix.to_dict() == data

    def test_unknown_resource_type_rejected(self):
        with pytest.raises(ValueError, match="Unknown resource type"):
            PermissionMatrix.from_dict({"Invoice": {"read:any": ["*"]}})

    def test_unknown_action_rejected(self):
        with pytest.raises(ValueError):
            PermissionMatrix.from_dict({"User": {"destroy:any": ["*"]}})

    def test_malformed_grant_key_rejected(self):
        with pytest.raises(ValueError):
            parse_grant_key("readany")

    def test_empty_resource_entry_is_present_but_grants_nothing(self):
        matrix = PermissionMatrix.from_dict({"User": {}})
        assert matrix.has_resource(ResourceType.user)
        assert matrix.scope_for(ResourceType.user, Action.read, Possession.any) is None

    def test_full_access_covers_every_resource(self):
        matrix = PermissionMatrix.full_access()
        for resource in ResourceType:
            for action in Action:
                assert matrix.scope_for(resource, action, Possession.any) == UNRESTRICTED

    def test_grant_widens_existing_scope(self):
        matrix = PermissionMatrix()
        matrix.grant(ResourceType.user, Action.read, Possession.any, Scope.from_list(["a"]))
        matrix.grant(ResourceType.user, Action.read, Possession.any, Scope.from_list(["b"]))
        assert matrix.scope_for(ResourceType.user, Action.read, Possession.any).to_list() == ["a", "b"]


class TestScope:
    def test_wildcard_absorbs_allow_list(self):
        assert Scope.from_list(["x", "*"]) == UNRESTRICTED
        assert Scope.from_list(["x"]).union(UNRESTRICTED) == UNRESTRICTED

    def test_allow_lists_merge(self):
        merged = Scope.from_list(["a"]).union(Scope.from_list(["b"]))
        assert merged.allows("a") and merged.allows("b")
        assert not merged.allows("c")

    def test_empty_list_is_empty(self):
        assert Scope.from_list([]).is_empty()


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestResolvePermission:
    def test_no_roles_denied(self):
        assert resolve_permission([], ResourceType.user, Action.read) == DENIED

    def test_missing_resource_denied(self):
        roles = [_role({"User": {"read:any": ["*"]}})]
        assert not resolve_permission(roles, ResourceType.organization, Action.read)

    def test_missing_action_denied(self):
        roles = [_role({"Organization": {"read:any": ["*"]}})]
        assert not resolve_permission(roles, ResourceType.organization, Action.delete)

    def test_global_grant_applies_everywhere(self):
        roles = [_role({"Organization": {"update:any": ["*"]}})]
        decision = resolve_permission(roles, ResourceType.organization, Action.update, organization_id="org-b")
        assert decision.granted
        assert decision.allows("org-b")

    def test_org_scoped_role_only_inside_its_organization(self):
        roles = [_role({"Organization": {"update:any": ["*"]}}, organization_id="org-a")]
        assert resolve_permission(roles, ResourceType.organization, Action.update, organization_id="org-a")
        assert not resolve_permission(roles, ResourceType.organization, Action.update, organization_id="org-b")

    def test_org_scoped_role_ignored_without_context(self):
        roles = [_role({"Organization": {"read:any": ["*"]}}, organization_id="org-a")]
        assert not resolve_permission(roles, ResourceType.organization, Action.read)

    def test_grants_are_additive_across_roles(self):
        roles = [
            _role({"Organization": {"read:any": ["org-a"]}}, name="A"),
            _role({"Organization": {"read:any": ["org-b"]}}, name="B"),
        ]
        decision = resolve_permission(roles, ResourceType.organization, Action.read)
        assert decision.scope.to_list() == ["org-a", "org-b"]

    def test_broadest_scope_wins(self):
        roles = [
            _role({"Organization": {"read:any": ["org-a"]}}, name="A"),
            _role({"Organization": {"read:any": ["*"]}}, name="B"),
        ]
        decision = resolve_permission(roles, ResourceType.organization, Action.read)
        assert decision.scope.unrestricted

    def test_empty_allow_list_contributes_nothing(self):
        roles = [_role({"Organization": {"read:any": []}})]
        assert not resolve_permission(roles, ResourceType.organization, Action.read)

    def test_own_grant_requires_ownership(self):
        roles = [_role({"User": {"update:own": ["*"]}})]
        assert not resolve_permission(roles, ResourceType.user, Action.update)
        assert not resolve_permission(roles, ResourceType.user, Action.update, is_owner=lambda: False)
        assert resolve_permission(roles, ResourceType.user, Action.update, is_owner=lambda: True)

    def test_ownership_predicate_evaluated_at_most_once(self):
        calls = []

        def is_owner():
            calls.append(1)
            return True

        roles = [
            _role({"User": {"read:own": ["*"]}}, name="A"),
            _role({"User": {"read:own": ["*"]}}, name="B"),
        ]
        resolve_permission(roles, ResourceType.user, Action.read, is_owner=is_owner)
        assert len(calls) == 1

    def test_ownership_predicate_skipped_when_any_grant_suffices(self):
        def is_owner():
            raise AssertionError("should not be consulted")

        roles = [_role({"User": {"read:any": ["*"]}})]
        assert resolve_permission(roles, ResourceType.user, Action.read, is_owner=is_owner)
