"""Unit tests for auth/store.py and orgs/store.py.

Covers:
- Identity CRUD, unique email, ordered role references
- Role uniqueness per (name, organization) including global roles
- update_identity() / update_role_resources() return None for unknown ids
- Organization CRUD, unique name, id-filtered listing
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Identity, Role
from auth.permissions import PermissionMatrix
from orgs.models import Organization
from orgs.store import OrganizationStore


def _identity(email="a@example.com", **kwargs) -> Identity:
    return Identity(email=email, hashed_password="$2b$04$fakefakefakefakefakefu", **kwargs)


# ---------------------------------------------------------------------------
# IdentityStore -- identities
# ---------------------------------------------------------------------------


class TestIdentities:
    def test_create_and_fetch(self, store):
        identity_id = store.create_identity(_identity(full_name="Ada"))
        fetched = store.get_by_id(identity_id)
        assert fetched.email == "a@example.com"
        assert fetched.full_name == "Ada"
        assert fetched.email_verified_at is None
        assert fetched.created_at
        assert store.get_by_email("a@example.com").id == identity_id

    def test_missing_lookups_return_none(self, store):
        assert store.get_by_id("nope") is None
        assert store.get_by_email("nobody@example.com") is None

    def test_duplicate_email_rejected(self, store):
        store.create_identity(_identity())
        with pytest.raises(IntegrityError):
            store.create_identity(_identity())

    def test_update_identity(self, store):
        identity_id = store.create_identity(_identity())
        updated = store.update_identity(identity_id, email_verified_at="2024-01-01T00:00:00+00:00")
        assert updated.email_verified_at == "2024-01-01T00:00:00+00:00"

    def test_update_unknown_identity_returns_none(self, store):
        assert store.update_identity("nope", full_name="x") is None

    def test_update_rejects_unknown_fields(self, store):
        identity_id = store.create_identity(_identity())
        with pytest.raises(ValueError):
            store.update_identity(identity_id, email="b@example.com")


# ---------------------------------------------------------------------------
# IdentityStore -- roles
# ---------------------------------------------------------------------------


class TestRoles:
    def test_role_matrix_persisted(self, store):
        matrix = PermissionMatrix.from_dict({"Organization": {"read:any": ["*"]}})
        role_id = store.create_role(Role(name="Reader", resources=matrix))
        assert store.get_role(role_id).resources == matrix
        assert store.find_role("Reader").id == role_id

    def test_duplicate_global_role_rejected(self, store):
        store.create_role(Role(name="Admin"))
        with pytest.raises(IntegrityError):
            store.create_role(Role(name="Admin"))

    def test_same_name_allowed_in_different_scopes(self, store):
        store.create_role(Role(name="Admin"))
        store.create_role(Role(name="Admin", organization_id="org-a"))
        store.create_role(Role(name="Admin", organization_id="org-b"))
        assert store.count_roles("Admin") == 1
        assert store.count_roles("Admin", "org-a") == 1
        assert store.find_role("Admin", "org-b").organization_id == "org-b"

    def test_role_references_keep_assignment_order(self, store):
        first = store.create_role(Role(name="First"))
        second = store.create_role(Role(name="Second"))
        identity_id = store.create_identity(_identity(role_ids=[second]))
        assert store.assign_role(identity_id, first)
        assert not store.assign_role(identity_id, first)
        assert store.get_by_id(identity_id).role_ids == [second, first]
        assert [r.name for r in store.get_roles([second, first])] == ["Second", "First"]

    def test_dangling_role_reference_skipped(self, store):
        role_id = store.create_role(Role(name="Real"))
        assert [r.id for r in store.get_roles(["gone", role_id])] == [role_id]

    def test_find_role_holders(self, store):
        role_id = store.create_role(Role(name="Holder"))
        holder = store.create_identity(_identity("h@example.com", role_ids=[role_id]))
        store.create_identity(_identity("other@example.com"))
        assert [i.id for i in store.find_role_holders(role_id)] == [holder]

    def test_list_roles_by_organization(self, store):
        store.create_role(Role(name="Global"))
        store.create_role(Role(name="Local", organization_id="org-a"))
        assert {r.name for r in store.list_roles()} == {"Global", "Local"}
        assert [r.name for r in store.list_roles("org-a")] == ["Local"]

    def test_update_unknown_role_returns_none(self, store):
        assert store.update_role_resources("nope", PermissionMatrix()) is None


# ---------------------------------------------------------------------------
# OrganizationStore
# ---------------------------------------------------------------------------


@pytest.fixture
def orgs():
    s = OrganizationStore("sqlite:///:memory:")
    yield s
    s.close()


class TestOrganizationStore:
    def test_create_and_fetch(self, orgs):
        org_id = orgs.create_organization(Organization(name="Acme", description="Widgets"))
        org = orgs.get_organization(org_id)
        assert (org.name, org.description) == ("Acme", "Widgets")
        assert orgs.get_by_name("Acme").id == org_id

    def test_duplicate_name_rejected(self, orgs):
        orgs.create_organization(Organization(name="Acme"))
        with pytest.raises(IntegrityError):
            orgs.create_organization(Organization(name="Acme"))

    def test_list_filtered_by_ids(self, orgs):
        a = orgs.create_organization(Organization(name="A"))
        orgs.create_organization(Organization(name="B"))
        assert [o.name for o in orgs.list_organizations()] == ["A", "B"]
        assert [o.id for o in orgs.list_organizations([a])] == [a]
        assert orgs.list_organizations([]) == []

    def test_update_and_delete(self, orgs):
        org_id = orgs.create_organization(Organization(name="Old"))
        assert orgs.update_organization(org_id, name="New").name == "New"
        assert orgs.delete_organization(org_id).name == "New"
        assert orgs.get_organization(org_id) is None
        assert orgs.delete_organization(org_id) is None
        assert orgs.update_organization(org_id, name="Ghost") is None
