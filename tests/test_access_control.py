"""Tests for auth/access.py -- bootstrap idempotence and the permission gate.

Covers:
- bootstrap() creates SuperAdmin + User roles and one pre-verified root identity
- running bootstrap twice converges on the same roles and root
- an existing registration for the bootstrap email is promoted, not duplicated
- a drifted default role matrix is reconciled
- can()/enforce() honor organization context and ownership
"""

import pytest

from auth.access import DEFAULT_USER_ROLE, SUPER_ADMIN_ROLE, AccessControlService
from auth.models import Identity, Role
from auth.permissions import Action, PermissionMatrix, ResourceType
from auth.tokens import PasswordHasher
from core.config import Settings
from core.errors import UnauthorizedError


@pytest.fixture
def settings() -> Settings:
    return Settings(debug=True, bcrypt_rounds=4, superadmin_email="root@example.com", superadmin_password="s3cret-pw")


@pytest.fixture
def access(store, settings) -> AccessControlService:
    return AccessControlService(store, PasswordHasher(rounds=4), settings)


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_creates_default_roles_and_root(self, access, store):
        root = await access.bootstrap()
        super_admin = store.find_role(SUPER_ADMIN_ROLE)
        assert super_admin.resources == PermissionMatrix.full_access()
        assert store.find_role(DEFAULT_USER_ROLE) is not None
        assert root.email == "root@example.com"
        assert root.role_ids == [super_admin.id]
        assert root.email_verified_at is not None
        assert access.hasher.verify("s3cret-pw", root.hashed_password)

    @pytest.mark.asyncio
    async def test_idempotent(self, access, store):
        first = await access.bootstrap()
        second = await access.bootstrap()
        assert first.id == second.id
        assert store.count_roles(SUPER_ADMIN_ROLE) == 1
        assert store.count_roles(DEFAULT_USER_ROLE) == 1
        assert store.get_by_email("root@example.com").id == first.id
        assert len(store.find_role_holders(store.find_role(SUPER_ADMIN_ROLE).id)) == 1

    @pytest.mark.asyncio
    async def test_existing_holder_returned_unchanged(self, access, store):
        await access.init_access_control()
        role = store.find_role(SUPER_ADMIN_ROLE)
        holder_id = store.create_identity(Identity(email="boss@example.com", hashed_password="x", role_ids=[role.id]))
        root = await access.create_super_admin()
        assert root.id == holder_id
        assert store.get_by_email("root@example.com") is None

    @pytest.mark.asyncio
    async def test_existing_registration_promoted(self, access, store):
        await access.init_access_control()
        existing_id = store.create_identity(Identity(email="root@example.com", hashed_password="x"))
        root = await access.create_super_admin()
        assert root.id == existing_id
        assert store.find_role(SUPER_ADMIN_ROLE).id in root.role_ids
        assert [i.id for i in store.find_role_holders(store.find_role(SUPER_ADMIN_ROLE).id)] == [existing_id]

    @pytest.mark.asyncio
    async def test_drifted_default_role_reconciled(self, access, store):
        store.create_role(Role(name=SUPER_ADMIN_ROLE, resources=PermissionMatrix.from_dict({"User": {}})))
        await access.init_access_control()
        assert store.find_role(SUPER_ADMIN_ROLE).resources == PermissionMatrix.full_access()
        assert store.count_roles(SUPER_ADMIN_ROLE) == 1

    @pytest.mark.asyncio
    async def test_org_scoped_role_with_reserved_name_untouched(self, access, store):
        local_id = store.create_role(Role(name=SUPER_ADMIN_ROLE, organization_id="org-a"))
        await access.init_access_control()
        assert store.get_role(local_id).resources == PermissionMatrix()
        assert store.count_roles(SUPER_ADMIN_ROLE) == 1


class TestPermissionGate:
    @pytest.mark.asyncio
    async def test_super_admin_can_everything(self, access):
        root = await access.bootstrap()
        for resource in ResourceType:
            for action in Action:
                assert access.can(root, resource, action, organization_id="any-org")

    @pytest.mark.asyncio
    async def test_default_user_role_covers_own_record_only(self, access, store):
        await access.init_access_control()
        user_role = store.find_role(DEFAULT_USER_ROLE)
        uid = store.create_identity(Identity(email="u@example.com", hashed_password="x", role_ids=[user_role.id]))
        user = store.get_by_id(uid)
        assert access.can(user, ResourceType.user, Action.update, is_owner=lambda: True)
        assert not access.can(user, ResourceType.user, Action.update, is_owner=lambda: False)
        assert not access.can(user, ResourceType.organization, Action.read)

    def test_org_admin_limited_to_its_organization(self, access, store):
        role_id = store.create_role(
            Role(
                name="OrgAdmin",
                organization_id="org-a",
                resources=PermissionMatrix.from_dict({"Organization": {"update:any": ["*"]}}),
            )
        )
        uid = store.create_identity(Identity(email="admin@a.example", hashed_password="x", role_ids=[role_id]))
        admin = store.get_by_id(uid)
        assert access.enforce(admin, ResourceType.organization, Action.update, organization_id="org-a")
        with pytest.raises(UnauthorizedError):
            access.enforce(admin, ResourceType.organization, Action.update, organization_id="org-b")

    def test_identity_without_roles_denied(self, access, store):
        uid = store.create_identity(Identity(email="nobody@example.com", hashed_password="x"))
        with pytest.raises(UnauthorizedError) as excinfo:
            access.enforce(store.get_by_id(uid), ResourceType.user, Action.read)
        assert excinfo.value.status_code == 401
