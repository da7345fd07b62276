"""
Tests for user and admin management, the audit log and startup seeding.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.db.models import Admin, AdminConfig, AiModelApiKey, AuditLog
from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.domain import UserAccountSummary
from app.permissions import ROUTE_REQUIRED_PERMISSIONS
from app.services import bootstrap as bootstrap_module
from app.services.admin_config import AdminConfigService
from app.services.admins import AdminService
from app.services.api_keys import AiModelApiKeyService
from app.services.audit_log import AuditLogService
from app.services.passwords import PasswordService
from app.services.permission_registry import PermissionRegistryService
from app.services.users import UserService
from factories import make_account, make_admin, make_result, make_user


@pytest.fixture
def passwords() -> MagicMock:
    passwords = MagicMock(spec=PasswordService)
    passwords.hash.side_effect = lambda plaintext: f"hashed:{plaintext}"
    return passwords


@pytest.fixture
def registry() -> AsyncMock:
    return AsyncMock(spec=PermissionRegistryService)


@pytest.fixture
def admins(db_session, registry, passwords, audit) -> AdminService:
    return AdminService(db_session, registry, passwords, audit)


@pytest.fixture
def users(db_session, config_service, audit) -> UserService:
    return UserService(db_session, config_service, audit)


class TestUserService:
    async def test_missing_profile(self, users, db_session):
        db_session.get.return_value = None

        with pytest.raises(NotFoundError, match="User not found"):
            await users.get_profile(1)

    async def test_update_profile(self, users, db_session):
        user = make_user()
        db_session.get.return_value = user
        db_session.execute.return_value = make_result(scalar=None)

        await users.update_profile(1, name=" Grace ", email="Grace@Example.com")

        assert user.name == "Grace"
        assert user.email == "grace@example.com"
        db_session.commit.assert_awaited_once()

    async def test_email_taken(self, users, db_session):
        db_session.get.return_value = make_user()
        db_session.execute.return_value = make_result(scalar=2)

        with pytest.raises(ConflictError):
            await users.update_profile(1, email="taken@example.com")

    async def test_invalid_email(self, users, db_session):
        db_session.get.return_value = make_user()

        with pytest.raises(ValidationError):
            await users.update_profile(1, email="nope")

    async def test_delete_removes_keys_account_and_user(self, users, db_session, audit):
        user = make_user()
        db_session.get.return_value = user

        await users.delete_account(1, actor=1)

        statements = [str(call.args[0]) for call in db_session.execute.await_args_list]
        assert any("DELETE FROM user_api_keys" in s for s in statements)
        assert any("DELETE FROM accounts" in s for s in statements)
        db_session.delete.assert_awaited_once_with(user)
        db_session.commit.assert_awaited_once()

    async def test_list_users_joins_accounts(self, users, db_session):
        db_session.execute.return_value = make_result(
            rows=[(make_user(user_id=1), make_account(user_id=1, balance=40))]
        )

        listing = await users.list_users()

        assert len(listing) == 1
        assert isinstance(listing[0], UserAccountSummary)
        assert listing[0].balance == 40
        assert listing[0].email == "user@example.com"

    async def test_own_key_toggle(self, users, config_service):
        config_service.values["user_use_own_api_key"] = "false"

        assert await users.get_use_own_api_key() is False


class TestAdminService:
    async def test_create_limited_admin_with_grants(
        self, admins, db_session, registry, super_admin
    ):
        db_session.execute.return_value = make_result(scalar=None)

        admin = await admins.create_admin(
            "Ops", "ops@example.com", "secret1", "2", [1, 2], actor=super_admin
        )

        assert isinstance(admin, Admin)
        assert admin.password_hash == "hashed:secret1"
        registry.assign_permissions.assert_awaited_once()
        db_session.commit.assert_awaited_once()

    async def test_super_admin_needs_no_grants(self, admins, db_session, registry, super_admin):
        db_session.execute.return_value = make_result(scalar=None)

        admin = await admins.create_admin(
            "Root", "root@example.com", "secret1", "1", [], super_admin
        )

        assert admin.user_type == "1"
        registry.assign_permissions.assert_not_awaited()

    async def test_limited_admin_cannot_create_super_admin(
        self, admins, db_session, limited_admin
    ):
        with pytest.raises(ForbiddenError, match="Only super-admins"):
            await admins.create_admin(
                "Root", "root@example.com", "secret1", "1", [], limited_admin
            )
        db_session.add.assert_not_called()

    async def test_limited_admin_requires_permissions(self, admins, super_admin):
        with pytest.raises(ValidationError, match="Permission IDs are required"):
            await admins.create_admin("Ops", "ops@example.com", "secret1", "2", [], super_admin)

    async def test_unknown_grant_rolls_back(self, admins, db_session, registry, super_admin):
        db_session.execute.return_value = make_result(scalar=None)
        registry.assign_permissions.side_effect = ValidationError("Unknown permission IDs: 99")

        with pytest.raises(ValidationError):
            await admins.create_admin(
                "Ops", "ops@example.com", "secret1", "2", [99], super_admin
            )
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()

    async def test_duplicate_email(self, admins, db_session, super_admin):
        db_session.execute.return_value = make_result(scalar=make_admin())

        with pytest.raises(ConflictError):
            await admins.create_admin("A", "admin@example.com", "secret1", "1", [], super_admin)

    async def test_profile_password_too_short(self, admins, db_session, super_admin):
        db_session.get.return_value = make_admin()

        with pytest.raises(ValidationError):
            await admins.update_admin_profile(1, super_admin, password="123")

    async def test_limited_admin_cannot_edit_super_admin(
        self, admins, db_session, limited_admin
    ):
        target = make_admin(admin_id=1, user_type="1", password_hash="hashed:original")
        db_session.get.return_value = target

        with pytest.raises(ForbiddenError, match="update a super-admin"):
            await admins.update_admin_profile(1, limited_admin, password="attacker-pw")

        assert target.password_hash == "hashed:original"
        db_session.commit.assert_not_awaited()

    async def test_limited_admin_edits_limited_admin(self, admins, db_session, limited_admin):
        target = make_admin(admin_id=3, user_type="2")
        db_session.get.return_value = target

        await admins.update_admin_profile(3, limited_admin, name="Renamed")

        assert target.name == "Renamed"
        db_session.commit.assert_awaited_once()


class TestDeleteAdmin:
    @pytest.fixture
    def keys(self) -> AsyncMock:
        keys = AsyncMock(spec=AiModelApiKeyService)
        keys.remove_keys_for_admin.return_value = 2
        return keys

    @pytest.fixture
    def configs(self) -> AsyncMock:
        configs = AsyncMock(spec=AdminConfigService)
        configs.reassign_owner.return_value = 3
        return configs

    async def test_cannot_delete_self(self, admins, db_session, super_admin, keys, configs):
        with pytest.raises(ForbiddenError):
            await admins.delete_admin(1, super_admin, keys, configs)
        db_session.delete.assert_not_awaited()
        keys.remove_keys_for_admin.assert_not_awaited()

    async def test_removes_keys_and_hands_config_to_actor(
        self, admins, db_session, super_admin, keys, configs, audit
    ):
        target = make_admin(admin_id=2, user_type="2")
        db_session.get.return_value = target

        await admins.delete_admin(2, super_admin, keys, configs)

        keys.remove_keys_for_admin.assert_awaited_once_with(2)
        configs.reassign_owner.assert_awaited_once_with(2, 1)
        db_session.delete.assert_awaited_once_with(target)
        db_session.commit.assert_awaited_once()
        assert "available_models_removed=2" in audit.record.await_args.args[2]

    async def test_limited_admin_cannot_delete_super_admin(
        self, admins, db_session, limited_admin, keys, configs
    ):
        db_session.get.return_value = make_admin(admin_id=1, user_type="1")

        with pytest.raises(ForbiddenError, match="delete a super-admin"):
            await admins.delete_admin(1, limited_admin, keys, configs)
        keys.remove_keys_for_admin.assert_not_awaited()
        db_session.delete.assert_not_awaited()

    async def test_cleanup_failure_rolls_back(
        self, admins, db_session, super_admin, keys, configs
    ):
        db_session.get.return_value = make_admin(admin_id=2, user_type="2")
        configs.reassign_owner.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(OperationalError):
            await admins.delete_admin(2, super_admin, keys, configs)
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()

    @pytest.mark.parametrize("table", [AiModelApiKey.__table__, AdminConfig.__table__])
    def test_owner_rows_do_not_cascade_in_the_store(self, table):
        (foreign_key,) = table.c.added_by.foreign_keys
        assert foreign_key.ondelete is None


class TestEnsureDefaultAdmin:
    async def test_existing_admin_is_reused(self, admins, db_session):
        existing = make_admin()
        db_session.execute.return_value = make_result(scalar=existing)

        assert await admins.ensure_default_admin("Admin", "admin@example.com", "pw") is existing
        db_session.add.assert_not_called()

    async def test_creates_super_admin(self, admins, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        admin = await admins.ensure_default_admin("Admin", "Admin@Example.com", "secret1")

        assert admin.user_type == "1"
        assert admin.email == "admin@example.com"
        db_session.commit.assert_awaited_once()

    async def test_missing_password_skips(self, admins, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        assert await admins.ensure_default_admin("Admin", "admin@example.com", "") is None

    async def test_without_configured_email_uses_first_super_admin(self, admins, db_session):
        first = make_admin(admin_id=1)
        db_session.execute.return_value = make_result(scalar=first)

        assert await admins.ensure_default_admin("", "", "") is first


class TestAuditLogService:
    def make_factory(self, session):
        @asynccontextmanager
        async def factory():
            yield session

        return factory

    async def test_record_persists_entry(self, db_session):
        audit = AuditLogService(self.make_factory(db_session))

        await audit.record(3, "login", None, "Auth")

        entry = db_session.add.call_args.args[0]
        assert isinstance(entry, AuditLog)
        assert entry.user == "3"
        assert entry.level == "info"
        db_session.commit.assert_awaited_once()

    async def test_write_failure_is_swallowed(self, db_session):
        db_session.commit.side_effect = OperationalError("INSERT", {}, Exception("down"))
        audit = AuditLogService(self.make_factory(db_session))

        await audit.record("system", "ACCESS_DENIED", "x", "ipControl", level="error")


class TestBootstrap:
    @pytest.fixture
    def seeded(self, monkeypatch, db_session, settings_for_bootstrap):
        registry = AsyncMock(spec=PermissionRegistryService)
        admin_service = AsyncMock(spec=AdminService)
        admin_service.ensure_default_admin.return_value = make_admin()
        config = AsyncMock()
        plans = AsyncMock()

        monkeypatch.setattr(bootstrap_module, "PermissionRegistryService", lambda s, a: registry)
        monkeypatch.setattr(bootstrap_module, "AdminService", lambda s, r, p, a: admin_service)
        monkeypatch.setattr(bootstrap_module, "AdminConfigService", lambda s, a: config)
        monkeypatch.setattr(bootstrap_module, "SubscriptionService", lambda s, a: plans)

        @asynccontextmanager
        async def session():
            yield db_session

        database = MagicMock()
        database.session = session
        return database, registry, admin_service, config, plans

    @pytest.fixture
    def settings_for_bootstrap(self):
        settings = MagicMock()
        settings.default_admin_name = "Admin"
        settings.default_admin_email = "admin@example.com"
        settings.default_admin_password = "secret1"
        settings.free_plan_monthly_credit = 100
        return settings

    async def test_seeds_everything(self, seeded, settings_for_bootstrap):
        database, registry, admin_service, config, plans = seeded

        await bootstrap_module.bootstrap(database, settings_for_bootstrap)

        registry.sync_catalog.assert_awaited_once_with(ROUTE_REQUIRED_PERMISSIONS)
        admin_service.ensure_default_admin.assert_awaited_once_with(
            "Admin", "admin@example.com", "secret1"
        )
        config.ensure_defaults.assert_awaited_once_with(1)
        plans.ensure_free_plan.assert_awaited_once_with(100)

    async def test_config_skipped_without_admin(self, seeded, settings_for_bootstrap):
        database, _, admin_service, config, plans = seeded
        admin_service.ensure_default_admin.return_value = None

        await bootstrap_module.bootstrap(database, settings_for_bootstrap)

        config.ensure_defaults.assert_not_awaited()
        plans.ensure_free_plan.assert_awaited_once()
