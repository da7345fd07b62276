"""
Tests for PermissionRegistryService and the permission catalogue.
"""

import pytest

from app.config import ConfigurationError
from app.db.models import AdminPermission, Permission as PermissionRow
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.permissions import (
    ALL_PERMISSION_NAMES,
    Permission,
    register_route_permission,
    unknown_permission_names,
)
from app.services.permission_registry import PermissionRegistryService
from factories import make_admin, make_result


@pytest.fixture
def registry(db_session, audit) -> PermissionRegistryService:
    return PermissionRegistryService(db_session, audit)


class TestCatalogue:
    def test_names_are_unique(self):
        assert len(ALL_PERMISSION_NAMES) == len(list(Permission))

    def test_unknown_names(self):
        assert unknown_permission_names(["user:read", "user:fly"]) == {"user:fly"}

    def test_route_registration_rejects_strings(self):
        with pytest.raises(TypeError):
            register_route_permission("user:read")  # type: ignore[arg-type]

    def test_every_member_is_required_by_a_route(self):
        import app.main  # noqa: F401  (registers every router)
        from app.permissions import ROUTE_REQUIRED_PERMISSIONS

        assert ROUTE_REQUIRED_PERMISSIONS == set(Permission)


class TestReplaceAdminPermissions:
    async def test_empty_list_rejected(self, registry, db_session):
        with pytest.raises(ValidationError, match="Permission IDs are required"):
            await registry.replace_admin_permissions(2, [], actor_id=1)
        db_session.execute.assert_not_awaited()
        db_session.commit.assert_not_awaited()

    async def test_unknown_admin(self, registry, db_session):
        db_session.get.return_value = None

        with pytest.raises(NotFoundError, match="Admin not found"):
            await registry.replace_admin_permissions(99, [1], actor_id=1)

    async def test_unknown_permission_ids(self, registry, db_session):
        db_session.get.return_value = make_admin(admin_id=2, user_type="2")
        db_session.execute.return_value = make_result(scalars=[1])

        with pytest.raises(ValidationError, match="Unknown permission IDs"):
            await registry.replace_admin_permissions(2, [1, 42], actor_id=1)
        db_session.commit.assert_not_awaited()

    async def test_full_replacement(self, registry, db_session, audit):
        db_session.get.return_value = make_admin(admin_id=2, user_type="2")
        db_session.execute.side_effect = [make_result(scalars=[1, 3]), make_result()]

        assigned = await registry.replace_admin_permissions(2, [3, 1, 3], actor_id=1)

        assert assigned == [1, 3]
        delete_stmt = db_session.execute.await_args_list[1].args[0]
        assert "DELETE FROM admin_permissions" in str(delete_stmt)
        rows = db_session.add_all.call_args.args[0]
        assert all(isinstance(row, AdminPermission) for row in rows)
        assert [(r.admin_id, r.permission_id) for r in rows] == [(2, 1), (2, 3)]
        db_session.commit.assert_awaited_once()
        audit.record.assert_awaited_once()


class TestEditPermission:
    async def test_rename_outside_enumeration_rejected(self, registry):
        with pytest.raises(ValidationError, match="Unknown permission"):
            await registry.edit_permission(1, "user:fly", actor_id=1)

    async def test_missing_row(self, registry, db_session):
        db_session.get.return_value = None

        with pytest.raises(NotFoundError):
            await registry.edit_permission(1, "user:read", actor_id=1)

    async def test_name_taken(self, registry, db_session):
        db_session.get.return_value = PermissionRow(id=1, name="user:create")
        db_session.execute.return_value = make_result(scalar=PermissionRow(id=2, name="user:read"))

        with pytest.raises(ConflictError):
            await registry.edit_permission(1, "user:read", actor_id=1)


class TestSyncCatalog:
    async def test_seeds_missing_names(self, registry, db_session):
        db_session.execute.return_value = make_result(scalars=["user:read"])

        inserted = await registry.sync_catalog({Permission.USER_READ})

        assert "user:read" not in inserted
        assert set(inserted) == ALL_PERMISSION_NAMES - {"user:read"}
        db_session.commit.assert_awaited_once()

    async def test_complete_catalogue_is_untouched(self, registry, db_session):
        db_session.execute.return_value = make_result(scalars=sorted(ALL_PERMISSION_NAMES))

        assert await registry.sync_catalog(set(Permission)) == []
        db_session.commit.assert_not_awaited()

    async def test_stored_stray_names_only_warn(self, registry, db_session):
        db_session.execute.return_value = make_result(
            scalars=sorted(ALL_PERMISSION_NAMES) + ["legacy:thing"]
        )

        assert await registry.sync_catalog(set(Permission)) == []

    async def test_required_name_outside_catalogue_fails_startup(self, registry):
        class Fake:
            value = "made:up"

        with pytest.raises(ConfigurationError):
            await registry.sync_catalog([Fake()])  # type: ignore[list-item]


class TestPermissionNames:
    async def test_names_for_token(self, registry, db_session):
        db_session.execute.return_value = make_result(scalars=["log:read", "user:read"])

        assert await registry.get_permission_names(2) == ["log:read", "user:read"]
