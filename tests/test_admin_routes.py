"""
Tests for admin API routes: permission gate, IP control and wiring.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.api.dependencies import (
    get_access_control_service,
    get_admin_config_service,
    get_admin_service,
    get_ai_model_api_key_service,
    get_country_catalog,
    get_credit_service,
    get_current_admin,
    get_permission_registry,
    get_user_service,
    verify_ip_access,
)
from app.config import Settings, get_settings
from app.exceptions import ForbiddenError, ValidationError
from app.models.domain import AccountBalance, AuthenticatedAdmin, UserAccountSummary
from app.services.access_control import AccessControlService, CountryCatalog
from app.services.admin_config import AdminConfigService
from app.services.admins import AdminService
from app.services.api_keys import AiModelApiKeyService
from app.services.credits import CreditService
from app.services.passwords import PasswordService
from app.services.permission_registry import PermissionRegistryService
from app.services.users import UserService
from factories import make_admin


def override(app, dependency, spec) -> AsyncMock:
    service = AsyncMock(spec=spec)
    app.dependency_overrides[dependency] = lambda: service
    return service


@pytest.fixture
def as_admin(app_client):
    """Sign the client in as the given admin with IP control bypassed."""
    app, client = app_client
    app.dependency_overrides[verify_ip_access] = lambda: None

    def sign_in(admin):
        app.dependency_overrides[get_current_admin] = lambda: admin
        return app, client

    return sign_in


class TestPermissionGate:
    def test_super_admin_passes(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        users = override(app, get_user_service, UserService)
        users.list_users.return_value = []

        response = client.get("/api/admin/users")

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": []}

    def test_limited_admin_with_permission(self, as_admin, limited_admin):
        app, client = as_admin(limited_admin)
        users = override(app, get_user_service, UserService)
        users.list_users.return_value = []

        assert client.get("/api/admin/users").status_code == 200

    def test_limited_admin_without_permission(self, as_admin, limited_admin):
        app, client = as_admin(limited_admin)
        users = override(app, get_user_service, UserService)

        response = client.delete("/api/admin/users/5")

        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "error": "Forbidden: You have no permission user:delete",
        }
        users.delete_account.assert_not_awaited()

    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("get", "/api/admin/countries", "country:read"),
            ("put", "/api/admin/config/credit-mode", "creditMode:update"),
            ("put", "/api/admin/config/user-use-own-api-key", "user:ownApiKey:update"),
            ("get", "/api/admin/ai-models?model=openai", "aiModel:read"),
            ("post", "/api/admin/users", "user:create"),
        ],
    )
    def test_special_permissions(self, as_admin, limited_admin, method, path, permission):
        _, client = as_admin(limited_admin)

        response = client.request(method, path, json={"value": "total"})

        assert response.status_code == 403
        assert response.json()["error"].endswith(permission)

    def test_no_token(self, app_client):
        app, client = app_client
        app.dependency_overrides[verify_ip_access] = lambda: None

        assert client.get("/api/admin/users").status_code == 401


class TestIpControl:
    @pytest.fixture
    def access(self, app_client, super_admin) -> AsyncMock:
        app, _ = app_client
        app.dependency_overrides[get_settings] = lambda: Settings(
            database_url="postgresql+asyncpg://t:t@localhost/t", ip_control_enabled=True
        )
        app.dependency_overrides[get_current_admin] = lambda: super_admin
        return override(app, get_access_control_service, AccessControlService)

    def test_unlisted_ip_is_forbidden(self, app_client, access):
        _, client = app_client
        access.verify_client_access.side_effect = ForbiddenError("Forbidden")

        response = client.get("/api/admin/me")

        assert response.status_code == 403
        access.verify_client_access.assert_awaited_once_with("testclient")

    def test_forwarded_header_from_untrusted_peer_is_ignored(self, app_client, access):
        _, client = app_client
        access.verify_client_access.side_effect = ForbiddenError("Forbidden")

        response = client.get("/api/admin/me", headers={"X-Forwarded-For": "10.0.0.1"})

        assert response.status_code == 403
        access.verify_client_access.assert_awaited_once_with("testclient")


class TestAdminRoutes:
    def test_list_users_shapes_summaries(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        users = override(app, get_user_service, UserService)
        users.list_users.return_value = [
            UserAccountSummary(
                user_id=5,
                name="Ada",
                email="ada@example.com",
                balance=40,
                total_credits=90,
                subscription_id=1,
                last_reset=datetime(2026, 1, 1, tzinfo=UTC),
            )
        ]

        response = client.get("/api/admin/users")

        row = response.json()["data"][0]
        assert (row["user_id"], row["balance"], row["total_credits"]) == (5, 40, 90)

    def test_set_user_credits(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        credits = override(app, get_credit_service, CreditService)
        credits.set_counters.return_value = AccountBalance(user_id=5, balance=10, total_credits=20)

        response = client.put("/api/admin/users/5", json={"balance": 10, "total_credits": 20})

        assert response.json()["data"] == {"user_id": 5, "balance": 10, "total_credits": 20}
        credits.set_counters.assert_awaited_once_with(5, 10, 20, actor_id=1)

    def test_create_limited_admin(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        admins = override(app, get_admin_service, AdminService)
        admins.create_admin.return_value = make_admin(admin_id=9, user_type="2")

        response = client.post(
            "/api/admin/admins",
            json={
                "name": "Ops",
                "email": "ops@example.com",
                "password": "secret1",
                "user_type": "2",
                "permission_ids": [1, 2],
            },
        )

        assert response.status_code == 201
        assert response.json()["data"]["id"] == 9

    def test_replace_permissions_rejects_empty(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        registry = override(app, get_permission_registry, PermissionRegistryService)
        registry.replace_admin_permissions.side_effect = ValidationError(
            "Permission IDs are required"
        )

        response = client.put("/api/admin/admin-permissions/2", json={"permission_ids": []})

        assert response.status_code == 400
        assert response.json()["error"] == "Permission IDs are required"

    def test_countries(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        countries = override(app, get_country_catalog, CountryCatalog)
        countries.list_countries.return_value = [("AT", "Austria")]

        response = client.get("/api/admin/countries")

        assert response.json()["data"] == [{"country_code": "AT", "country_name": "Austria"}]


class TestSuperAdminProtection:
    """Limited admins holding admin permissions still cannot reach super-admins."""

    @pytest.fixture
    def admin_manager(self) -> AuthenticatedAdmin:
        return AuthenticatedAdmin(
            id=2,
            email="limited@example.com",
            name="Limited",
            user_type="2",
            permissions=frozenset({"admin:create", "admin:update", "admin:delete"}),
        )

    @pytest.fixture
    def real_admins(self, db_session, audit) -> AdminService:
        passwords = MagicMock(spec=PasswordService)
        passwords.hash.side_effect = lambda plaintext: f"hashed:{plaintext}"
        return AdminService(
            db_session, AsyncMock(spec=PermissionRegistryService), passwords, audit
        )

    def test_cannot_reset_super_admin_password(
        self, as_admin, admin_manager, real_admins, db_session
    ):
        app, client = as_admin(admin_manager)
        root = make_admin(admin_id=1, user_type="1", password_hash="hashed:original")
        db_session.get.return_value = root
        app.dependency_overrides[get_admin_service] = lambda: real_admins

        response = client.put("/api/admin/admins/1", json={"password": "attacker-pw"})

        assert response.status_code == 403
        assert root.password_hash == "hashed:original"
        db_session.commit.assert_not_awaited()

    def test_cannot_create_super_admin(self, as_admin, admin_manager, real_admins, db_session):
        app, client = as_admin(admin_manager)
        app.dependency_overrides[get_admin_service] = lambda: real_admins

        response = client.post(
            "/api/admin/admins",
            json={
                "name": "Root",
                "email": "root2@example.com",
                "password": "secret1",
                "user_type": "1",
                "permission_ids": [],
            },
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Only super-admins can create super-admins"
        db_session.add.assert_not_called()

    def test_cannot_delete_super_admin(self, as_admin, admin_manager, real_admins, db_session):
        app, client = as_admin(admin_manager)
        db_session.get.return_value = make_admin(admin_id=1, user_type="1")
        app.dependency_overrides[get_admin_service] = lambda: real_admins
        keys = override(app, get_ai_model_api_key_service, AiModelApiKeyService)
        override(app, get_admin_config_service, AdminConfigService)

        response = client.delete("/api/admin/admins/1")

        assert response.status_code == 403
        keys.remove_keys_for_admin.assert_not_awaited()
        db_session.delete.assert_not_awaited()

    def test_super_admin_deletes_limited_admin(self, as_admin, super_admin):
        app, client = as_admin(super_admin)
        admins = override(app, get_admin_service, AdminService)
        keys = override(app, get_ai_model_api_key_service, AiModelApiKeyService)
        configs = override(app, get_admin_config_service, AdminConfigService)

        response = client.delete("/api/admin/admins/2")

        assert response.status_code == 200
        admins.delete_admin.assert_awaited_once_with(2, super_admin, keys, configs)
