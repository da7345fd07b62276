"""
Tests for authentication and authorization dependencies.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.api.dependencies import (
    extract_token,
    get_current_admin,
    get_current_user,
    get_token_claims,
    require_permission,
    verify_ip_access,
)
from app.config import Settings
from app.exceptions import ForbiddenError, PermissionDeniedError, UnauthorizedError
from app.models.domain import AuthenticatedAdmin, TokenRole
from app.permissions import Permission
from app.services.access_control import AccessControlService
from app.services.permission_registry import PermissionRegistryService
from app.services.tokens import TokenService
from factories import make_admin, make_user

SECRET = "dependency-test-secret"


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(SECRET)


def make_request(headers: dict[str, str] | None = None, cookies: dict[str, str] | None = None):
    request = MagicMock()
    request.headers = headers or {}
    request.cookies = cookies or {}
    request.url.path = "/api/test"
    request.client.host = "127.0.0.1"
    return request


def make_settings(**overrides) -> Settings:
    return Settings(database_url="postgresql+asyncpg://t:t@localhost/t", **overrides)


class TestExtractToken:
    def test_bearer_header(self):
        assert extract_token(make_request(), "Bearer abc", "token") == "abc"

    def test_cookie_fallback(self):
        assert extract_token(make_request(cookies={"token": "xyz"}), None, "token") == "xyz"

    def test_header_wins_over_cookie(self):
        request = make_request(cookies={"token": "cookie"})
        assert extract_token(request, "Bearer header", "token") == "header"

    def test_non_bearer_header_ignored(self):
        assert extract_token(make_request(), "Basic abc", "token") is None


class TestTokenClaims:
    def test_missing_token(self, tokens):
        with pytest.raises(UnauthorizedError):
            get_token_claims(make_request(), None, make_settings(), tokens)

    def test_valid_token(self, tokens):
        issued = tokens.sign(5, "u@example.com", TokenRole.USER)

        claims = get_token_claims(
            make_request(), f"Bearer {issued.access_token}", make_settings(), tokens
        )

        assert claims.subject_id == 5
        assert claims.role == TokenRole.USER


class TestCurrentUser:
    async def test_user_token_resolves_user(self, tokens, db_session):
        claims = tokens.verify(tokens.sign(1, "user@example.com", TokenRole.USER).access_token)
        db_session.get.return_value = make_user(user_id=1)

        user = await get_current_user(claims, db_session)

        assert user.id == 1
        assert user.email == "user@example.com"

    async def test_admin_token_rejected_on_user_routes(self, tokens, db_session):
        claims = tokens.verify(tokens.sign(1, "admin@example.com", TokenRole.ADMIN).access_token)

        with pytest.raises(UnauthorizedError):
            await get_current_user(claims, db_session)

    async def test_deleted_user(self, tokens, db_session):
        claims = tokens.verify(tokens.sign(1, "user@example.com", TokenRole.USER).access_token)
        db_session.get.return_value = None

        with pytest.raises(UnauthorizedError, match="User not found"):
            await get_current_user(claims, db_session)


class TestCurrentAdmin:
    async def test_permissions_come_from_token(self, tokens, db_session):
        issued = tokens.sign(2, "l@example.com", TokenRole.ADMIN, permissions=["user:read"])
        claims = tokens.verify(issued.access_token)
        db_session.get.return_value = make_admin(admin_id=2, user_type="2")
        registry = AsyncMock(spec=PermissionRegistryService)

        admin = await get_current_admin(claims, db_session, registry, make_settings())

        assert admin.permissions == frozenset({"user:read"})
        registry.get_permission_names.assert_not_awaited()

    async def test_refresh_per_request(self, tokens, db_session):
        issued = tokens.sign(2, "l@example.com", TokenRole.ADMIN, permissions=["user:read"])
        claims = tokens.verify(issued.access_token)
        db_session.get.return_value = make_admin(admin_id=2, user_type="2")
        registry = AsyncMock(spec=PermissionRegistryService)
        registry.get_permission_names.return_value = ["log:read"]

        admin = await get_current_admin(
            claims, db_session, registry, make_settings(permission_refresh_per_request=True)
        )

        assert admin.permissions == frozenset({"log:read"})

    async def test_user_token_rejected_on_admin_routes(self, tokens, db_session):
        claims = tokens.verify(tokens.sign(1, "u@example.com", TokenRole.USER).access_token)

        with pytest.raises(UnauthorizedError):
            await get_current_admin(
                claims, db_session, AsyncMock(spec=PermissionRegistryService), make_settings()
            )


class TestRequirePermission:
    async def test_super_admin_passes_without_permissions(self, super_admin):
        check = require_permission(Permission.ADMIN_DELETE)

        assert await check(admin=super_admin) is super_admin

    async def test_limited_admin_with_permission(self, limited_admin):
        check = require_permission(Permission.USER_READ)

        assert await check(admin=limited_admin) is limited_admin

    async def test_limited_admin_without_permission(self, limited_admin):
        check = require_permission(Permission.USER_DELETE)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await check(admin=limited_admin)

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Forbidden: You have no permission user:delete"

    async def test_limited_admin_with_no_permissions_at_all(self):
        admin = AuthenticatedAdmin(
            id=3, email="x@example.com", name="X", user_type="2", permissions=frozenset()
        )
        check = require_permission(Permission.LOG_READ)

        with pytest.raises(ForbiddenError):
            await check(admin=admin)


class TestVerifyIpAccess:
    async def test_disabled_skips_checks(self):
        access = AsyncMock(spec=AccessControlService)

        await verify_ip_access(make_request(), make_settings(ip_control_enabled=False), access)

        access.verify_client_access.assert_not_awaited()

    async def test_enabled_checks_peer_address(self):
        access = AsyncMock(spec=AccessControlService)
        request = make_request(headers={"X-Forwarded-For": "10.0.0.1"})
        request.client.host = "203.0.113.9"

        await verify_ip_access(request, make_settings(ip_control_enabled=True), access)

        access.verify_client_access.assert_awaited_once_with("203.0.113.9")
