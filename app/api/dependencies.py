"""
FastAPI Dependencies - Service wiring, authentication and authorization.

NO DICTIONARIES - All dependencies return typed objects.

This module is the composition root: every service is built here per request
on the request's session. FastAPI caches a dependency within one request, so
services that collaborate (for example the available-model catalogue and the
pooled key store) always share the same session.
"""

from collections.abc import Awaitable, Callable

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import Settings, get_settings
from app.db.models import Admin, User
from app.db.session import Database, get_database, get_db
from app.exceptions import PermissionDeniedError, UnauthorizedError
from app.models.domain import AuthenticatedAdmin, AuthenticatedUser, TokenClaims, TokenRole
from app.observability.metrics import metrics
from app.permissions import Permission, is_authorized, register_route_permission
from app.services.access_control import (
    AccessControlService,
    BlacklistCountryService,
    CountryCatalog,
    GeoIPLookup,
    WhitelistIPService,
    extract_client_ip,
)
from app.services.admin_config import AdminConfigService
from app.services.admins import AdminService
from app.services.api_keys import AiModelApiKeyService, UserApiKeyService
from app.services.audit_log import AuditLogService
from app.services.auth import AuthService, OAuthFlowManager
from app.services.available_models import AvailableModelService
from app.services.chatbot import ChatService
from app.services.credentials import CredentialResolver
from app.services.credits import CreditService
from app.services.dispatcher import AIProxyDispatcher
from app.services.google_oauth import GoogleOAuthProvider
from app.services.passwords import password_service
from app.services.permission_registry import PermissionRegistryService
from app.services.subscriptions import SubscriptionService, TopUpService
from app.services.tokens import TokenService
from app.services.users import UserService

logger = get_logger(__name__)

# ============================================================================
# Process-wide collaborators (created lazily, shared across requests)
# ============================================================================

_dispatcher: AIProxyDispatcher | None = None
_token_service: TokenService | None = None
_oauth_flow_manager: OAuthFlowManager | None = None
_geoip_lookup: GeoIPLookup | None = None
_country_catalog: CountryCatalog | None = None


def get_dispatcher() -> AIProxyDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = AIProxyDispatcher(get_settings())
    return _dispatcher


def get_token_service() -> TokenService:
    global _token_service
    if _token_service is None:
        settings = get_settings()
        _token_service = TokenService(
            secret=settings.JWT_SECRET,
            algorithm=settings.jwt_algorithm,
            expire_hours=settings.jwt_expire_hours,
        )
    return _token_service


def get_oauth_flow_manager() -> OAuthFlowManager:
    """OAuth state must survive between the redirect and the callback, hence one instance."""
    global _oauth_flow_manager
    if _oauth_flow_manager is None:
        settings = get_settings()
        provider = GoogleOAuthProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            hd_domain=settings.google_hd_domain,
        )
        _oauth_flow_manager = OAuthFlowManager(provider, settings.google_hd_domain)
    return _oauth_flow_manager


def get_geoip_lookup() -> GeoIPLookup:
    global _geoip_lookup
    if _geoip_lookup is None:
        settings = get_settings()
        _geoip_lookup = GeoIPLookup(settings.geoip_lookup_url, settings.geoip_timeout_seconds)
    return _geoip_lookup


def get_country_catalog() -> CountryCatalog:
    global _country_catalog
    if _country_catalog is None:
        _country_catalog = CountryCatalog(get_settings().country_list_url)
    return _country_catalog


async def close_shared_clients() -> None:
    """Release HTTP clients held by the process-wide collaborators (shutdown)."""
    global _oauth_flow_manager
    if _oauth_flow_manager is not None:
        await _oauth_flow_manager.provider.close()
        _oauth_flow_manager = None


# ============================================================================
# Per-request services
# ============================================================================


def get_audit_log(database: Database = Depends(get_database)) -> AuditLogService:
    return AuditLogService(database.session_factory)


def get_admin_config_service(
    db: AsyncSession = Depends(get_db), audit: AuditLogService = Depends(get_audit_log)
) -> AdminConfigService:
    return AdminConfigService(db, audit)


def get_credit_service(
    db: AsyncSession = Depends(get_db),
    config: AdminConfigService = Depends(get_admin_config_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> CreditService:
    return CreditService(db, config, audit)


def get_permission_registry(
    db: AsyncSession = Depends(get_db), audit: AuditLogService = Depends(get_audit_log)
) -> PermissionRegistryService:
    return PermissionRegistryService(db, audit)


def get_credential_resolver(
    db: AsyncSession = Depends(get_db),
    dispatcher: AIProxyDispatcher = Depends(get_dispatcher),
) -> CredentialResolver:
    return CredentialResolver(db, dispatcher)


def get_subscription_service(
    db: AsyncSession = Depends(get_db), audit: AuditLogService = Depends(get_audit_log)
) -> SubscriptionService:
    return SubscriptionService(db, audit)


def get_topup_service(
    db: AsyncSession = Depends(get_db),
    credits: CreditService = Depends(get_credit_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> TopUpService:
    return TopUpService(db, credits, audit)


def get_available_model_service(
    db: AsyncSession = Depends(get_db),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> AvailableModelService:
    return AvailableModelService(db, resolver, subscriptions, audit)


def get_ai_model_api_key_service(
    db: AsyncSession = Depends(get_db),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    catalog: AvailableModelService = Depends(get_available_model_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> AiModelApiKeyService:
    return AiModelApiKeyService(db, resolver, catalog, audit)


def get_user_api_key_service(
    db: AsyncSession = Depends(get_db),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    audit: AuditLogService = Depends(get_audit_log),
) -> UserApiKeyService:
    return UserApiKeyService(db, resolver, audit)


def get_chat_service(
    credits: CreditService = Depends(get_credit_service),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    dispatcher: AIProxyDispatcher = Depends(get_dispatcher),
    config: AdminConfigService = Depends(get_admin_config_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> ChatService:
    return ChatService(credits, resolver, dispatcher, config, audit)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    credits: CreditService = Depends(get_credit_service),
    permissions: PermissionRegistryService = Depends(get_permission_registry),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> AuthService:
    return AuthService(db, credits, permissions, tokens, password_service, audit)


def get_user_service(
    db: AsyncSession = Depends(get_db),
    config: AdminConfigService = Depends(get_admin_config_service),
    audit: AuditLogService = Depends(get_audit_log),
) -> UserService:
    return UserService(db, config, audit)


def get_admin_service(
    db: AsyncSession = Depends(get_db),
    permissions: PermissionRegistryService = Depends(get_permission_registry),
    audit: AuditLogService = Depends(get_audit_log),
) -> AdminService:
    return AdminService(db, permissions, password_service, audit)


def get_whitelist_service(
    db: AsyncSession = Depends(get_db), audit: AuditLogService = Depends(get_audit_log)
) -> WhitelistIPService:
    return WhitelistIPService(db, audit)


def get_blacklist_service(
    db: AsyncSession = Depends(get_db), audit: AuditLogService = Depends(get_audit_log)
) -> BlacklistCountryService:
    return BlacklistCountryService(db, audit)


def get_access_control_service(
    whitelist: WhitelistIPService = Depends(get_whitelist_service),
    blacklist: BlacklistCountryService = Depends(get_blacklist_service),
    geoip: GeoIPLookup = Depends(get_geoip_lookup),
    audit: AuditLogService = Depends(get_audit_log),
) -> AccessControlService:
    return AccessControlService(whitelist, blacklist, geoip, audit)


# ============================================================================
# Authentication
# ============================================================================


def extract_token(request: Request, authorization: str | None, cookie_name: str) -> str | None:
    """Bearer header first, then the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer ") :].strip()
        if token:
            return token
    return request.cookies.get(cookie_name) or None


def get_token_claims(
    request: Request,
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """
    Verify the session token.

    Raises:
        UnauthorizedError: no token, or expired/invalid token
    """
    token = extract_token(request, authorization, settings.auth_cookie_name)
    if not token:
        logger.warning("auth_no_token", path=request.url.path)
        raise UnauthorizedError("Unauthorized")
    return tokens.verify(token)


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    if claims.role != TokenRole.USER:
        logger.warning("auth_wrong_role", expected="user", role=claims.role.value)
        raise UnauthorizedError("Unauthorized")

    user = await db.get(User, claims.subject_id)
    if user is None:
        logger.warning("auth_user_not_found", user_id=claims.subject_id)
        raise UnauthorizedError("User not found")

    return AuthenticatedUser(id=user.id, email=user.email, name=user.name)


async def get_current_admin(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
    permissions: PermissionRegistryService = Depends(get_permission_registry),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedAdmin:
    """
    Resolve the admin behind the token.

    Permissions come from the token unless per-request refresh is enabled,
    in which case they are re-read from the store.
    """
    if claims.role != TokenRole.ADMIN:
        logger.warning("auth_wrong_role", expected="admin", role=claims.role.value)
        raise UnauthorizedError("Unauthorized")

    admin = await db.get(Admin, claims.subject_id)
    if admin is None:
        logger.warning("admin_auth_user_not_found", admin_id=claims.subject_id)
        raise UnauthorizedError("Admin not found")

    granted: frozenset[str] = frozenset(claims.permissions)
    if settings.permission_refresh_per_request and not admin.is_super_admin:
        granted = frozenset(await permissions.get_permission_names(admin.id))

    logger.debug("admin_auth_success", admin_id=admin.id, user_type=admin.user_type)
    return AuthenticatedAdmin(
        id=admin.id,
        email=admin.email,
        name=admin.name,
        user_type=admin.user_type,
        permissions=granted,
    )


# ============================================================================
# Authorization
# ============================================================================


def require_permission(
    permission: Permission,
) -> Callable[..., Awaitable[AuthenticatedAdmin]]:
    """
    Dependency factory for permissioned admin routes.

    Usage:
        @router.get("/admins")
        async def list_admins(
            admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_READ)),
        ):
            ...
    """
    register_route_permission(permission)

    async def check_permission(
        admin: AuthenticatedAdmin = Depends(get_current_admin),
    ) -> AuthenticatedAdmin:
        allowed = is_authorized(admin.user_type, admin.permissions, permission)
        metrics.record_authorization(allowed)
        if not allowed:
            logger.warning(
                "admin_permission_denied", admin_id=admin.id, permission=permission.value
            )
            raise PermissionDeniedError(permission.value)
        return admin

    return check_permission


async def verify_ip_access(
    request: Request,
    settings: Settings = Depends(get_settings),
    access: AccessControlService = Depends(get_access_control_service),
) -> None:
    """Admin-surface IP whitelist and country blacklist."""
    if not settings.ip_control_enabled:
        return
    await access.verify_client_access(extract_client_ip(request))
