"""
Permission Catalogue - Closed enumeration of admin capabilities.

Route registration and the permissions table share this enumeration.
``require_permission`` records what each route needs so the startup check can
prove every required name exists in the store before traffic is served.
"""

from collections.abc import Iterable
from enum import Enum


class Permission(str, Enum):
    """Every capability a limited admin can be granted."""

    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    ADMIN_CREATE = "admin:create"
    ADMIN_READ = "admin:read"
    ADMIN_UPDATE = "admin:update"
    ADMIN_DELETE = "admin:delete"

    COUNTRY_READ = "country:read"
    CREDIT_MODE_UPDATE = "creditMode:update"
    USER_OWN_API_KEY_UPDATE = "user:ownApiKey:update"

    API_KEY_CREATE = "apiKey:create"
    API_KEY_READ = "apiKey:read"
    API_KEY_UPDATE = "apiKey:update"
    API_KEY_DELETE = "apiKey:delete"

    AI_MODEL_READ = "aiModel:read"

    AVAILABLE_MODEL_CREATE = "availableModel:create"
    AVAILABLE_MODEL_READ = "availableModel:read"
    AVAILABLE_MODEL_UPDATE = "availableModel:update"
    AVAILABLE_MODEL_DELETE = "availableModel:delete"

    SUBSCRIPTION_CREATE = "subscription:create"
    SUBSCRIPTION_READ = "subscription:read"
    SUBSCRIPTION_UPDATE = "subscription:update"
    SUBSCRIPTION_DELETE = "subscription:delete"

    ADMIN_CONFIG_CREATE = "adminConfig:create"
    ADMIN_CONFIG_READ = "adminConfig:read"
    ADMIN_CONFIG_UPDATE = "adminConfig:update"
    ADMIN_CONFIG_DELETE = "adminConfig:delete"

    WHITELIST_IP_CREATE = "whitelistIp:create"
    WHITELIST_IP_READ = "whitelistIp:read"
    WHITELIST_IP_UPDATE = "whitelistIp:update"
    WHITELIST_IP_DELETE = "whitelistIp:delete"

    BLACKLIST_COUNTRY_CREATE = "blacklistCountry:create"
    BLACKLIST_COUNTRY_READ = "blacklistCountry:read"
    BLACKLIST_COUNTRY_UPDATE = "blacklistCountry:update"
    BLACKLIST_COUNTRY_DELETE = "blacklistCountry:delete"

    ADMIN_PERMISSION_READ = "adminPermission:read"
    ADMIN_PERMISSION_UPDATE = "adminPermission:update"

    PERMISSION_READ = "permission:read"
    PERMISSION_UPDATE = "permission:update"

    LOG_READ = "log:read"


ALL_PERMISSION_NAMES: frozenset[str] = frozenset(p.value for p in Permission)

SUPER_ADMIN_USER_TYPE = "1"

# Filled in by app.api.dependencies.require_permission as routers are imported
ROUTE_REQUIRED_PERMISSIONS: set[Permission] = set()


def register_route_permission(permission: Permission) -> Permission:
    if not isinstance(permission, Permission):
        raise TypeError(f"Route permission must be a Permission member, got {permission!r}")
    ROUTE_REQUIRED_PERMISSIONS.add(permission)
    return permission


def is_authorized(user_type: str, token_permissions: Iterable[str], required: Permission) -> bool:
    """
    Admin authorization decision.

    Super-admins pass regardless of ``token_permissions``; everyone else
    needs the exact permission name.
    """
    if user_type == SUPER_ADMIN_USER_TYPE:
        return True
    return required.value in set(token_permissions)


def unknown_permission_names(names: Iterable[str]) -> set[str]:
    """Names that are not members of the enumeration."""
    return set(names) - ALL_PERMISSION_NAMES
