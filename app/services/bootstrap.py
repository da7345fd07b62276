"""
Startup Seeding - Brings an empty or upgraded database to a usable state.

Runs once per process start, after migrations and before the first request.
"""

from structlog import get_logger

from app.config import Settings
from app.db.session import Database
from app.permissions import ROUTE_REQUIRED_PERMISSIONS
from app.services.admin_config import AdminConfigService
from app.services.admins import AdminService
from app.services.audit_log import AuditLogService
from app.services.passwords import password_service
from app.services.permission_registry import PermissionRegistryService
from app.services.subscriptions import SubscriptionService

logger = get_logger(__name__)


async def bootstrap(database: Database, settings: Settings) -> None:
    """
    Seed the permission catalogue, default super-admin, config toggles and free plan.

    Raises:
        ConfigurationError: a route requires a permission outside the catalogue
    """
    audit = AuditLogService(database.session_factory)

    async with database.session() as session:
        registry = PermissionRegistryService(session, audit)
        await registry.sync_catalog(ROUTE_REQUIRED_PERMISSIONS)

        admins = AdminService(session, registry, password_service, audit)
        admin = await admins.ensure_default_admin(
            settings.default_admin_name,
            settings.default_admin_email,
            settings.default_admin_password,
        )

        if admin is not None:
            await AdminConfigService(session, audit).ensure_defaults(admin.id)
        else:
            logger.warning("admin_config_defaults_skipped", reason="no_super_admin")

        await SubscriptionService(session, audit).ensure_free_plan(
            settings.free_plan_monthly_credit
        )

    logger.info(
        "bootstrap_complete",
        required_permissions=len(ROUTE_REQUIRED_PERMISSIONS),
        default_admin=admin.email if admin is not None else None,
    )
