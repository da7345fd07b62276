"""
Admin Config Service - Platform-wide key/value toggles.

Reads are unscoped. Updates and deletes only touch rows whose ``added_by`` is
the acting admin.
"""

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import AdminConfig
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.domain import CreditMode
from app.services.audit_log import AuditLogService

logger = get_logger(__name__)

CREDIT_MODE = "credit_mode"
DEDUCT_CREDIT_USING_OWN_KEY = "deduct_credit_using_own_key"
USER_USE_OWN_API_KEY = "user_use_own_api_key"

BOOLEAN_CONFIGS = frozenset({DEDUCT_CREDIT_USING_OWN_KEY, USER_USE_OWN_API_KEY})

DEFAULT_CONFIG: tuple[tuple[str, str], ...] = (
    (CREDIT_MODE, CreditMode.BALANCE.value),
    (DEDUCT_CREDIT_USING_OWN_KEY, "true"),
    (USER_USE_OWN_API_KEY, "true"),
)


def validate_config_value(name: str, value: str) -> str:
    """Normalize and validate a config value for its key."""
    value = value.strip()
    if name == CREDIT_MODE:
        value = value.lower()
        if value not in {mode.value for mode in CreditMode}:
            raise ValidationError("Credit mode must be 'balance' or 'total'")
    elif name in BOOLEAN_CONFIGS:
        value = value.lower()
        if value not in ("true", "false"):
            raise ValidationError(f"{name} must be 'true' or 'false'")
    return value


class AdminConfigService:
    """CRUD over admin_config with creator-scoped mutation."""

    def __init__(self, session: AsyncSession, audit: AuditLogService) -> None:
        self.session = session
        self.audit = audit

    async def list_configs(self) -> list[AdminConfig]:
        result = await self.session.execute(select(AdminConfig).order_by(AdminConfig.name))
        return list(result.scalars().all())

    async def get_value(
        self, name: str, not_found_message: str = "Configuration not found"
    ) -> str:
        """Read one value; NotFound if the key was never configured."""
        config = await self._find_by_name(name)
        if config is None:
            raise NotFoundError(not_found_message)
        return config.value

    async def get_flag(self, name: str, not_found_message: str = "Configuration not found") -> bool:
        return (await self.get_value(name, not_found_message)).lower() == "true"

    async def add(self, name: str, value: str, actor_id: int) -> AdminConfig:
        name = name.strip().lower()
        if not name or not value:
            raise ValidationError("Name and value are required")
        value = validate_config_value(name, value)

        if await self._find_by_name(name) is not None:
            raise ConflictError("Configuration already exists")

        config = AdminConfig(name=name, value=value, added_by=actor_id)
        self.session.add(config)
        await self.session.commit()

        logger.info("admin_config_added", name=name, value=value, admin_id=actor_id)
        await self.audit.record(actor_id, "add_config", f"{name}={value}", "AdminConfig")
        return config

    async def edit(self, name: str, value: str, actor_id: int) -> AdminConfig:
        name = name.strip().lower()
        if not value:
            raise ValidationError("Value is required")
        value = validate_config_value(name, value)

        stmt = (
            update(AdminConfig)
            .where(AdminConfig.name == name, AdminConfig.added_by == actor_id)
            .values(value=value)
            .returning(AdminConfig)
        )
        result = await self.session.execute(stmt)
        config = result.scalar_one_or_none()
        if config is None:
            await self.session.rollback()
            raise NotFoundError("Configuration not found")
        await self.session.commit()

        logger.info("admin_config_updated", name=name, value=value, admin_id=actor_id)
        await self.audit.record(actor_id, "edit_config", f"{name}={value}", "AdminConfig")
        return config

    async def delete(self, name: str, actor_id: int) -> None:
        name = name.strip().lower()
        stmt = delete(AdminConfig).where(
            AdminConfig.name == name, AdminConfig.added_by == actor_id
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFoundError("Configuration not found")
        await self.session.commit()

        logger.info("admin_config_deleted", name=name, admin_id=actor_id)
        await self.audit.record(actor_id, "delete_config", name, "AdminConfig")

    async def reassign_owner(self, from_admin_id: int, to_admin_id: int) -> int:
        """Hand every toggle owned by one admin to another. The caller commits."""
        stmt = (
            update(AdminConfig)
            .where(AdminConfig.added_by == from_admin_id)
            .values(added_by=to_admin_id)
        )
        result = await self.session.execute(stmt)
        reassigned = result.rowcount or 0
        if reassigned:
            logger.info(
                "admin_config_reassigned",
                from_admin_id=from_admin_id,
                to_admin_id=to_admin_id,
                count=reassigned,
            )
        return reassigned

    async def ensure_defaults(self, actor_id: int) -> list[str]:
        """Insert any missing default toggles. Returns the names created."""
        created: list[str] = []
        for name, value in DEFAULT_CONFIG:
            if await self._find_by_name(name) is None:
                self.session.add(AdminConfig(name=name, value=value, added_by=actor_id))
                created.append(name)
        if created:
            await self.session.commit()
            logger.info("admin_config_defaults_seeded", names=created)
        return created

    async def _find_by_name(self, name: str) -> AdminConfig | None:
        stmt = select(AdminConfig).where(AdminConfig.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
