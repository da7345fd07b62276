"""
Admin Service - Administrator accounts and default super-admin bootstrap.
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Admin
from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.domain import AuthenticatedAdmin
from app.permissions import SUPER_ADMIN_USER_TYPE
from app.services.admin_config import AdminConfigService
from app.services.audit_log import AuditLogService
from app.services.auth import (
    EMAIL_PATTERN,
    MIN_PASSWORD_LENGTH,
    normalize_email,
    validate_new_credentials,
)
from app.services.interfaces import PooledKeyCleanup
from app.services.passwords import PasswordService
from app.services.permission_registry import PermissionRegistryService

logger = get_logger(__name__)


class AdminService:
    """CRUD over admins. Limited admins are created together with their grants."""

    def __init__(
        self,
        session: AsyncSession,
        permissions: PermissionRegistryService,
        passwords: PasswordService,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.permissions = permissions
        self.passwords = passwords
        self.audit = audit

    async def list_admins(self) -> list[Admin]:
        result = await self.session.execute(select(Admin).order_by(Admin.id))
        return list(result.scalars().all())

    async def get_admin(self, admin_id: int) -> Admin:
        admin = await self.session.get(Admin, admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    async def create_admin(
        self,
        name: str,
        email: str,
        password: str,
        user_type: str,
        permission_ids: list[int],
        actor: AuthenticatedAdmin,
    ) -> Admin:
        """
        Create an admin; limited admins must be given at least one permission.

        Raises:
            ValidationError: bad input or limited admin without permissions
            ForbiddenError: a limited admin tried to create a super-admin
            ConflictError: email already in use
        """
        if not (name or "").strip():
            raise ValidationError("Name, email and password are required")
        email = validate_new_credentials(email, password)
        user_type = (user_type or "").strip() or "2"

        if user_type == SUPER_ADMIN_USER_TYPE and not actor.is_super_admin:
            logger.warning("super_admin_creation_denied", actor_id=actor.id)
            raise ForbiddenError("Only super-admins can create super-admins")
        if user_type != SUPER_ADMIN_USER_TYPE and not permission_ids:
            raise ValidationError("Permission IDs are required")

        if await self._find_by_email(email) is not None:
            raise ConflictError("Email already exists")

        admin = Admin(
            name=name.strip(),
            email=email,
            password_hash=self.passwords.hash(password),
            user_type=user_type,
        )
        self.session.add(admin)
        try:
            await self.session.flush()
            if user_type != SUPER_ADMIN_USER_TYPE:
                await self.permissions.assign_permissions(admin.id, permission_ids)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("Email already exists") from e
        except ValidationError:
            await self.session.rollback()
            raise

        logger.info(
            "admin_created", admin_id=admin.id, user_type=user_type, created_by=actor.id
        )
        await self.audit.record(
            actor.id, "create_admin", f"{email} user_type={user_type}", "Admin"
        )
        return admin

    async def update_admin_profile(
        self,
        admin_id: int,
        actor: AuthenticatedAdmin,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> Admin:
        """
        Edit an admin's name, email or password.

        Raises:
            ForbiddenError: a limited admin targeted a super-admin
        """
        admin = await self.get_admin(admin_id)
        self._guard_super_admin_target(admin, actor, "update")

        if email is not None:
            email = normalize_email(email)
            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid email format")
            if email != admin.email:
                if await self._find_by_email(email) is not None:
                    raise ConflictError("Email already exists")
                admin.email = email
        if name is not None:
            if not name.strip():
                raise ValidationError("Name cannot be empty")
            admin.name = name.strip()
        if password is not None:
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
                )
            admin.password_hash = self.passwords.hash(password)

        await self.session.commit()
        logger.info("admin_profile_updated", admin_id=admin_id, updated_by=actor.id)
        await self.audit.record(actor.id, "update_admin_profile", f"admin_id={admin_id}", "Admin")
        return admin

    async def delete_admin(
        self,
        admin_id: int,
        actor: AuthenticatedAdmin,
        keys: PooledKeyCleanup,
        configs: AdminConfigService,
    ) -> None:
        """
        Delete an admin together with the pooled keys they added.

        Each key takes its catalogue entries with it. Config toggles the admin
        created are handed to the actor so the platform settings survive.

        Raises:
            ForbiddenError: self-deletion, or a limited admin targeted a super-admin
        """
        if admin_id == actor.id:
            raise ForbiddenError("Admins cannot delete themselves")
        admin = await self.get_admin(admin_id)
        self._guard_super_admin_target(admin, actor, "delete")

        try:
            models_removed = await keys.remove_keys_for_admin(admin_id)
            configs_reassigned = await configs.reassign_owner(admin_id, actor.id)
            await self.session.delete(admin)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "admin_deleted",
            admin_id=admin_id,
            deleted_by=actor.id,
            available_models_removed=models_removed,
            configs_reassigned=configs_reassigned,
        )
        await self.audit.record(
            actor.id,
            "delete_admin",
            f"{admin.email} available_models_removed={models_removed} "
            f"configs_reassigned={configs_reassigned}",
            "Admin",
        )

    async def ensure_default_admin(self, name: str, email: str, password: str) -> Admin | None:
        """
        Create the configured super-admin when missing.

        Returns the admin that owns bootstrap data, or None when no default
        admin is configured and none exists.
        """
        email = normalize_email(email)
        if email:
            existing = await self._find_by_email(email)
            if existing is not None:
                return existing
            if not password:
                logger.warning("default_admin_password_missing", email=email)
                return None

            admin = Admin(
                name=name or "Administrator",
                email=email,
                password_hash=self.passwords.hash(password),
                user_type=SUPER_ADMIN_USER_TYPE,
            )
            self.session.add(admin)
            await self.session.commit()
            logger.info("default_admin_created", admin_id=admin.id, email=email)
            return admin

        stmt = (
            select(Admin)
            .where(Admin.user_type == SUPER_ADMIN_USER_TYPE)
            .order_by(Admin.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_by_email(self, email: str) -> Admin | None:
        stmt = select(Admin).where(func.lower(Admin.email) == email)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _guard_super_admin_target(target: Admin, actor: AuthenticatedAdmin, action: str) -> None:
        if target.is_super_admin and not actor.is_super_admin:
            logger.warning(
                "super_admin_target_denied", target_id=target.id, actor_id=actor.id, action=action
            )
            raise ForbiddenError(f"Only super-admins can {action} a super-admin")
