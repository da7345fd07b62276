"""
Permission Registry - Named permissions and their assignment to limited admins.

Assignment edits are full replacements (delete-all-then-insert) inside one
transaction; an empty replacement is rejected rather than clearing silently.
"""

from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import ConfigurationError
from app.db.models import Admin, AdminPermission, Permission as PermissionRow
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.permissions import ALL_PERMISSION_NAMES, Permission, unknown_permission_names
from app.services.audit_log import AuditLogService

logger = get_logger(__name__)


class PermissionRegistryService:
    """Reads and edits permissions and admin_permissions."""

    def __init__(self, session: AsyncSession, audit: AuditLogService) -> None:
        self.session = session
        self.audit = audit

    async def list_permissions(self) -> list[PermissionRow]:
        result = await self.session.execute(select(PermissionRow).order_by(PermissionRow.id))
        return list(result.scalars().all())

    async def edit_permission(self, permission_id: int, name: str, actor_id: int) -> PermissionRow:
        """
        Rename a permission.

        Only enumeration names are accepted; a row named outside the
        enumeration could never be required by a route.
        """
        name = name.strip()
        if name not in ALL_PERMISSION_NAMES:
            raise ValidationError(f"Unknown permission: {name}")

        row = await self.session.get(PermissionRow, permission_id)
        if row is None:
            raise NotFoundError("Permission not found")

        existing = await self._find_by_name(name)
        if existing is not None and existing.id != permission_id:
            raise ConflictError("Permission already exists")

        old_name = row.name
        row.name = name
        await self.session.commit()

        logger.info("permission_renamed", permission_id=permission_id, old=old_name, new=name)
        await self.audit.record(
            actor_id, "edit_permission", f"{old_name} -> {name}", "AdminPermission"
        )
        return row

    async def list_admin_permissions(
        self, admin_id: int | None = None
    ) -> list[tuple[int, int, str]]:
        """(admin_id, permission_id, permission name) rows, optionally for one admin."""
        stmt = select(
            AdminPermission.admin_id, AdminPermission.permission_id, PermissionRow.name
        ).join(PermissionRow, PermissionRow.id == AdminPermission.permission_id)
        if admin_id is not None:
            stmt = stmt.where(AdminPermission.admin_id == admin_id)
        stmt = stmt.order_by(AdminPermission.admin_id, AdminPermission.permission_id)
        result = await self.session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def get_permission_names(self, admin_id: int) -> list[str]:
        """Flattened permission names for token issuance."""
        stmt = (
            select(PermissionRow.name)
            .join(AdminPermission, PermissionRow.id == AdminPermission.permission_id)
            .where(AdminPermission.admin_id == admin_id)
            .order_by(PermissionRow.name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def replace_admin_permissions(
        self, admin_id: int, permission_ids: list[int], actor_id: int
    ) -> list[int]:
        """
        Replace an admin's permission set.

        Raises:
            ValidationError: permission_ids is empty or names unknown ids
            NotFoundError: Admin does not exist
        """
        if not permission_ids:
            raise ValidationError("Permission IDs are required")

        wanted = sorted(set(permission_ids))
        admin = await self.session.get(Admin, admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")

        known = await self._existing_ids(wanted)
        missing = [pid for pid in wanted if pid not in known]
        if missing:
            raise ValidationError(f"Unknown permission IDs: {missing}")

        await self.session.execute(
            delete(AdminPermission).where(AdminPermission.admin_id == admin_id)
        )
        self.session.add_all(
            [AdminPermission(admin_id=admin_id, permission_id=pid) for pid in wanted]
        )
        await self.session.commit()

        logger.info(
            "admin_permissions_replaced",
            admin_id=admin_id,
            permission_ids=wanted,
            actor_id=actor_id,
        )
        await self.audit.record(
            actor_id,
            "edit_admin_permission",
            f"admin_id={admin_id} permission_ids={wanted}",
            "AdminPermission",
        )
        return wanted

    async def assign_permissions(self, admin_id: int, permission_ids: Iterable[int]) -> None:
        """Insert grants for a freshly created admin. Caller commits."""
        wanted = sorted(set(permission_ids))
        known = await self._existing_ids(wanted)
        missing = [pid for pid in wanted if pid not in known]
        if missing:
            raise ValidationError(f"Unknown permission IDs: {missing}")
        self.session.add_all(
            [AdminPermission(admin_id=admin_id, permission_id=pid) for pid in wanted]
        )

    async def sync_catalog(self, required: Iterable[Permission]) -> list[str]:
        """
        Startup completeness check.

        Inserts enumeration members missing from the table and warns about
        stored names outside the enumeration. Returns the names inserted.

        Raises:
            ConfigurationError: a route requires a name outside the enumeration
        """
        stray_required = unknown_permission_names(p.value for p in required)
        if stray_required:
            raise ConfigurationError(
                f"Routes require permissions outside the catalogue: {sorted(stray_required)}"
            )

        result = await self.session.execute(select(PermissionRow.name))
        stored = set(result.scalars().all())

        unknown = unknown_permission_names(stored)
        if unknown:
            logger.warning("permission_catalog_unknown_rows", names=sorted(unknown))

        missing = sorted(ALL_PERMISSION_NAMES - stored)
        if missing:
            self.session.add_all([PermissionRow(name=name) for name in missing])
            await self.session.commit()
            logger.info("permission_catalog_seeded", names=missing)
        return missing

    async def _find_by_name(self, name: str) -> PermissionRow | None:
        stmt = select(PermissionRow).where(PermissionRow.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _existing_ids(self, permission_ids: list[int]) -> set[int]:
        if not permission_ids:
            return set()
        stmt = select(PermissionRow.id).where(PermissionRow.id.in_(permission_ids))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
