"""
Audit Log Service - Best-effort persistence of state changes to the logs table.

Every mutation in the core calls ``record``. Rows are written in a session of
their own so that a failed request transaction does not take its audit trail
with it, and a failed audit insert never aborts the request.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.db.models import AuditLog

logger = get_logger(__name__)


class AuditLogService:
    """Writes and reads rows of the logs table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        user: str | int | None,
        action: str,
        details: str | None,
        component: str,
        level: str = "info",
    ) -> None:
        """Persist one audit entry. Failures are logged and swallowed."""
        entry = AuditLog(
            user=str(user) if user is not None else None,
            action=action,
            details=details,
            component=component,
            level=level,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "audit_log_write_failed",
                action=action,
                component=component,
                error=str(e),
            )

    async def list_logs(self, limit: int = 100, offset: int = 0) -> list[AuditLog]:
        """Most recent entries first."""
        async with self.session_factory() as session:
            stmt = select(AuditLog).order_by(AuditLog.date.desc()).limit(limit).offset(offset)
            result = await session.execute(stmt)
            return list(result.scalars().all())
