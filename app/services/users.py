"""
User Service - Profiles, account listing and deletion.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Account, User, UserApiKey
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.domain import UserAccountSummary
from app.services.admin_config import USER_USE_OWN_API_KEY, AdminConfigService
from app.services.audit_log import AuditLogService
from app.services.auth import EMAIL_PATTERN, normalize_email

logger = get_logger(__name__)


class UserService:
    """User-facing and admin-facing user management."""

    def __init__(
        self, session: AsyncSession, config: AdminConfigService, audit: AuditLogService
    ) -> None:
        self.session = session
        self.config = config
        self.audit = audit

    async def get_profile(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(
        self, user_id: int, name: str | None = None, email: str | None = None
    ) -> User:
        user = await self.get_profile(user_id)

        if email is not None:
            email = normalize_email(email)
            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid email format")
            if email != user.email:
                stmt = select(User.id).where(func.lower(User.email) == email, User.id != user_id)
                if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
                    raise ConflictError("Email already exists")
                user.email = email
        if name is not None:
            user.name = name.strip() or None

        await self.session.commit()
        logger.info("user_profile_updated", user_id=user_id)
        await self.audit.record(user_id, "update_profile", None, "Users")
        return user

    async def delete_account(self, user_id: int, actor: str | int) -> None:
        """Remove the user's own keys, their account and the user row."""
        user = await self.get_profile(user_id)

        await self.session.execute(delete(UserApiKey).where(UserApiKey.user_id == user_id))
        await self.session.execute(delete(Account).where(Account.user_id == user_id))
        await self.session.delete(user)
        await self.session.commit()

        logger.info("user_deleted", user_id=user_id, actor=str(actor))
        await self.audit.record(actor, "delete_user", f"user_id={user_id}", "Users")

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[UserAccountSummary]:
        stmt = (
            select(User, Account)
            .join(Account, Account.user_id == User.id)
            .order_by(User.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [
            UserAccountSummary(
                user_id=user.id,
                name=user.name,
                email=user.email,
                balance=account.balance,
                total_credits=account.total_credits,
                subscription_id=account.subscription_id,
                last_reset=account.last_reset,
            )
            for user, account in result.tuples().all()
        ]

    async def get_use_own_api_key(self) -> bool:
        return await self.config.get_flag(USER_USE_OWN_API_KEY)
