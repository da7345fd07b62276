"""
Credit Service - Account ledger: availability, debit, top-up and monthly reset.

NO DICTIONARIES - All operations use strongly typed domain models.

All counter mutations are single UPDATE ... RETURNING statements so the
store's row locking is the only concurrency control needed. The metered chat
path uses ``debit_if_sufficient``: the sufficiency condition lives in the
WHERE clause and zero rows affected means the account could not pay.
"""

import calendar
from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import Update, and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Account, Payment, Subscription
from app.exceptions import (
    InsufficientCreditsError,
    NotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from app.models.domain import AccountBalance, AvailableCredits, CreditMode
from app.observability.metrics import metrics
from app.services.admin_config import CREDIT_MODE, AdminConfigService
from app.services.audit_log import AuditLogService

logger = get_logger(__name__)

FREE_PLAN_NAME = "free"
PAYMENT_STATUS_PAID = "paid"


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def one_month_ago(now: datetime) -> datetime:
    """
    Calendar subtraction of one month.

    The day is clamped to the length of the previous month, so 31 March
    becomes 28 (or 29) February rather than rolling into March.
    """
    if now.month == 1:
        year, month = now.year - 1, 12
    else:
        year, month = now.year, now.month - 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def billing_month_start(now: datetime) -> date:
    """First day of the calendar month containing ``now``."""
    return date(now.year, now.month, 1)


def is_reset_due(last_reset: datetime, now: datetime) -> bool:
    return _as_utc(last_reset) < one_month_ago(_as_utc(now))


def parse_credit_mode(value: str) -> CreditMode:
    """Anything other than ``balance`` reads the lifetime total."""
    if value.strip().lower() == CreditMode.BALANCE.value:
        return CreditMode.BALANCE
    return CreditMode.TOTAL


def available_for_mode(balance: int, total_credits: int, mode: CreditMode) -> int:
    return balance if mode == CreditMode.BALANCE else total_credits


def apply_debit(counters: AccountBalance, amount: int) -> AccountBalance:
    """Arithmetic of ``debit``: both counters move down together, no clamping."""
    return AccountBalance(
        user_id=counters.user_id,
        balance=counters.balance - amount,
        total_credits=counters.total_credits - amount,
    )


def apply_credit(counters: AccountBalance, amount: int) -> AccountBalance:
    """Arithmetic of ``credit``: both counters move up together."""
    return AccountBalance(
        user_id=counters.user_id,
        balance=counters.balance + amount,
        total_credits=counters.total_credits + amount,
    )


def apply_reset(counters: AccountBalance, monthly_credit: int) -> AccountBalance:
    """Arithmetic of a monthly reset: balance is replaced, total accumulates."""
    return AccountBalance(
        user_id=counters.user_id,
        balance=monthly_credit,
        total_credits=counters.total_credits + monthly_credit,
    )


def _validate_amount(amount: int) -> None:
    if amount < 0:
        raise ValidationError(f"Credit amount cannot be negative: {amount}")


class CreditService:
    """
    Ledger operations on accounts.

    Every write commits immediately and is mirrored to the audit log.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: AdminConfigService,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.config = config
        self.audit = audit

    async def get_credit_mode(self) -> CreditMode:
        value = await self.config.get_value(CREDIT_MODE, not_found_message="Credit mode not found")
        return parse_credit_mode(value)

    async def get_available_credits(self, user_id: int) -> AvailableCredits:
        """
        Credits the user may spend under the platform-wide credit mode.

        Raises:
            NotFoundError: credit_mode is not configured or the account is missing
        """
        mode = await self.get_credit_mode()
        account = await self._find_account(user_id)
        if account is None:
            raise NotFoundError("Account not found")

        return AvailableCredits(
            user_id=user_id,
            available_credits=available_for_mode(account.balance, account.total_credits, mode),
            credit_mode=mode,
        )

    async def ensure_sufficient(self, user_id: int, cost: int) -> AvailableCredits:
        """
        Reject a send before any upstream call when credits do not cover ``cost``.

        Nothing is reserved; the debit happens later and re-checks atomically.
        """
        _validate_amount(cost)
        credits = await self.get_available_credits(user_id)
        if credits.available_credits < cost:
            logger.info(
                "insufficient_credits",
                user_id=user_id,
                available=credits.available_credits,
                required=cost,
                stage="precheck",
            )
            metrics.credit_rejections_total.labels(stage="precheck").inc()
            await self.audit.record(
                user_id,
                "insufficient_credits",
                f"available={credits.available_credits} required={cost}",
                "Chatbot",
                level="warn",
            )
            raise InsufficientCreditsError(credits.available_credits, cost)
        return credits

    async def check_and_reset(self, user_id: int, now: datetime | None = None) -> bool:
        """
        Monthly reset, run synchronously on every login.

        A reset is due when ``last_reset`` is older than one calendar month.
        Paid plans additionally need a ``paid`` payment for the current
        billing month. Returns True when a reset was applied.

        Raises:
            NotFoundError: Account or its subscription is missing
            PaymentNotFoundError: Paid plan without a payment this month
        """
        now = _as_utc(now or _utc_now())

        account = await self._find_account(user_id)
        if account is None:
            raise NotFoundError("Account not found")

        if not is_reset_due(account.last_reset, now):
            return False

        plan = await self._find_subscription(account.subscription_id)
        if plan is None:
            raise NotFoundError("Subscription not found")

        if Decimal(str(plan.monthly_cost)) != 0:
            billing_month = billing_month_start(now)
            if not await self._has_paid_for_month(account.id, plan.id, billing_month):
                logger.warning(
                    "credit_reset_payment_missing",
                    user_id=user_id,
                    plan=plan.name,
                    billing_month=billing_month.isoformat(),
                )
                await self.audit.record(
                    user_id,
                    "credit_reset_blocked",
                    f"no payment for {plan.name} in {billing_month.isoformat()}",
                    "Credits",
                    level="warn",
                )
                raise PaymentNotFoundError(user_id, billing_month)

        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(
                balance=plan.monthly_credit,
                total_credits=Account.total_credits + plan.monthly_credit,
                last_reset=now,
            )
            .returning(Account.user_id, Account.balance, Account.total_credits)
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            await self.session.rollback()
            raise NotFoundError("Account not found")
        await self.session.commit()

        metrics.credit_resets_total.labels(plan=plan.name).inc()
        logger.info(
            "credits_reset",
            user_id=user_id,
            plan=plan.name,
            balance=row.balance,
            total_credits=row.total_credits,
        )
        await self.audit.record(
            user_id,
            "credit_reset",
            f"plan={plan.name} balance={row.balance}",
            "Credits",
        )
        return True

    async def debit(self, user_id: int, amount: int) -> AccountBalance:
        """
        Unconditionally decrement both counters.

        Sufficiency is the caller's responsibility; the result may be negative.
        """
        _validate_amount(amount)
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(
                balance=Account.balance - amount,
                total_credits=Account.total_credits - amount,
            )
            .returning(Account.user_id, Account.balance, Account.total_credits)
        )
        counters = await self._execute_counter_update(stmt, user_id)
        logger.info("credits_debited", user_id=user_id, amount=amount, balance=counters.balance)
        await self.audit.record(user_id, "debit", f"amount={amount}", "Credits")
        return counters

    async def debit_if_sufficient(
        self, user_id: int, amount: int, mode: CreditMode | None = None
    ) -> AccountBalance:
        """
        Check and debit in one conditional UPDATE.

        The counter selected by the credit mode must cover ``amount``; if no
        row matches, a concurrent request spent the credits first.

        Raises:
            InsufficientCreditsError: The account can no longer pay
            NotFoundError: The account is missing
        """
        _validate_amount(amount)
        if mode is None:
            mode = await self.get_credit_mode()
        guard_column = Account.balance if mode == CreditMode.BALANCE else Account.total_credits

        stmt = (
            update(Account)
            .where(and_(Account.user_id == user_id, guard_column >= amount))
            .values(
                balance=Account.balance - amount,
                total_credits=Account.total_credits - amount,
            )
            .returning(Account.user_id, Account.balance, Account.total_credits)
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()

        if row is None:
            await self.session.rollback()
            account = await self._find_account(user_id)
            if account is None:
                raise NotFoundError("Account not found")
            available = available_for_mode(account.balance, account.total_credits, mode)
            logger.warning(
                "insufficient_credits",
                user_id=user_id,
                available=available,
                required=amount,
                stage="debit",
            )
            metrics.credit_rejections_total.labels(stage="debit").inc()
            await self.audit.record(
                user_id,
                "insufficient_credits",
                f"available={available} required={amount}",
                "Credits",
                level="warn",
            )
            raise InsufficientCreditsError(available, amount)

        await self.session.commit()
        counters = AccountBalance(
            user_id=row.user_id, balance=row.balance, total_credits=row.total_credits
        )
        logger.info("credits_debited", user_id=user_id, amount=amount, balance=counters.balance)
        await self.audit.record(user_id, "debit", f"amount={amount}", "Credits")
        return counters

    async def credit(self, user_id: int, amount: int) -> AccountBalance:
        """Top-up: unconditionally increment both counters."""
        _validate_amount(amount)
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(
                balance=Account.balance + amount,
                total_credits=Account.total_credits + amount,
            )
            .returning(Account.user_id, Account.balance, Account.total_credits)
        )
        counters = await self._execute_counter_update(stmt, user_id)
        metrics.credits_added_total.inc(amount)
        logger.info("credits_added", user_id=user_id, amount=amount, balance=counters.balance)
        await self.audit.record(user_id, "credit", f"amount={amount}", "Credits")
        return counters

    async def set_counters(
        self, user_id: int, balance: int, total_credits: int, actor_id: int
    ) -> AccountBalance:
        """Admin override of both counters."""
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(balance=balance, total_credits=total_credits)
            .returning(Account.user_id, Account.balance, Account.total_credits)
        )
        counters = await self._execute_counter_update(stmt, user_id)
        logger.info(
            "credits_overridden",
            user_id=user_id,
            admin_id=actor_id,
            balance=balance,
            total_credits=total_credits,
        )
        await self.audit.record(
            actor_id,
            "edit_user_credits",
            f"user_id={user_id} balance={balance} total_credits={total_credits}",
            "Users",
        )
        return counters

    async def open_account(self, user_id: int) -> Account:
        """
        Create the account for a new user on the free plan.

        Does not commit; registration commits user and account together.
        """
        plan = await self._find_subscription_by_name(FREE_PLAN_NAME)
        if plan is None:
            raise NotFoundError("Free subscription plan not found")

        account = Account(
            user_id=user_id,
            balance=plan.monthly_credit,
            total_credits=plan.monthly_credit,
            last_reset=_utc_now(),
            subscription_id=plan.id,
        )
        self.session.add(account)
        await self.session.flush()
        return account

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _execute_counter_update(self, stmt: Update, user_id: int) -> AccountBalance:
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            await self.session.rollback()
            raise NotFoundError("Account not found")
        await self.session.commit()
        return AccountBalance(
            user_id=row.user_id, balance=row.balance, total_credits=row.total_credits
        )

    async def _find_account(self, user_id: int) -> Account | None:
        stmt = select(Account).where(Account.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_subscription(self, subscription_id: int) -> Subscription | None:
        return await self.session.get(Subscription, subscription_id)

    async def _find_subscription_by_name(self, name: str) -> Subscription | None:
        stmt = select(Subscription).where(Subscription.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _has_paid_for_month(
        self, account_id: int, subscription_id: int, billing_month: date
    ) -> bool:
        stmt = (
            select(Payment.id)
            .where(
                Payment.account_id == account_id,
                Payment.subscription_id == subscription_id,
                Payment.status == PAYMENT_STATUS_PAID,
                Payment.billing_month == billing_month,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None
