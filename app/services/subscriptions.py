"""
Subscription Catalog - Named plans and one-off top-up packs.

Plan names are stored lowercased. Top-up is a payment stub: it grants the
pack's credits through the credit service without charging anyone.
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Account, AvailableModel, Subscription, TopUpPlan
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.domain import AccountBalance
from app.services.audit_log import AuditLogService
from app.services.credits import FREE_PLAN_NAME, CreditService

logger = get_logger(__name__)


class SubscriptionService:
    """CRUD over subscription plans."""

    def __init__(self, session: AsyncSession, audit: AuditLogService) -> None:
        self.session = session
        self.audit = audit

    async def list_plans(self) -> list[Subscription]:
        result = await self.session.execute(select(Subscription).order_by(Subscription.id))
        return list(result.scalars().all())

    async def get_by_name(self, name: str) -> Subscription:
        stmt = select(Subscription).where(Subscription.name == name.strip().lower())
        result = await self.session.execute(stmt)
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError("Subscription not found")
        return plan

    async def add(
        self,
        name: str,
        monthly_cost: float,
        annual_cost: float,
        monthly_credit: int,
        actor_id: int,
    ) -> Subscription:
        name = name.strip().lower()
        if not name:
            raise ValidationError("All fields are required")
        if await self._find_by_name(name) is not None:
            raise ConflictError("Subscription already exists")

        plan = Subscription(
            name=name,
            monthly_cost=monthly_cost,
            annual_cost=annual_cost,
            monthly_credit=monthly_credit,
        )
        self.session.add(plan)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("Subscription already exists") from e

        logger.info("subscription_added", name=name, admin_id=actor_id)
        await self.audit.record(actor_id, "add_subscription", name, "Subscription")
        return plan

    async def edit(
        self,
        subscription_id: int,
        name: str,
        monthly_cost: float,
        annual_cost: float,
        monthly_credit: int,
        actor_id: int,
    ) -> Subscription:
        plan = await self.session.get(Subscription, subscription_id)
        if plan is None:
            raise NotFoundError("Subscription not found")

        if name.strip().lower() != plan.name:
            raise ValidationError("Subscription name cannot be changed")

        plan.monthly_cost = monthly_cost
        plan.annual_cost = annual_cost
        plan.monthly_credit = monthly_credit
        await self.session.commit()

        logger.info("subscription_updated", subscription_id=subscription_id, admin_id=actor_id)
        await self.audit.record(actor_id, "edit_subscription", plan.name, "Subscription")
        return plan

    async def delete(self, subscription_id: int, actor_id: int) -> None:
        plan = await self.session.get(Subscription, subscription_id)
        if plan is None:
            raise NotFoundError("Subscription not found")
        if plan.name == FREE_PLAN_NAME:
            raise ValidationError("The free plan cannot be deleted")
        if await self._reference_count(subscription_id) > 0:
            raise ConflictError("Subscription is in use")

        await self.session.delete(plan)
        await self.session.commit()

        logger.info("subscription_deleted", name=plan.name, admin_id=actor_id)
        await self.audit.record(actor_id, "delete_subscription", plan.name, "Subscription")

    async def ensure_free_plan(self, monthly_credit: int) -> bool:
        """Create the registration plan if missing. Returns True when created."""
        if await self._find_by_name(FREE_PLAN_NAME) is not None:
            return False
        self.session.add(
            Subscription(
                name=FREE_PLAN_NAME, monthly_cost=0, annual_cost=0, monthly_credit=monthly_credit
            )
        )
        await self.session.commit()
        logger.info("free_plan_seeded", monthly_credit=monthly_credit)
        return True

    async def _find_by_name(self, name: str) -> Subscription | None:
        stmt = select(Subscription).where(Subscription.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _reference_count(self, subscription_id: int) -> int:
        accounts = await self.session.execute(
            select(func.count()).select_from(Account).where(
                Account.subscription_id == subscription_id
            )
        )
        models = await self.session.execute(
            select(func.count()).select_from(AvailableModel).where(
                AvailableModel.subscription_id == subscription_id
            )
        )
        return int(accounts.scalar_one()) + int(models.scalar_one())


class TopUpService:
    """Credit packs and the (unpaid) top-up stub."""

    def __init__(
        self, session: AsyncSession, credits: CreditService, audit: AuditLogService
    ) -> None:
        self.session = session
        self.credits = credits
        self.audit = audit

    async def list_plans(self) -> list[TopUpPlan]:
        result = await self.session.execute(select(TopUpPlan).order_by(TopUpPlan.cost))
        return list(result.scalars().all())

    async def top_up(self, user_id: int, plan_id: int) -> AccountBalance:
        """Grant a pack's credits. No payment is taken."""
        plan = await self.session.get(TopUpPlan, plan_id)
        if plan is None:
            raise NotFoundError("Top-up plan not found")

        counters = await self.credits.credit(user_id, plan.credits)
        logger.info("top_up_applied", user_id=user_id, plan=plan.name, credits=plan.credits)
        return counters

    async def add_plan(self, name: str, cost: float, credits: int, actor_id: int) -> TopUpPlan:
        name = name.strip().lower()
        existing = await self.session.execute(select(TopUpPlan).where(TopUpPlan.name == name))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Top-up plan already exists")

        plan = TopUpPlan(name=name, cost=cost, credits=credits)
        self.session.add(plan)
        await self.session.commit()

        await self.audit.record(actor_id, "add_top_up_plan", name, "TopUp")
        return plan

    async def edit_plan(
        self, plan_id: int, name: str, cost: float, credits: int, actor_id: int
    ) -> TopUpPlan:
        plan = await self.session.get(TopUpPlan, plan_id)
        if plan is None:
            raise NotFoundError("Top-up plan not found")
        plan.name = name.strip().lower()
        plan.cost = cost
        plan.credits = credits
        await self.session.commit()

        await self.audit.record(actor_id, "edit_top_up_plan", plan.name, "TopUp")
        return plan

    async def delete_plan(self, plan_id: int, actor_id: int) -> None:
        plan = await self.session.get(TopUpPlan, plan_id)
        if plan is None:
            raise NotFoundError("Top-up plan not found")
        await self.session.delete(plan)
        await self.session.commit()

        await self.audit.record(actor_id, "delete_top_up_plan", plan.name, "TopUp")
