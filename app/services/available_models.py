"""
Available Model Service - Admin-curated catalogue of priced models.

Each entry points at the pooled key that pays for it. Entries are found
through the ModelKeyLookup capability and removed through this service's own
``remove_models_for_key`` when the key is deleted.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Account, AvailableModel
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.ai_providers import DEFAULT_TEMPERATURE, get_adapter_class, normalize_provider
from app.services.audit_log import AuditLogService
from app.services.interfaces import ModelKeyLookup
from app.services.subscriptions import SubscriptionService

logger = get_logger(__name__)

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


def _validate_temperature(temperature: float) -> float:
    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ValidationError("Temperature must be between 0 and 2")
    return temperature


def _validate_cost(cost: int) -> int:
    if cost < 0:
        raise ValidationError("Cost cannot be negative")
    return cost


class AvailableModelService:
    """Catalogue reads for users and CRUD for admins."""

    def __init__(
        self,
        session: AsyncSession,
        key_lookup: ModelKeyLookup,
        subscriptions: SubscriptionService,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.key_lookup = key_lookup
        self.subscriptions = subscriptions
        self.audit = audit

    async def list_for_user(self, user_id: int) -> list[AvailableModel]:
        """Entries for the user's current subscription."""
        stmt = (
            select(AvailableModel)
            .join(Account, Account.subscription_id == AvailableModel.subscription_id)
            .where(Account.user_id == user_id)
            .order_by(AvailableModel.model, AvailableModel.name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self) -> list[AvailableModel]:
        stmt = select(AvailableModel).order_by(AvailableModel.model, AvailableModel.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(
        self,
        model: str,
        name: str,
        account_type: str,
        cost: int | None,
        actor_id: int,
        display_name: str | None = None,
        temperature: float | None = None,
    ) -> AvailableModel:
        """
        Add a catalogue entry.

        Raises:
            ValidationError: missing fields, bad temperature or cost
            NotFoundError: no pooled key for the family, or unknown subscription
            ConflictError: an entry with this provider model name exists
        """
        provider = normalize_provider(model or "")
        name = (name or "").strip()
        if not provider or not name or not (account_type or "").strip() or cost is None:
            raise ValidationError("Model, name, account type and cost are required")
        if get_adapter_class(provider) is None:
            raise ValidationError(f"Unsupported AI model: {provider}")

        temperature = _validate_temperature(
            DEFAULT_TEMPERATURE if temperature is None else temperature
        )
        cost = _validate_cost(cost)

        keys = await self.key_lookup.find_pooled_keys(provider)
        if not keys:
            raise NotFoundError("API key not found")
        key = next((k for k in keys if k.added_by == actor_id), keys[0])

        plan = await self.subscriptions.get_by_name(account_type)

        if await self._find_by_name(name) is not None:
            raise ConflictError("Model already exists")

        entry = AvailableModel(
            model_id=key.id,
            model=provider,
            name=name,
            display_name=display_name or name,
            subscription_id=plan.id,
            cost=cost,
            temperature=temperature,
            added_by=actor_id,
        )
        self.session.add(entry)
        await self.session.commit()

        logger.info(
            "available_model_added",
            provider=provider,
            model_name=name,
            plan=plan.name,
            cost=cost,
            admin_id=actor_id,
        )
        await self.audit.record(
            actor_id,
            "add_available_model",
            f"{provider}/{name} plan={plan.name} cost={cost}",
            "AvailableModel",
        )
        return entry

    async def edit(
        self,
        entry_id: int,
        actor_id: int,
        display_name: str | None = None,
        account_type: str | None = None,
        cost: int | None = None,
        temperature: float | None = None,
    ) -> AvailableModel:
        entry = await self.session.get(AvailableModel, entry_id)
        if entry is None:
            raise NotFoundError("Model not found")

        if display_name is not None:
            entry.display_name = display_name
        if account_type is not None:
            plan = await self.subscriptions.get_by_name(account_type)
            entry.subscription_id = plan.id
        if cost is not None:
            entry.cost = _validate_cost(cost)
        if temperature is not None:
            entry.temperature = _validate_temperature(temperature)
        await self.session.commit()

        logger.info("available_model_updated", entry_id=entry_id, admin_id=actor_id)
        await self.audit.record(
            actor_id, "edit_available_model", f"{entry.model}/{entry.name}", "AvailableModel"
        )
        return entry

    async def delete(self, name: str, actor_id: int) -> None:
        entry = await self._find_by_name((name or "").strip())
        if entry is None:
            raise NotFoundError("Model not found")

        await self.session.delete(entry)
        await self.session.commit()

        logger.info("available_model_deleted", model_name=entry.name, admin_id=actor_id)
        await self.audit.record(
            actor_id, "delete_available_model", f"{entry.model}/{entry.name}", "AvailableModel"
        )

    async def remove_models_for_key(self, key_id: int, actor_id: int) -> int:
        """Cascade for pooled key deletion. The caller commits."""
        stmt = delete(AvailableModel).where(AvailableModel.model_id == key_id)
        result = await self.session.execute(stmt)
        removed = result.rowcount or 0
        if removed:
            logger.info(
                "available_models_cascaded", key_id=key_id, removed=removed, admin_id=actor_id
            )
        return removed

    async def _find_by_name(self, name: str) -> AvailableModel | None:
        stmt = select(AvailableModel).where(AvailableModel.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
