"""
Credential Resolver - Chooses the upstream key for a request.

Resolution always reads the store; nothing is cached between requests so a
deleted or replaced key stops working immediately.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import AiModelApiKey, AvailableModel, UserApiKey
from app.exceptions import InvalidApiKeyError, NotFoundError, ProviderError
from app.models.domain import KeySource, ResolvedCredential
from app.observability.metrics import metrics
from app.services.ai_providers import normalize_provider
from app.services.dispatcher import AIProxyDispatcher

logger = get_logger(__name__)


class CredentialResolver:
    """Looks up pooled and own keys and validates candidate keys live."""

    def __init__(self, session: AsyncSession, dispatcher: AIProxyDispatcher) -> None:
        self.session = session
        self.dispatcher = dispatcher

    async def resolve_for_pooled_use(self, model: str, model_name: str) -> ResolvedCredential:
        """
        Pooled key backing the catalogue entry (model family, provider model name).

        Raises:
            NotFoundError: no catalogue entry or no key behind it
        """
        provider = normalize_provider(model)
        stmt = (
            select(AvailableModel, AiModelApiKey)
            .join(AiModelApiKey, AvailableModel.model_id == AiModelApiKey.id)
            .where(
                func.lower(AvailableModel.model) == provider,
                AvailableModel.name == model_name,
            )
        )
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            logger.info("pooled_key_not_found", provider=provider, model_name=model_name)
            raise NotFoundError("API key not found")

        entry, key = row[0], row[1]
        return ResolvedCredential(
            provider=provider,
            api_key=key.api_key,
            source=KeySource.POOLED,
            model_name=entry.name,
            cost=entry.cost,
            temperature=float(entry.temperature),
        )

    async def resolve_for_own_key(self, user_id: int, model: str) -> ResolvedCredential:
        """
        The caller's own key for a provider family.

        Raises:
            NotFoundError: user has not stored a key for this family
        """
        provider = normalize_provider(model)
        stmt = select(UserApiKey).where(
            UserApiKey.user_id == user_id,
            func.lower(UserApiKey.model) == provider,
        )
        result = await self.session.execute(stmt)
        key = result.scalar_one_or_none()
        if key is None:
            logger.info("own_key_not_found", user_id=user_id, provider=provider)
            raise NotFoundError("API key not found")

        return ResolvedCredential(provider=provider, api_key=key.api_key, source=KeySource.OWN)

    async def resolve_all_own_keys(self, user_id: int) -> list[ResolvedCredential]:
        stmt = select(UserApiKey).where(UserApiKey.user_id == user_id).order_by(UserApiKey.id)
        result = await self.session.execute(stmt)
        return [
            ResolvedCredential(
                provider=normalize_provider(row.model), api_key=row.api_key, source=KeySource.OWN
            )
            for row in result.scalars().all()
        ]

    async def resolve_pooled_key_for_model(self, model: str) -> ResolvedCredential:
        """First pooled key for a family, used by admin model listing."""
        keys = await self.find_pooled_keys(model)
        if not keys:
            raise NotFoundError("API key not found")
        return ResolvedCredential(
            provider=normalize_provider(model), api_key=keys[0].api_key, source=KeySource.POOLED
        )

    async def find_pooled_keys(self, model: str) -> list[AiModelApiKey]:
        stmt = (
            select(AiModelApiKey)
            .where(func.lower(AiModelApiKey.model) == normalize_provider(model))
            .order_by(AiModelApiKey.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def validate(self, model: str, candidate_key: str) -> bool:
        """
        Live "list models" call with the candidate key.

        Every failure, including an unknown family, becomes the same
        InvalidApiKeyError so responses cannot be used to probe keys.
        """
        provider = normalize_provider(model)
        try:
            await self.dispatcher.list_models(provider, candidate_key)
        except (ProviderError, NotFoundError) as e:
            logger.info("api_key_validation_failed", provider=provider, reason=type(e).__name__)
            metrics.record_key_validation(provider, valid=False)
            raise InvalidApiKeyError(provider) from None

        metrics.record_key_validation(provider, valid=True)
        logger.info("api_key_validated", provider=provider)
        return True
