"""
API Key Services - Pooled (admin) and own (user) upstream credentials.

Both kinds are unique per (owner, model family) and validated live against
the provider before they are stored.
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import AiModelApiKey, UserApiKey
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.ai_providers import normalize_provider
from app.services.audit_log import AuditLogService
from app.services.credentials import CredentialResolver
from app.services.interfaces import ModelCatalogCleanup

logger = get_logger(__name__)


def _require_key_fields(model: str, api_key: str) -> str:
    provider = normalize_provider(model or "")
    if not provider or not (api_key or "").strip():
        raise ValidationError("Model and API key are required")
    return provider


class AiModelApiKeyService:
    """Admin-pooled keys, each scoped to the admin who added it."""

    def __init__(
        self,
        session: AsyncSession,
        resolver: CredentialResolver,
        catalog: ModelCatalogCleanup,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.catalog = catalog
        self.audit = audit

    async def list_keys(self, actor_id: int) -> list[AiModelApiKey]:
        stmt = (
            select(AiModelApiKey)
            .where(AiModelApiKey.added_by == actor_id)
            .order_by(AiModelApiKey.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_model(self, model: str) -> list[AiModelApiKey]:
        keys = await self.resolver.find_pooled_keys(model)
        if not keys:
            raise NotFoundError("API key not found")
        return keys

    async def add(self, model: str, api_key: str, actor_id: int) -> AiModelApiKey:
        provider = _require_key_fields(model, api_key)

        if await self._find_owned_by_model(provider, actor_id) is not None:
            raise ConflictError("API key already exists")

        await self.resolver.validate(provider, api_key.strip())

        key = AiModelApiKey(model=provider, api_key=api_key.strip(), added_by=actor_id)
        self.session.add(key)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("API key already exists") from e

        logger.info("pooled_key_added", provider=provider, admin_id=actor_id, key_id=key.id)
        await self.audit.record(actor_id, "add_api_key", f"model={provider}", "AiModelApiKey")
        return key

    async def edit(self, key_id: int, api_key: str, actor_id: int) -> AiModelApiKey:
        if not (api_key or "").strip():
            raise ValidationError("API key is required")
        key = await self._find_owned(key_id, actor_id)
        if key is None:
            raise NotFoundError("API key not found")

        await self.resolver.validate(key.model, api_key.strip())

        key.api_key = api_key.strip()
        await self.session.commit()

        logger.info("pooled_key_updated", provider=key.model, admin_id=actor_id, key_id=key_id)
        await self.audit.record(actor_id, "edit_api_key", f"model={key.model}", "AiModelApiKey")
        return key

    async def delete(self, key_id: int, actor_id: int) -> int:
        """
        Delete a pooled key and every catalogue entry that depends on it.

        Returns the number of catalogue entries removed.
        """
        key = await self._find_owned(key_id, actor_id)
        if key is None:
            raise NotFoundError("API key not found")

        removed = await self._remove_key(key, actor_id)
        await self.session.commit()

        logger.info(
            "pooled_key_deleted",
            provider=key.model,
            admin_id=actor_id,
            key_id=key_id,
            catalogue_entries_removed=removed,
        )
        await self.audit.record(
            actor_id,
            "delete_api_key",
            f"model={key.model} available_models_removed={removed}",
            "AiModelApiKey",
        )
        return removed

    async def remove_keys_for_admin(self, admin_id: int) -> int:
        """
        Delete every pooled key the admin added, cascading to the catalogue.

        The caller commits. Returns the number of catalogue entries removed.
        """
        removed = 0
        for key in await self.list_keys(admin_id):
            removed += await self._remove_key(key, admin_id)
        if removed:
            logger.info("pooled_keys_removed_for_admin", admin_id=admin_id, removed=removed)
        return removed

    async def _remove_key(self, key: AiModelApiKey, actor_id: int) -> int:
        removed = await self.catalog.remove_models_for_key(key.id, actor_id)
        await self.session.delete(key)
        return removed

    async def _find_owned(self, key_id: int, actor_id: int) -> AiModelApiKey | None:
        stmt = select(AiModelApiKey).where(
            AiModelApiKey.id == key_id, AiModelApiKey.added_by == actor_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_owned_by_model(self, provider: str, actor_id: int) -> AiModelApiKey | None:
        stmt = select(AiModelApiKey).where(
            func.lower(AiModelApiKey.model) == provider, AiModelApiKey.added_by == actor_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class UserApiKeyService:
    """Keys a user brings for their own upstream accounts."""

    def __init__(
        self,
        session: AsyncSession,
        resolver: CredentialResolver,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.audit = audit

    async def list_keys(self, user_id: int) -> list[UserApiKey]:
        stmt = select(UserApiKey).where(UserApiKey.user_id == user_id).order_by(UserApiKey.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, user_id: int, model: str, api_key: str) -> UserApiKey:
        """
        Store a new own key.

        Raises:
            ConflictError: the user already has a key for this family
            InvalidApiKeyError: live validation failed
        """
        provider = _require_key_fields(model, api_key)

        if await self._find_by_model(user_id, provider) is not None:
            logger.info("own_key_conflict", user_id=user_id, provider=provider)
            raise ConflictError("API key already exists")

        await self.resolver.validate(provider, api_key.strip())

        key = UserApiKey(user_id=user_id, model=provider, api_key=api_key.strip())
        self.session.add(key)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("API key already exists") from e

        logger.info("own_key_added", user_id=user_id, provider=provider)
        await self.audit.record(user_id, "add_user_api_key", f"model={provider}", "UserApiKey")
        return key

    async def edit(self, user_id: int, key_id: int, api_key: str) -> UserApiKey:
        if not (api_key or "").strip():
            raise ValidationError("API key is required")
        key = await self._find_owned(user_id, key_id)
        if key is None:
            raise NotFoundError("API key not found")

        await self.resolver.validate(key.model, api_key.strip())

        key.api_key = api_key.strip()
        await self.session.commit()

        logger.info("own_key_updated", user_id=user_id, provider=key.model)
        await self.audit.record(user_id, "edit_user_api_key", f"model={key.model}", "UserApiKey")
        return key

    async def delete(self, user_id: int, key_id: int) -> None:
        key = await self._find_owned(user_id, key_id)
        if key is None:
            raise NotFoundError("API key not found")

        await self.session.delete(key)
        await self.session.commit()

        logger.info("own_key_deleted", user_id=user_id, provider=key.model)
        await self.audit.record(
            user_id, "delete_user_api_key", f"model={key.model}", "UserApiKey"
        )

    async def _find_owned(self, user_id: int, key_id: int) -> UserApiKey | None:
        stmt = select(UserApiKey).where(UserApiKey.id == key_id, UserApiKey.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_by_model(self, user_id: int, provider: str) -> UserApiKey | None:
        stmt = select(UserApiKey).where(
            UserApiKey.user_id == user_id, func.lower(UserApiKey.model) == provider
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
