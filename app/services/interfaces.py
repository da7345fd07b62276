"""
Service Interfaces - Narrow capabilities passed between catalogue services.

AvailableModelService needs to find pooled keys and AiModelApiKeyService needs
to drop catalogue entries when a key goes away. AdminService drops a departing
admin's keys through the same narrow seam. Each depends on a protocol instead
of on the other service; the composition root wires them.
"""

from typing import Protocol

from app.db.models import AiModelApiKey


class ModelKeyLookup(Protocol):
    async def find_pooled_keys(self, model: str) -> list[AiModelApiKey]:
        """Pooled keys registered for a provider family, oldest first."""
        ...


class ModelCatalogCleanup(Protocol):
    async def remove_models_for_key(self, key_id: int, actor_id: int) -> int:
        """Delete catalogue entries backed by ``key_id``; caller commits. Returns rows removed."""
        ...


class PooledKeyCleanup(Protocol):
    async def remove_keys_for_admin(self, admin_id: int) -> int:
        """Delete an admin's pooled keys and their catalogue entries; caller commits."""
        ...
