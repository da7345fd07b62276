"""
Chat Service - Metered chat sends and model listing.

A metered send runs in this order:
1. sufficiency check (no credits are held)
2. credential resolution
3. upstream chat completion
4. conditional debit, only after a successful completion

A failure in step 3 propagates and nothing is charged. On the own-key path the
``deduct_credit_using_own_key`` toggle is read before anything else and, when
off, steps 1 and 4 are skipped entirely.
"""

import time

from structlog import get_logger

from app.exceptions import ProviderError, ValidationError
from app.models.domain import ChatReply, KeySource, ModelDescriptor, ResolvedCredential
from app.observability.metrics import metrics
from app.services.admin_config import DEDUCT_CREDIT_USING_OWN_KEY, AdminConfigService
from app.services.audit_log import AuditLogService
from app.services.credentials import CredentialResolver
from app.services.credits import CreditService
from app.services.dispatcher import AIProxyDispatcher

logger = get_logger(__name__)


class ChatService:
    """Ties the credit ledger, the credential resolver and the dispatcher together."""

    def __init__(
        self,
        credits: CreditService,
        resolver: CredentialResolver,
        dispatcher: AIProxyDispatcher,
        config: AdminConfigService,
        audit: AuditLogService,
    ) -> None:
        self.credits = credits
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.config = config
        self.audit = audit

    async def send_chat_message(
        self,
        user_id: int,
        model: str,
        name: str,
        message: str,
        cost: int | None = None,
    ) -> ChatReply:
        """
        Send one message through a pooled key and charge platform credits.

        ``cost`` is the caller-declared price; when omitted the catalogue
        entry's price applies.
        """
        if not model or not name:
            raise ValidationError("Model and name are required")
        if not message:
            raise ValidationError("Message is required")

        if cost is not None:
            await self.credits.ensure_sufficient(user_id, cost)

        credential = await self.resolver.resolve_for_pooled_use(model, name)

        if cost is None:
            cost = credential.cost or 0
            await self.credits.ensure_sufficient(user_id, cost)

        content = await self._dispatch(user_id, credential, name, message)

        if cost > 0:
            await self.credits.debit_if_sufficient(user_id, cost)
            metrics.record_debit(KeySource.POOLED.value, cost)

        await self.audit.record(
            user_id,
            "send_chat_message",
            f"{credential.provider}/{name} cost={cost}",
            "Chatbot",
        )
        return ChatReply(
            content=content,
            provider=credential.provider,
            model_name=name,
            credits_charged=cost,
            key_source=KeySource.POOLED,
        )

    async def send_chat_message_with_own_key(
        self,
        user_id: int,
        model: str,
        name: str,
        message: str,
        cost: int | None = None,
    ) -> ChatReply:
        """Send one message through the caller's own key, metered only if the toggle is on."""
        if not model or not name or not message:
            raise ValidationError("Model, name and message are required")

        deduct = await self.config.get_flag(DEDUCT_CREDIT_USING_OWN_KEY)
        charge = (cost or 0) if deduct else 0

        if deduct:
            await self.credits.ensure_sufficient(user_id, charge)

        credential = await self.resolver.resolve_for_own_key(user_id, model)
        content = await self._dispatch(user_id, credential, name, message)

        if deduct and charge > 0:
            await self.credits.debit_if_sufficient(user_id, charge)
            metrics.record_debit(KeySource.OWN.value, charge)

        await self.audit.record(
            user_id,
            "send_chat_message_own_key",
            f"{credential.provider}/{name} cost={charge} deduct={deduct}",
            "Chatbot",
        )
        return ChatReply(
            content=content,
            provider=credential.provider,
            model_name=name,
            credits_charged=charge,
            key_source=KeySource.OWN,
        )

    async def get_model_list(
        self, user_id: int, model: str, is_admin: bool
    ) -> list[ModelDescriptor]:
        """Models visible to the pooled key (admins) or the caller's own key (users)."""
        if not model:
            raise ValidationError("Model is required")
        if is_admin:
            credential = await self.resolver.resolve_pooled_key_for_model(model)
        else:
            credential = await self.resolver.resolve_for_own_key(user_id, model)
        return await self.dispatcher.list_models(credential.provider, credential.api_key)

    async def get_all_model_list(self, user_id: int) -> list[ModelDescriptor]:
        """Models across every own key the user has stored."""
        keys = await self.resolver.resolve_all_own_keys(user_id)
        models: list[ModelDescriptor] = []
        for credential in keys:
            models.extend(await self.dispatcher.list_models(credential.provider, credential.api_key))
        return models

    async def _dispatch(
        self, user_id: int, credential: ResolvedCredential, model_name: str, message: str
    ) -> str:
        started = time.perf_counter()
        try:
            content = await self.dispatcher.get_chat_completion(
                credential.provider,
                credential.api_key,
                model_name,
                message,
                temperature=credential.temperature,
            )
        except ProviderError as e:
            metrics.record_chat_dispatch(
                credential.provider,
                credential.source.value,
                "error",
                time.perf_counter() - started,
            )
            logger.warning(
                "chat_dispatch_failed",
                user_id=user_id,
                provider=credential.provider,
                model_name=model_name,
                upstream_status=e.upstream_status,
            )
            await self.audit.record(
                user_id,
                "chat_dispatch_failed",
                f"{credential.provider}/{model_name}: {e.detail}",
                "Chatbot",
                level="error",
            )
            raise

        if not content:
            metrics.record_chat_dispatch(
                credential.provider, credential.source.value, "empty", time.perf_counter() - started
            )
            raise ProviderError(credential.provider, None, "Empty response from provider")

        metrics.record_chat_dispatch(
            credential.provider, credential.source.value, "success", time.perf_counter() - started
        )
        return content
