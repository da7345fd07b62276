"""
API Routes - User-facing endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.

Every endpoint here requires a user session token and answers with the
``{"success": true, "data": ...}`` envelope.
"""

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    get_available_model_service,
    get_chat_service,
    get_credit_service,
    get_current_user,
    get_subscription_service,
    get_topup_service,
    get_user_api_key_service,
    get_user_service,
)
from app.models.api import (
    AccountBalanceResponse,
    ApiKeyRequest,
    ApiKeyResponse,
    ApiKeyUpdateRequest,
    AvailableCreditsResponse,
    AvailableModelResponse,
    ChatMessageRequest,
    ChatReplyResponse,
    Envelope,
    MessageResponse,
    ModelDescriptorResponse,
    SubscriptionResponse,
    TopUpPlanResponse,
    TopUpRequest,
    UpdateProfileRequest,
    UseOwnApiKeyResponse,
    UserResponse,
)
from app.models.domain import AuthenticatedUser, ChatReply, ModelDescriptor
from app.services.api_keys import UserApiKeyService
from app.services.available_models import AvailableModelService
from app.services.chatbot import ChatService
from app.services.credits import CreditService
from app.services.subscriptions import SubscriptionService, TopUpService
from app.services.users import UserService

router = APIRouter(prefix="/api")


def _chat_reply_response(reply: ChatReply) -> ChatReplyResponse:
    return ChatReplyResponse(
        content=reply.content,
        provider=reply.provider,
        model_name=reply.model_name,
        credits_charged=reply.credits_charged,
        key_source=reply.key_source.value,
    )


def _model_descriptor_response(model: ModelDescriptor) -> ModelDescriptorResponse:
    return ModelDescriptorResponse(
        id=model.id,
        provider=model.provider,
        display_name=model.display_name,
        owned_by=model.owned_by,
    )


# ============================================================================
# Users
# ============================================================================


@router.get("/users/me", response_model=Envelope[UserResponse], tags=["users"])
async def get_me(
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Envelope[UserResponse]:
    profile = await users.get_profile(user.id)
    return Envelope(data=UserResponse.model_validate(profile))


@router.get("/users/credits", response_model=Envelope[AvailableCreditsResponse], tags=["users"])
async def get_available_credits(
    user: AuthenticatedUser = Depends(get_current_user),
    credits: CreditService = Depends(get_credit_service),
) -> Envelope[AvailableCreditsResponse]:
    """Credits available under the platform's current credit mode."""
    available = await credits.get_available_credits(user.id)
    return Envelope(
        data=AvailableCreditsResponse(
            user_id=available.user_id, available_credits=available.available_credits
        )
    )


@router.put("/users/profile", response_model=Envelope[UserResponse], tags=["users"])
async def update_profile(
    body: UpdateProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Envelope[UserResponse]:
    profile = await users.update_profile(user.id, name=body.name, email=body.email)
    return Envelope(data=UserResponse.model_validate(profile))


@router.delete("/users/me", response_model=Envelope[MessageResponse], tags=["users"])
async def delete_me(
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Envelope[MessageResponse]:
    """Delete the caller's keys, account and user record."""
    await users.delete_account(user.id, actor=user.id)
    return Envelope(data=MessageResponse(message="Account deleted"))


@router.get(
    "/users/use-own-api-key", response_model=Envelope[UseOwnApiKeyResponse], tags=["users"]
)
async def get_use_own_api_key(
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Envelope[UseOwnApiKeyResponse]:
    return Envelope(data=UseOwnApiKeyResponse(enabled=await users.get_use_own_api_key()))


# ============================================================================
# Own API keys
# ============================================================================


@router.get("/user-api-key", response_model=Envelope[list[ApiKeyResponse]], tags=["user-api-key"])
async def list_user_api_keys(
    user: AuthenticatedUser = Depends(get_current_user),
    keys: UserApiKeyService = Depends(get_user_api_key_service),
) -> Envelope[list[ApiKeyResponse]]:
    rows = await keys.list_keys(user.id)
    return Envelope(data=[ApiKeyResponse.from_row(row) for row in rows])


@router.post(
    "/user-api-key",
    response_model=Envelope[ApiKeyResponse],
    status_code=status.HTTP_201_CREATED,
    tags=["user-api-key"],
)
async def add_user_api_key(
    body: ApiKeyRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    keys: UserApiKeyService = Depends(get_user_api_key_service),
) -> Envelope[ApiKeyResponse]:
    """Store a key for the caller's own provider account after validating it upstream."""
    row = await keys.add(user.id, body.model, body.api_key)
    return Envelope(data=ApiKeyResponse.from_row(row))


@router.put(
    "/user-api-key/{key_id}", response_model=Envelope[ApiKeyResponse], tags=["user-api-key"]
)
async def edit_user_api_key(
    key_id: int,
    body: ApiKeyUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    keys: UserApiKeyService = Depends(get_user_api_key_service),
) -> Envelope[ApiKeyResponse]:
    row = await keys.edit(user.id, key_id, body.api_key)
    return Envelope(data=ApiKeyResponse.from_row(row))


@router.delete(
    "/user-api-key/{key_id}", response_model=Envelope[MessageResponse], tags=["user-api-key"]
)
async def delete_user_api_key(
    key_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    keys: UserApiKeyService = Depends(get_user_api_key_service),
) -> Envelope[MessageResponse]:
    await keys.delete(user.id, key_id)
    return Envelope(data=MessageResponse(message="API key deleted"))


# ============================================================================
# Catalogue
# ============================================================================


@router.get(
    "/available-model",
    response_model=Envelope[list[AvailableModelResponse]],
    tags=["available-model"],
)
async def list_available_models(
    user: AuthenticatedUser = Depends(get_current_user),
    catalog: AvailableModelService = Depends(get_available_model_service),
) -> Envelope[list[AvailableModelResponse]]:
    """Models offered on the caller's subscription plan."""
    rows = await catalog.list_for_user(user.id)
    return Envelope(data=[AvailableModelResponse.model_validate(row) for row in rows])


# ============================================================================
# Chatbot
# ============================================================================


@router.post(
    "/chatbot/send-message", response_model=Envelope[ChatReplyResponse], tags=["chatbot"]
)
async def send_message(
    body: ChatMessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> Envelope[ChatReplyResponse]:
    """
    Send one message through a platform key.

    Credits are checked before the upstream call and debited only after it
    succeeds.
    """
    reply = await chat.send_chat_message(
        user.id, body.model, body.name, body.message, cost=body.credits
    )
    return Envelope(data=_chat_reply_response(reply))


@router.post(
    "/chatbot/send-message-own-key",
    response_model=Envelope[ChatReplyResponse],
    tags=["chatbot"],
)
async def send_message_own_key(
    body: ChatMessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> Envelope[ChatReplyResponse]:
    """Send one message through the caller's own key; metered only when the platform says so."""
    reply = await chat.send_chat_message_with_own_key(
        user.id, body.model, body.name, body.message, cost=body.credits
    )
    return Envelope(data=_chat_reply_response(reply))


@router.get(
    "/chatbot/models",
    response_model=Envelope[list[ModelDescriptorResponse]],
    tags=["chatbot"],
)
async def list_own_key_models(
    model: str = Query(..., description="Provider family: openai, deepseek, gemini"),
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> Envelope[list[ModelDescriptorResponse]]:
    models = await chat.get_model_list(user.id, model, is_admin=False)
    return Envelope(data=[_model_descriptor_response(m) for m in models])


@router.get(
    "/chatbot/models/all",
    response_model=Envelope[list[ModelDescriptorResponse]],
    tags=["chatbot"],
)
async def list_all_own_key_models(
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> Envelope[list[ModelDescriptorResponse]]:
    models = await chat.get_all_model_list(user.id)
    return Envelope(data=[_model_descriptor_response(m) for m in models])


# ============================================================================
# Plans
# ============================================================================


@router.get(
    "/subscriptions",
    response_model=Envelope[list[SubscriptionResponse]],
    tags=["subscriptions"],
)
async def list_subscriptions(
    user: AuthenticatedUser = Depends(get_current_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Envelope[list[SubscriptionResponse]]:
    plans = await subscriptions.list_plans()
    return Envelope(data=[SubscriptionResponse.model_validate(plan) for plan in plans])


@router.get("/topup/plans", response_model=Envelope[list[TopUpPlanResponse]], tags=["topup"])
async def list_topup_plans(
    user: AuthenticatedUser = Depends(get_current_user),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[list[TopUpPlanResponse]]:
    plans = await topup.list_plans()
    return Envelope(data=[TopUpPlanResponse.model_validate(plan) for plan in plans])


@router.post("/topup", response_model=Envelope[AccountBalanceResponse], tags=["topup"])
async def top_up(
    body: TopUpRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[AccountBalanceResponse]:
    """Grant a top-up pack's credits. No payment is taken."""
    balance = await topup.top_up(user.id, body.plan_id)
    return Envelope(
        data=AccountBalanceResponse(
            user_id=balance.user_id,
            balance=balance.balance,
            total_credits=balance.total_credits,
        )
    )
