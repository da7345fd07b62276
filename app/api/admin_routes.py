"""
Admin API routes for managing the gateway.

Every route sits behind IP control and admin token authentication; each one
also names the permission a limited admin needs. Super-admins pass every
permission check.
"""

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    get_admin_config_service,
    get_admin_service,
    get_ai_model_api_key_service,
    get_audit_log,
    get_auth_service,
    get_available_model_service,
    get_blacklist_service,
    get_chat_service,
    get_country_catalog,
    get_credit_service,
    get_current_admin,
    get_permission_registry,
    get_subscription_service,
    get_topup_service,
    get_user_service,
    get_whitelist_service,
    require_permission,
    verify_ip_access,
)
from app.models.api import (
    AccountBalanceResponse,
    AdminConfigRequest,
    AdminConfigResponse,
    AdminConfigUpdateRequest,
    AdminCreateRequest,
    AdminPermissionResponse,
    AdminPermissionsReplaceRequest,
    AdminProfileUpdateRequest,
    AdminResponse,
    ApiKeyRequest,
    ApiKeyResponse,
    ApiKeyUpdateRequest,
    AuditLogResponse,
    AvailableModelRequest,
    AvailableModelResponse,
    AvailableModelUpdateRequest,
    BlacklistCountryRequest,
    BlacklistCountryResponse,
    CountryResponse,
    Envelope,
    MessageResponse,
    ModelDescriptorResponse,
    PermissionResponse,
    PermissionUpdateRequest,
    RegisterRequest,
    SubscriptionRequest,
    SubscriptionResponse,
    TopUpPlanRequest,
    TopUpPlanResponse,
    UserAccountResponse,
    UserCreditsUpdateRequest,
    UserResponse,
    WhitelistIPRequest,
    WhitelistIPResponse,
)
from app.models.domain import AuthenticatedAdmin
from app.permissions import Permission
from app.services.access_control import (
    BlacklistCountryService,
    CountryCatalog,
    WhitelistIPService,
)
from app.services.admin_config import (
    CREDIT_MODE,
    USER_USE_OWN_API_KEY,
    AdminConfigService,
)
from app.services.admins import AdminService
from app.services.api_keys import AiModelApiKeyService
from app.services.audit_log import AuditLogService
from app.services.auth import AuthService
from app.services.available_models import AvailableModelService
from app.services.chatbot import ChatService
from app.services.credits import CreditService
from app.services.permission_registry import PermissionRegistryService
from app.services.subscriptions import SubscriptionService, TopUpService
from app.services.users import UserService

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_ip_access)],
)


# ============================================================================
# Admins
# ============================================================================


@router.get("/me", response_model=Envelope[AdminResponse])
async def get_me(
    admin: AuthenticatedAdmin = Depends(get_current_admin),
    admins: AdminService = Depends(get_admin_service),
) -> Envelope[AdminResponse]:
    row = await admins.get_admin(admin.id)
    return Envelope(data=AdminResponse.model_validate(row))


@router.put("/me", response_model=Envelope[AdminResponse])
async def update_my_profile(
    body: AdminProfileUpdateRequest,
    admin: AuthenticatedAdmin = Depends(get_current_admin),
    admins: AdminService = Depends(get_admin_service),
) -> Envelope[AdminResponse]:
    row = await admins.update_admin_profile(
        admin.id, admin, name=body.name, email=body.email, password=body.password
    )
    return Envelope(data=AdminResponse.model_validate(row))


@router.get("/admins", response_model=Envelope[list[AdminResponse]])
async def list_admins(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_READ)),
    admins: AdminService = Depends(get_admin_service),
) -> Envelope[list[AdminResponse]]:
    rows = await admins.list_admins()
    return Envelope(data=[AdminResponse.model_validate(row) for row in rows])


@router.post(
    "/admins", response_model=Envelope[AdminResponse], status_code=status.HTTP_201_CREATED
)
async def create_admin(
    body: AdminCreateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_CREATE)),
    admins: AdminService = Depends(get_admin_service),
) -> Envelope[AdminResponse]:
    """Create an admin. Limited admins (user_type != "1") need permission_ids."""
    row = await admins.create_admin(
        body.name,
        body.email,
        body.password,
        body.user_type,
        body.permission_ids,
        actor=admin,
    )
    return Envelope(data=AdminResponse.model_validate(row))


@router.put("/admins/{admin_id}", response_model=Envelope[AdminResponse])
async def update_admin(
    admin_id: int,
    body: AdminProfileUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_UPDATE)),
    admins: AdminService = Depends(get_admin_service),
) -> Envelope[AdminResponse]:
    row = await admins.update_admin_profile(
        admin_id, admin, name=body.name, email=body.email, password=body.password
    )
    return Envelope(data=AdminResponse.model_validate(row))


@router.delete("/admins/{admin_id}", response_model=Envelope[MessageResponse])
async def delete_admin(
    admin_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_DELETE)),
    admins: AdminService = Depends(get_admin_service),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
    configs: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[MessageResponse]:
    """Delete an admin; their pooled keys and catalogue entries go with them."""
    await admins.delete_admin(admin_id, admin, keys, configs)
    return Envelope(data=MessageResponse(message="Admin deleted"))


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=Envelope[list[UserAccountResponse]])
async def list_users(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.USER_READ)),
    users: UserService = Depends(get_user_service),
) -> Envelope[list[UserAccountResponse]]:
    rows = await users.list_users(limit=limit, offset=offset)
    return Envelope(data=[UserAccountResponse.model_validate(row) for row in rows])


@router.post(
    "/users", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED
)
async def create_user(
    body: RegisterRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.USER_CREATE)),
    auth: AuthService = Depends(get_auth_service),
) -> Envelope[UserResponse]:
    """Register a user on the free plan on their behalf."""
    user = await auth.register(body.name, body.email, body.password)
    return Envelope(data=UserResponse.model_validate(user))


@router.put("/users/{user_id}", response_model=Envelope[AccountBalanceResponse])
async def edit_user_credits(
    user_id: int,
    body: UserCreditsUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.USER_UPDATE)),
    credits: CreditService = Depends(get_credit_service),
) -> Envelope[AccountBalanceResponse]:
    """Overwrite both credit counters. Logged as an admin override."""
    counters = await credits.set_counters(
        user_id, body.balance, body.total_credits, actor_id=admin.id
    )
    return Envelope(
        data=AccountBalanceResponse(
            user_id=counters.user_id,
            balance=counters.balance,
            total_credits=counters.total_credits,
        )
    )


@router.delete("/users/{user_id}", response_model=Envelope[MessageResponse])
async def delete_user(
    user_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.USER_DELETE)),
    users: UserService = Depends(get_user_service),
) -> Envelope[MessageResponse]:
    await users.delete_account(user_id, actor=admin.id)
    return Envelope(data=MessageResponse(message="User deleted"))


# ============================================================================
# Platform configuration
# ============================================================================


@router.get("/config", response_model=Envelope[list[AdminConfigResponse]])
async def list_configs(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_CONFIG_READ)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[list[AdminConfigResponse]]:
    rows = await config.list_configs()
    return Envelope(data=[AdminConfigResponse.model_validate(row) for row in rows])


@router.post(
    "/config",
    response_model=Envelope[AdminConfigResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_config(
    body: AdminConfigRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_CONFIG_CREATE)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[AdminConfigResponse]:
    row = await config.add(body.name, body.value, actor_id=admin.id)
    return Envelope(data=AdminConfigResponse.model_validate(row))


@router.put("/config/credit-mode", response_model=Envelope[AdminConfigResponse])
async def update_credit_mode(
    body: AdminConfigUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.CREDIT_MODE_UPDATE)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[AdminConfigResponse]:
    """Switch available credits between the running balance and the lifetime total."""
    row = await config.edit(CREDIT_MODE, body.value, actor_id=admin.id)
    return Envelope(data=AdminConfigResponse.model_validate(row))


@router.put("/config/user-use-own-api-key", response_model=Envelope[AdminConfigResponse])
async def update_user_use_own_api_key(
    body: AdminConfigUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.USER_OWN_API_KEY_UPDATE)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[AdminConfigResponse]:
    row = await config.edit(USER_USE_OWN_API_KEY, body.value, actor_id=admin.id)
    return Envelope(data=AdminConfigResponse.model_validate(row))


@router.put("/config/{name}", response_model=Envelope[AdminConfigResponse])
async def edit_config(
    name: str,
    body: AdminConfigUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_CONFIG_UPDATE)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[AdminConfigResponse]:
    """Only the admin who created the entry may change it."""
    row = await config.edit(name, body.value, actor_id=admin.id)
    return Envelope(data=AdminConfigResponse.model_validate(row))


@router.delete("/config/{name}", response_model=Envelope[MessageResponse])
async def delete_config(
    name: str,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_CONFIG_DELETE)),
    config: AdminConfigService = Depends(get_admin_config_service),
) -> Envelope[MessageResponse]:
    await config.delete(name, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="Configuration deleted"))


# ============================================================================
# Permissions
# ============================================================================


@router.get("/permissions", response_model=Envelope[list[PermissionResponse]])
async def list_permissions(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.PERMISSION_READ)),
    registry: PermissionRegistryService = Depends(get_permission_registry),
) -> Envelope[list[PermissionResponse]]:
    rows = await registry.list_permissions()
    return Envelope(data=[PermissionResponse.model_validate(row) for row in rows])


@router.put("/permissions/{permission_id}", response_model=Envelope[PermissionResponse])
async def edit_permission(
    permission_id: int,
    body: PermissionUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.PERMISSION_UPDATE)),
    registry: PermissionRegistryService = Depends(get_permission_registry),
) -> Envelope[PermissionResponse]:
    row = await registry.edit_permission(permission_id, body.name, actor_id=admin.id)
    return Envelope(data=PermissionResponse.model_validate(row))


@router.get("/admin-permissions", response_model=Envelope[list[AdminPermissionResponse]])
async def list_admin_permissions(
    admin_id: int | None = Query(None),
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_PERMISSION_READ)),
    registry: PermissionRegistryService = Depends(get_permission_registry),
) -> Envelope[list[AdminPermissionResponse]]:
    rows = await registry.list_admin_permissions(admin_id)
    return Envelope(
        data=[
            AdminPermissionResponse(admin_id=aid, permission_id=pid, permission=name)
            for aid, pid, name in rows
        ]
    )


@router.put("/admin-permissions/{admin_id}", response_model=Envelope[list[int]])
async def replace_admin_permissions(
    admin_id: int,
    body: AdminPermissionsReplaceRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.ADMIN_PERMISSION_UPDATE)),
    registry: PermissionRegistryService = Depends(get_permission_registry),
) -> Envelope[list[int]]:
    """
    Replace an admin's grants.

    An empty list is rejected. The change applies at the admin's next login.
    """
    granted = await registry.replace_admin_permissions(
        admin_id, body.permission_ids, actor_id=admin.id
    )
    return Envelope(data=granted)


# ============================================================================
# Pooled API keys
# ============================================================================


@router.get("/ai-model-api-keys", response_model=Envelope[list[ApiKeyResponse]])
async def list_api_keys(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.API_KEY_READ)),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
) -> Envelope[list[ApiKeyResponse]]:
    rows = await keys.list_keys(admin.id)
    return Envelope(data=[ApiKeyResponse.from_row(row) for row in rows])


@router.get("/ai-model-api-keys/{model}", response_model=Envelope[list[ApiKeyResponse]])
async def get_api_keys_by_model(
    model: str,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.API_KEY_READ)),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
) -> Envelope[list[ApiKeyResponse]]:
    rows = await keys.get_by_model(model)
    return Envelope(data=[ApiKeyResponse.from_row(row) for row in rows])


@router.post(
    "/ai-model-api-keys",
    response_model=Envelope[ApiKeyResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_api_key(
    body: ApiKeyRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.API_KEY_CREATE)),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
) -> Envelope[ApiKeyResponse]:
    """Add a pooled key after validating it against the provider."""
    row = await keys.add(body.model, body.api_key, actor_id=admin.id)
    return Envelope(data=ApiKeyResponse.from_row(row))


@router.put("/ai-model-api-keys/{key_id}", response_model=Envelope[ApiKeyResponse])
async def edit_api_key(
    key_id: int,
    body: ApiKeyUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.API_KEY_UPDATE)),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
) -> Envelope[ApiKeyResponse]:
    row = await keys.edit(key_id, body.api_key, actor_id=admin.id)
    return Envelope(data=ApiKeyResponse.from_row(row))


@router.delete("/ai-model-api-keys/{key_id}", response_model=Envelope[MessageResponse])
async def delete_api_key(
    key_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.API_KEY_DELETE)),
    keys: AiModelApiKeyService = Depends(get_ai_model_api_key_service),
) -> Envelope[MessageResponse]:
    """Delete a pooled key together with the catalogue entries it backs."""
    removed = await keys.delete(key_id, actor_id=admin.id)
    return Envelope(
        data=MessageResponse(message=f"API key deleted ({removed} available models removed)")
    )


@router.get("/ai-models", response_model=Envelope[list[ModelDescriptorResponse]])
async def list_provider_models(
    model: str = Query(..., description="Provider family: openai, deepseek, gemini"),
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.AI_MODEL_READ)),
    chat: ChatService = Depends(get_chat_service),
) -> Envelope[list[ModelDescriptorResponse]]:
    """Models the pooled key for ``model`` can reach upstream."""
    models = await chat.get_model_list(admin.id, model, is_admin=True)
    return Envelope(
        data=[
            ModelDescriptorResponse(
                id=m.id, provider=m.provider, display_name=m.display_name, owned_by=m.owned_by
            )
            for m in models
        ]
    )


# ============================================================================
# Catalogue
# ============================================================================


@router.get("/available-models", response_model=Envelope[list[AvailableModelResponse]])
async def list_available_models(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.AVAILABLE_MODEL_READ)),
    catalog: AvailableModelService = Depends(get_available_model_service),
) -> Envelope[list[AvailableModelResponse]]:
    rows = await catalog.list_all()
    return Envelope(data=[AvailableModelResponse.model_validate(row) for row in rows])


@router.post(
    "/available-models",
    response_model=Envelope[AvailableModelResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_available_model(
    body: AvailableModelRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.AVAILABLE_MODEL_CREATE)),
    catalog: AvailableModelService = Depends(get_available_model_service),
) -> Envelope[AvailableModelResponse]:
    row = await catalog.add(
        body.model,
        body.name,
        body.account_type,
        body.cost,
        actor_id=admin.id,
        display_name=body.display_name,
        temperature=body.temperature,
    )
    return Envelope(data=AvailableModelResponse.model_validate(row))


@router.put("/available-models/{entry_id}", response_model=Envelope[AvailableModelResponse])
async def edit_available_model(
    entry_id: int,
    body: AvailableModelUpdateRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.AVAILABLE_MODEL_UPDATE)),
    catalog: AvailableModelService = Depends(get_available_model_service),
) -> Envelope[AvailableModelResponse]:
    row = await catalog.edit(
        entry_id,
        actor_id=admin.id,
        display_name=body.display_name,
        account_type=body.account_type,
        cost=body.cost,
        temperature=body.temperature,
    )
    return Envelope(data=AvailableModelResponse.model_validate(row))


@router.delete("/available-models/{name}", response_model=Envelope[MessageResponse])
async def delete_available_model(
    name: str,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.AVAILABLE_MODEL_DELETE)),
    catalog: AvailableModelService = Depends(get_available_model_service),
) -> Envelope[MessageResponse]:
    await catalog.delete(name, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="Model deleted"))


# ============================================================================
# Subscriptions and top-up plans
# ============================================================================


@router.get("/subscriptions", response_model=Envelope[list[SubscriptionResponse]])
async def list_subscriptions(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_READ)),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Envelope[list[SubscriptionResponse]]:
    plans = await subscriptions.list_plans()
    return Envelope(data=[SubscriptionResponse.model_validate(plan) for plan in plans])


@router.post(
    "/subscriptions",
    response_model=Envelope[SubscriptionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_subscription(
    body: SubscriptionRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_CREATE)),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Envelope[SubscriptionResponse]:
    plan = await subscriptions.add(
        body.name, body.monthly_cost, body.annual_cost, body.monthly_credit, actor_id=admin.id
    )
    return Envelope(data=SubscriptionResponse.model_validate(plan))


@router.put("/subscriptions/{subscription_id}", response_model=Envelope[SubscriptionResponse])
async def edit_subscription(
    subscription_id: int,
    body: SubscriptionRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_UPDATE)),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Envelope[SubscriptionResponse]:
    plan = await subscriptions.edit(
        subscription_id,
        body.name,
        body.monthly_cost,
        body.annual_cost,
        body.monthly_credit,
        actor_id=admin.id,
    )
    return Envelope(data=SubscriptionResponse.model_validate(plan))


@router.delete("/subscriptions/{subscription_id}", response_model=Envelope[MessageResponse])
async def delete_subscription(
    subscription_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_DELETE)),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Envelope[MessageResponse]:
    await subscriptions.delete(subscription_id, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="Subscription deleted"))


@router.get("/top-up-plans", response_model=Envelope[list[TopUpPlanResponse]])
async def list_topup_plans(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_READ)),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[list[TopUpPlanResponse]]:
    plans = await topup.list_plans()
    return Envelope(data=[TopUpPlanResponse.model_validate(plan) for plan in plans])


@router.post(
    "/top-up-plans",
    response_model=Envelope[TopUpPlanResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_topup_plan(
    body: TopUpPlanRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_CREATE)),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[TopUpPlanResponse]:
    plan = await topup.add_plan(body.name, body.cost, body.credits, actor_id=admin.id)
    return Envelope(data=TopUpPlanResponse.model_validate(plan))


@router.put("/top-up-plans/{plan_id}", response_model=Envelope[TopUpPlanResponse])
async def edit_topup_plan(
    plan_id: int,
    body: TopUpPlanRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_UPDATE)),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[TopUpPlanResponse]:
    plan = await topup.edit_plan(plan_id, body.name, body.cost, body.credits, actor_id=admin.id)
    return Envelope(data=TopUpPlanResponse.model_validate(plan))


@router.delete("/top-up-plans/{plan_id}", response_model=Envelope[MessageResponse])
async def delete_topup_plan(
    plan_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.SUBSCRIPTION_DELETE)),
    topup: TopUpService = Depends(get_topup_service),
) -> Envelope[MessageResponse]:
    await topup.delete_plan(plan_id, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="Top-up plan deleted"))


# ============================================================================
# Access control lists
# ============================================================================


@router.get("/whitelist-ip", response_model=Envelope[list[WhitelistIPResponse]])
async def list_whitelist_ips(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.WHITELIST_IP_READ)),
    whitelist: WhitelistIPService = Depends(get_whitelist_service),
) -> Envelope[list[WhitelistIPResponse]]:
    rows = await whitelist.list_ips()
    return Envelope(data=[WhitelistIPResponse.model_validate(row) for row in rows])


@router.post(
    "/whitelist-ip",
    response_model=Envelope[WhitelistIPResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_whitelist_ip(
    body: WhitelistIPRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.WHITELIST_IP_CREATE)),
    whitelist: WhitelistIPService = Depends(get_whitelist_service),
) -> Envelope[WhitelistIPResponse]:
    row = await whitelist.add(body.ip, body.description, actor_id=admin.id)
    return Envelope(data=WhitelistIPResponse.model_validate(row))


@router.put("/whitelist-ip/{entry_id}", response_model=Envelope[WhitelistIPResponse])
async def edit_whitelist_ip(
    entry_id: int,
    body: WhitelistIPRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.WHITELIST_IP_UPDATE)),
    whitelist: WhitelistIPService = Depends(get_whitelist_service),
) -> Envelope[WhitelistIPResponse]:
    row = await whitelist.edit(entry_id, body.ip, body.description, actor_id=admin.id)
    return Envelope(data=WhitelistIPResponse.model_validate(row))


@router.delete("/whitelist-ip/{entry_id}", response_model=Envelope[MessageResponse])
async def delete_whitelist_ip(
    entry_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.WHITELIST_IP_DELETE)),
    whitelist: WhitelistIPService = Depends(get_whitelist_service),
) -> Envelope[MessageResponse]:
    await whitelist.delete(entry_id, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="IP address deleted"))


@router.get("/countries", response_model=Envelope[list[CountryResponse]])
async def list_countries(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.COUNTRY_READ)),
    countries: CountryCatalog = Depends(get_country_catalog),
) -> Envelope[list[CountryResponse]]:
    """Every ISO country, for picking blacklist entries."""
    rows = await countries.list_countries()
    return Envelope(
        data=[CountryResponse(country_code=code, country_name=name) for code, name in rows]
    )


@router.get("/blacklist-country", response_model=Envelope[list[BlacklistCountryResponse]])
async def list_blacklisted_countries(
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.BLACKLIST_COUNTRY_READ)),
    blacklist: BlacklistCountryService = Depends(get_blacklist_service),
) -> Envelope[list[BlacklistCountryResponse]]:
    rows = await blacklist.list_countries()
    return Envelope(data=[BlacklistCountryResponse.model_validate(row) for row in rows])


@router.post(
    "/blacklist-country",
    response_model=Envelope[BlacklistCountryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_blacklisted_country(
    body: BlacklistCountryRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.BLACKLIST_COUNTRY_CREATE)),
    blacklist: BlacklistCountryService = Depends(get_blacklist_service),
) -> Envelope[BlacklistCountryResponse]:
    row = await blacklist.add(body.country_code, body.country_name, actor_id=admin.id)
    return Envelope(data=BlacklistCountryResponse.model_validate(row))


@router.put("/blacklist-country/{entry_id}", response_model=Envelope[BlacklistCountryResponse])
async def edit_blacklisted_country(
    entry_id: int,
    body: BlacklistCountryRequest,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.BLACKLIST_COUNTRY_UPDATE)),
    blacklist: BlacklistCountryService = Depends(get_blacklist_service),
) -> Envelope[BlacklistCountryResponse]:
    """Only the admin who blacklisted the country may change the entry."""
    row = await blacklist.edit(entry_id, body.country_code, body.country_name, actor_id=admin.id)
    return Envelope(data=BlacklistCountryResponse.model_validate(row))


@router.delete("/blacklist-country/{entry_id}", response_model=Envelope[MessageResponse])
async def delete_blacklisted_country(
    entry_id: int,
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.BLACKLIST_COUNTRY_DELETE)),
    blacklist: BlacklistCountryService = Depends(get_blacklist_service),
) -> Envelope[MessageResponse]:
    await blacklist.delete(entry_id, actor_id=admin.id)
    return Envelope(data=MessageResponse(message="Country deleted"))


# ============================================================================
# Audit log
# ============================================================================


@router.get("/logs", response_model=Envelope[list[AuditLogResponse]])
async def list_logs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    admin: AuthenticatedAdmin = Depends(require_permission(Permission.LOG_READ)),
    audit: AuditLogService = Depends(get_audit_log),
) -> Envelope[list[AuditLogResponse]]:
    rows = await audit.list_logs(limit=limit, offset=offset)
    return Envelope(data=[AuditLogResponse.model_validate(row) for row in rows])
