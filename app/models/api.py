"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Every response is wrapped in the same envelope: ``{"success": true, "data": ...}``
on success and ``{"success": false, "error": "..."}`` on failure.
"""

from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.db.models import AiModelApiKey, UserApiKey

T = TypeVar("T")


# ============================================================================
# Envelope
# ============================================================================


class Envelope(BaseModel, Generic[T]):
    """Successful response wrapper."""

    success: Literal[True] = True
    data: T


class ErrorEnvelope(BaseModel):
    """Failed response wrapper produced by the boundary translator."""

    success: Literal[False] = False
    error: str


class MessageResponse(BaseModel):
    message: str


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(BaseModel):
    """POST /api/auth/register request body."""

    name: str | None = Field(None, max_length=255)
    email: str = Field("", max_length=255)
    password: str = Field("", max_length=255)


class LoginRequest(BaseModel):
    """POST /api/auth/login and /api/auth/admin/login request body."""

    email: str = Field("", max_length=255)
    password: str = Field("", max_length=255)


class TokenResponse(BaseModel):
    """Issued session token."""

    token: str
    token_type: str = "bearer"
    expires_at: datetime
    role: str
    is_admin: bool = False
    permissions: list[str] = Field(default_factory=list)


# ============================================================================
# User Models
# ============================================================================


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None
    email: str
    last_login: datetime | None
    created_at: datetime


class UpdateProfileRequest(BaseModel):
    """PUT /api/users/profile request body."""

    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)


class UserAccountResponse(BaseModel):
    """Admin view of a user joined with their account."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    name: str | None
    email: str
    balance: int
    total_credits: int
    subscription_id: int
    last_reset: datetime


class UserCreditsUpdateRequest(BaseModel):
    """PUT /api/admin/users/{user_id} request body."""

    balance: int
    total_credits: int


class AvailableCreditsResponse(BaseModel):
    user_id: int
    available_credits: int


class AccountBalanceResponse(BaseModel):
    user_id: int
    balance: int
    total_credits: int


class UseOwnApiKeyResponse(BaseModel):
    enabled: bool


# ============================================================================
# Chat Models
# ============================================================================


class ChatMessageRequest(BaseModel):
    """POST /api/chatbot/send-message request body."""

    model: str = Field("", max_length=50, description="Provider family: openai, deepseek, gemini")
    name: str = Field("", max_length=100, description="Provider model name, e.g. gpt-4o-mini")
    message: str = ""
    credits: int | None = Field(
        None, ge=0, description="Declared cost; defaults to the catalogue price"
    )


class ChatReplyResponse(BaseModel):
    content: str
    provider: str
    model_name: str
    credits_charged: int
    key_source: str


class ModelDescriptorResponse(BaseModel):
    id: str
    provider: str
    display_name: str | None = None
    owned_by: str | None = None


# ============================================================================
# API Key Models
# ============================================================================


class ApiKeyRequest(BaseModel):
    """Create or replace a pooled or own API key."""

    model: str = Field(..., min_length=1, max_length=50)
    api_key: str = Field(..., min_length=1)

    @field_validator("model")
    @classmethod
    def normalize_model(cls, v: str) -> str:
        return v.strip().lower()


class ApiKeyUpdateRequest(BaseModel):
    api_key: str = Field(..., min_length=1)


def mask_api_key(api_key: str) -> str:
    """Keep enough of a key to recognise it, never enough to use it."""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


class ApiKeyResponse(BaseModel):
    """API key row with the secret masked."""

    id: int
    model: str
    api_key_preview: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: AiModelApiKey | UserApiKey) -> "ApiKeyResponse":
        return cls(
            id=row.id,
            model=row.model,
            api_key_preview=mask_api_key(row.api_key),
            created_at=row.created_at,
        )


# ============================================================================
# Catalogue Models
# ============================================================================


class AvailableModelRequest(BaseModel):
    """POST /api/admin/available-models request body."""

    model: str = ""
    name: str = ""
    display_name: str | None = None
    account_type: str = ""
    cost: int | None = None
    temperature: float = 0.7


class AvailableModelUpdateRequest(BaseModel):
    display_name: str | None = None
    account_type: str | None = None
    cost: int | None = None
    temperature: float | None = None


class AvailableModelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    model: str
    name: str
    display_name: str | None
    subscription_id: int
    cost: int
    temperature: float


class SubscriptionRequest(BaseModel):
    """Create or update a subscription plan."""

    name: str = Field(..., min_length=1, max_length=100)
    monthly_cost: float = Field(..., ge=0)
    annual_cost: float = Field(..., ge=0)
    monthly_credit: int = Field(..., ge=0)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().lower()


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    monthly_cost: float
    annual_cost: float
    monthly_credit: int


class TopUpPlanRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    cost: float = Field(..., ge=0)
    credits: int = Field(..., gt=0)


class TopUpPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    cost: float
    credits: int


class TopUpRequest(BaseModel):
    """POST /api/topup request body."""

    plan_id: int


# ============================================================================
# Admin Models
# ============================================================================


class AdminCreateRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    user_type: str = "2"
    permission_ids: list[int] = Field(default_factory=list)


class AdminProfileUpdateRequest(BaseModel):
    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    password: str | None = None


class AdminResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    user_type: str
    last_login: datetime | None


class AdminConfigRequest(BaseModel):
    name: str = ""
    value: str = ""


class AdminConfigUpdateRequest(BaseModel):
    value: str = ""


class AdminConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    value: str
    added_by: int


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class PermissionUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class AdminPermissionResponse(BaseModel):
    admin_id: int
    permission_id: int
    permission: str


class AdminPermissionsReplaceRequest(BaseModel):
    permission_ids: list[int] = Field(default_factory=list)


class WhitelistIPRequest(BaseModel):
    ip: str = Field(..., min_length=1, max_length=64)
    description: str | None = Field(None, max_length=255)


class WhitelistIPResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ip: str
    description: str | None
    last_login: datetime | None


class BlacklistCountryRequest(BaseModel):
    country_code: str = Field(..., min_length=2, max_length=2)
    country_name: str | None = Field(None, max_length=100)

    @field_validator("country_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("country_code must be an ISO 3166-1 alpha-2 code")
        return v.upper()


class CountryResponse(BaseModel):
    country_code: str
    country_name: str


class BlacklistCountryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country_code: str
    country_name: str | None
    added_by: int


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user: str | None
    action: str
    details: str | None
    component: str
    level: str
    date: datetime


class HealthResponse(BaseModel):
    status: str
    database: str
    version: str
