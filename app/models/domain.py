"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CreditMode(str, Enum):
    """Which account counter is reported as available credits."""

    BALANCE = "balance"
    TOTAL = "total"


class KeySource(str, Enum):
    """Where the upstream credential for a request came from."""

    POOLED = "pooled"
    OWN = "own"


class TokenRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class AvailableCredits:
    """Credits a user may spend right now under the active credit mode."""

    user_id: int
    available_credits: int
    credit_mode: CreditMode


@dataclass(frozen=True)
class AccountBalance:
    """Immutable snapshot of both account counters after a mutation."""

    user_id: int
    balance: int
    total_credits: int


@dataclass(frozen=True)
class UserAccountSummary:
    """A user joined with their account, as listed for admins."""

    user_id: int
    name: str | None
    email: str
    balance: int
    total_credits: int
    subscription_id: int
    last_reset: datetime


@dataclass(frozen=True)
class ResolvedCredential:
    """
    Upstream credential chosen for a single request.

    Never cached across requests; a revoked key must stop working immediately.
    """

    provider: str
    api_key: str
    source: KeySource
    model_name: str | None = None
    cost: int | None = None
    temperature: float | None = None

    def __post_init__(self) -> None:
        if not self.provider:
            raise ValueError("provider cannot be empty")
        if not self.api_key:
            raise ValueError("api_key cannot be empty")

    def __repr__(self) -> str:
        # Keep keys out of logs and tracebacks
        return (
            f"ResolvedCredential(provider={self.provider!r}, source={self.source.value!r}, "
            f"model_name={self.model_name!r})"
        )


@dataclass(frozen=True)
class ModelDescriptor:
    """One model as reported by an upstream provider."""

    id: str
    provider: str
    display_name: str | None = None
    owned_by: str | None = None


@dataclass(frozen=True)
class ChatReply:
    """Result of a metered chat send."""

    content: str
    provider: str
    model_name: str
    credits_charged: int
    key_source: KeySource


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims carried by a session token."""

    subject_id: int
    email: str
    role: TokenRole
    is_admin: bool = False
    permissions: tuple[str, ...] = field(default_factory=tuple)
    issued_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity resolved for user routes."""

    id: int
    email: str
    name: str | None


@dataclass(frozen=True)
class AuthenticatedAdmin:
    """Identity resolved for admin routes."""

    id: int
    email: str
    name: str
    user_type: str
    permissions: frozenset[str]

    @property
    def is_super_admin(self) -> bool:
        return self.user_type == "1"


@dataclass(frozen=True)
class OAuthUser:
    """Profile returned by the OAuth provider."""

    id: str
    email: str
    name: str | None
    picture: str | None
    hd: str | None = None


@dataclass(frozen=True)
class OAuthToken:
    """Token set returned by the OAuth provider's code exchange."""

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: str | None = None
    id_token: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    """A signed session token plus the identity it was issued for."""

    access_token: str
    subject_id: int
    email: str
    role: TokenRole
    expires_at: datetime
    is_admin: bool = False
    permissions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class OAuthSession:
    """Pending OAuth sign-in, keyed by its CSRF state."""

    redirect_uri: str
    callback_url: str
    audience: TokenRole
    created_at: datetime
