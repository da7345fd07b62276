"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every business-rule violation is raised as one of these at the point of
detection. The boundary translator in app.main maps ``status_code`` and
``message`` onto the response envelope; nothing else inspects them.
"""

from datetime import date


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(GatewayError):
    """Malformed or missing input."""

    status_code = 400


class UnauthorizedError(GatewayError):
    """Missing, invalid or expired identity."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(GatewayError):
    """Valid identity without the required capability."""

    status_code = 403


class NotFoundError(GatewayError):
    """Referenced entity is absent."""

    status_code = 404


class ConflictError(GatewayError):
    """Uniqueness violation."""

    status_code = 409


class InternalError(GatewayError):
    """Unexpected failure, usually in the store."""

    status_code = 500


class InsufficientCreditsError(ValidationError):
    """Raised when available credits do not cover the declared cost."""

    def __init__(self, available: int, required: int) -> None:
        self.available = available
        self.required = required
        super().__init__("Insufficient credits. Pls top up")


class InvalidApiKeyError(ValidationError):
    """Raised when a candidate API key fails live validation.

    The provider's own error is deliberately not carried.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__("Invalid API Key")


class PaymentNotFoundError(NotFoundError):
    """Raised when a paid plan has no recorded payment for the billing month."""

    def __init__(self, user_id: int, billing_month: date) -> None:
        self.user_id = user_id
        self.billing_month = billing_month
        super().__init__("Payment not found")


class PermissionDeniedError(ForbiddenError):
    """Raised when a limited admin lacks a route's permission."""

    def __init__(self, permission: str) -> None:
        self.permission = permission
        super().__init__(f"Forbidden: You have no permission {permission}")


class ProviderError(GatewayError):
    """Raised when a live upstream provider call fails.

    Unlike key validation, chat dispatch surfaces the provider's detail so
    the caller can decide whether to retry or top up.
    """

    status_code = 502

    def __init__(self, provider: str, upstream_status: int | None, detail: str) -> None:
        self.provider = provider
        self.upstream_status = upstream_status
        self.detail = detail
        super().__init__(f"{provider} request failed: {detail}")
