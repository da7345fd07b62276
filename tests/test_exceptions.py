"""
Tests for exception classes.

Each exception carries the HTTP status the boundary translator uses.
"""

from datetime import date

import pytest

from app.exceptions import (
    ConflictError,
    ForbiddenError,
    GatewayError,
    InsufficientCreditsError,
    InternalError,
    InvalidApiKeyError,
    NotFoundError,
    PaymentNotFoundError,
    PermissionDeniedError,
    ProviderError,
    UnauthorizedError,
    ValidationError,
)


class TestStatusCodes:
    @pytest.mark.parametrize(
        "exc,status",
        [
            (ValidationError("bad"), 400),
            (UnauthorizedError(), 401),
            (ForbiddenError("no"), 403),
            (NotFoundError("gone"), 404),
            (ConflictError("dup"), 409),
            (InternalError("boom"), 500),
            (ProviderError("openai", 429, "rate limited"), 502),
        ],
    )
    def test_status(self, exc, status):
        assert isinstance(exc, GatewayError)
        assert exc.status_code == status

    def test_unauthorized_default_message(self):
        assert UnauthorizedError().message == "Unauthorized"


class TestInsufficientCreditsError:
    def test_attributes(self):
        exc = InsufficientCreditsError(available=10, required=30)

        assert exc.available == 10
        assert exc.required == 30
        assert exc.message == "Insufficient credits. Pls top up"

    def test_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            raise InsufficientCreditsError(available=0, required=1)


class TestInvalidApiKeyError:
    def test_message_hides_provider_detail(self):
        exc = InvalidApiKeyError("gemini")

        assert exc.model == "gemini"
        assert str(exc) == "Invalid API Key"
        assert exc.status_code == 400


class TestPaymentNotFoundError:
    def test_attributes(self):
        exc = PaymentNotFoundError(3, date(2026, 2, 1))

        assert exc.user_id == 3
        assert exc.billing_month == date(2026, 2, 1)
        assert exc.status_code == 404
        assert exc.message == "Payment not found"


class TestPermissionDeniedError:
    def test_message_names_permission(self):
        exc = PermissionDeniedError("user:delete")

        assert exc.message == "Forbidden: You have no permission user:delete"
        assert isinstance(exc, ForbiddenError)


class TestProviderError:
    def test_detail_is_surfaced(self):
        exc = ProviderError("deepseek", 500, "upstream exploded")

        assert exc.upstream_status == 500
        assert exc.message == "deepseek request failed: upstream exploded"

    def test_transport_failure_has_no_upstream_status(self):
        assert ProviderError("openai", None, "timeout").upstream_status is None
