"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

import time
from enum import Enum
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    PROVIDER = "provider"
    KEY_SOURCE = "key_source"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the gateway.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Chat dispatches (rate, duration, outcome per provider and key source)
    - Credits (debits, top-ups, monthly resets)
    - Authorization decisions
    - API key validations
    """

    def __init__(self) -> None:
        self.service_info = Info(
            "gateway_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "gateway_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "gateway_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Chat Dispatch Metrics
        # ====================================================================
        self.chat_dispatches_total = Counter(
            "gateway_chat_dispatches_total",
            "Chat completions dispatched upstream",
            [MetricLabels.PROVIDER, MetricLabels.KEY_SOURCE, MetricLabels.OUTCOME],
        )

        self.chat_dispatch_duration_seconds = Histogram(
            "gateway_chat_dispatch_duration_seconds",
            "Upstream chat completion latency in seconds",
            [MetricLabels.PROVIDER],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.credits_debited_total = Counter(
            "gateway_credits_debited_total",
            "Credits debited after successful completions",
            [MetricLabels.KEY_SOURCE],
        )

        self.credits_added_total = Counter(
            "gateway_credits_added_total",
            "Credits added by top-up",
        )

        self.credit_rejections_total = Counter(
            "gateway_credit_rejections_total",
            "Requests rejected for insufficient credits",
            ["stage"],
        )

        self.credit_resets_total = Counter(
            "gateway_credit_resets_total",
            "Monthly credit resets performed",
            ["plan"],
        )

        # ====================================================================
        # Security Metrics
        # ====================================================================
        self.authorization_decisions_total = Counter(
            "gateway_authorization_decisions_total",
            "Admin authorization decisions",
            [MetricLabels.OUTCOME],
        )

        self.key_validations_total = Counter(
            "gateway_key_validations_total",
            "Live API key validations",
            [MetricLabels.PROVIDER, "valid"],
        )

        self.access_denials_total = Counter(
            "gateway_access_denials_total",
            "Admin requests denied by IP or country control",
            ["reason"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "gateway_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_chat_dispatch(
        self, provider: str, key_source: str, outcome: str, duration: float
    ) -> None:
        """Record one upstream chat completion attempt."""
        self.chat_dispatches_total.labels(
            provider=provider, key_source=key_source, outcome=outcome
        ).inc()
        self.chat_dispatch_duration_seconds.labels(provider=provider).observe(duration)

    def record_debit(self, key_source: str, amount: int) -> None:
        self.credits_debited_total.labels(key_source=key_source).inc(amount)

    def record_authorization(self, allowed: bool) -> None:
        self.authorization_decisions_total.labels(
            outcome="allowed" if allowed else "denied"
        ).inc()

    def record_key_validation(self, provider: str, valid: bool) -> None:
        self.key_validations_total.labels(provider=provider, valid=str(valid)).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()


class track_http_request:
    """
    Context manager for tracking HTTP requests.

    Usage:
        with track_http_request("/api/chatbot/send-message", "POST") as tracker:
            # ... process request
            tracker.set_status_code(200)
    """

    def __init__(self, endpoint: str, method: str) -> None:
        self.endpoint = endpoint
        self.method = method
        self.status_code = 200
        self.start_time: float = 0.0

    def set_status_code(self, status_code: int) -> None:
        """Set the response status code."""
        self.status_code = status_code

    def __enter__(self) -> "track_http_request":
        self.start_time = time.time()
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).inc()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        duration = time.time() - self.start_time
        if exc_type is not None:
            self.status_code = 500  # Default to 500 on exception
        metrics.record_http_request(self.endpoint, self.method, self.status_code, duration)
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).dec()


def get_metrics_handler() -> Callable[[], bytes]:
    """Get Prometheus metrics handler for FastAPI."""
    from prometheus_client import REGISTRY, generate_latest

    def metrics_endpoint() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_endpoint
