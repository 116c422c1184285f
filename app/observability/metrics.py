"""
Metrics Collection with Prometheus.

Exposes token accounting, provider and payment metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ACTOR = "actor"
    EVENT_TYPE = "event_type"
    PROVIDER = "provider"
    ERROR_TYPE = "error_type"


class ProfilerMetrics:
    """
    Centralized metrics for the Cognitive Profiler API.

    - HTTP requests (rate, duration, in progress)
    - Token debits/credits per actor kind and event type
    - Limit denials by reason
    - Provider calls and heuristic fallbacks
    - Payments by outcome
    """

    def __init__(self) -> None:
        self.service_info = Info(
            "profiler_service",
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
            "profiler_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "profiler_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0),
        )

        self.http_requests_in_progress = Gauge(
            "profiler_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Token Metrics
        # ====================================================================
        self.tokens_debited_total = Counter(
            "profiler_tokens_debited_total",
            "Tokens debited from balances and free sessions",
            [MetricLabels.ACTOR, MetricLabels.EVENT_TYPE],
        )

        self.tokens_credited_total = Counter(
            "profiler_tokens_credited_total",
            "Tokens credited to registered users",
            [MetricLabels.EVENT_TYPE],
        )

        self.limit_denials_total = Counter(
            "profiler_limit_denials_total",
            "Requests denied by token limits",
            [MetricLabels.ACTOR, "reason"],
        )

        self.balance_conflicts_total = Counter(
            "profiler_balance_conflicts_total",
            "Conditional balance updates that lost to a concurrent writer",
            [MetricLabels.ACTOR],
        )

        # ====================================================================
        # Provider Metrics
        # ====================================================================
        self.provider_calls_total = Counter(
            "profiler_provider_calls_total",
            "LLM provider calls",
            [MetricLabels.PROVIDER, MetricLabels.OPERATION, "success"],
        )

        self.provider_call_duration_seconds = Histogram(
            "profiler_provider_call_duration_seconds",
            "LLM provider call duration in seconds",
            [MetricLabels.PROVIDER],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 80.0, 160.0),
        )

        self.heuristic_fallbacks_total = Counter(
            "profiler_heuristic_fallbacks_total",
            "Analyses answered by the local heuristic or seeded defaults",
            [MetricLabels.PROVIDER, MetricLabels.OPERATION],
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payments_total = Counter(
            "profiler_payments_total",
            "Payment state transitions",
            ["status"],
        )

        self.payment_amount_cents = Histogram(
            "profiler_payment_amount_cents",
            "Succeeded payment amounts in cents",
            buckets=(100, 1000, 10000, 100000),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "profiler_errors_total",
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

    def record_debit(self, actor: str, event_type: str, tokens: int) -> None:
        """Record tokens taken from a user balance or free session."""
        if tokens > 0:
            self.tokens_debited_total.labels(actor=actor, event_type=event_type).inc(tokens)

    def record_credit(self, event_type: str, tokens: int) -> None:
        """Record tokens added to a user balance."""
        if tokens > 0:
            self.tokens_credited_total.labels(event_type=event_type).inc(tokens)

    def record_limit_denial(self, actor: str, reason: str) -> None:
        self.limit_denials_total.labels(actor=actor, reason=reason).inc()

    def record_balance_conflict(self, actor: str) -> None:
        self.balance_conflicts_total.labels(actor=actor).inc()

    def record_provider_call(
        self, provider: str, operation: str, success: bool, duration: float
    ) -> None:
        """Record an LLM provider call."""
        self.provider_calls_total.labels(
            provider=provider, operation=operation, success=str(success)
        ).inc()
        self.provider_call_duration_seconds.labels(provider=provider).observe(duration)

    def record_fallback(self, provider: str, operation: str) -> None:
        self.heuristic_fallbacks_total.labels(provider=provider, operation=operation).inc()

    def record_payment(self, status: str, amount_cents: int | None = None) -> None:
        """Record a payment state transition."""
        self.payments_total.labels(status=status).inc()
        if amount_cents is not None:
            self.payment_amount_cents.observe(amount_cents)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ProfilerMetrics()
