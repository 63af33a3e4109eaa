"""
Metrics Collection with Prometheus.

Exposes verification and upstream metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from iap_verify.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    STORE = "store"
    ROUTE = "route"
    AUTHORITY = "authority"
    OUTCOME = "outcome"


class VerificationMetrics:
    """
    Centralized metrics for the IAP Verify API.

    Covers:
    - HTTP requests (rate, duration)
    - Verifications (rate per store/route, valid/invalid)
    - Upstream authority calls (rate, duration, outcome)
    - Audit log writes (success/failure)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "iap_verify_service",
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
            "iap_verify_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "iap_verify_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "iap_verify_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Verification Metrics
        # ====================================================================
        self.verifications_total = Counter(
            "iap_verify_verifications_total",
            "Total receipt verifications",
            [MetricLabels.STORE, MetricLabels.ROUTE, "valid"],
        )

        # ====================================================================
        # Upstream Metrics
        # ====================================================================
        self.upstream_calls_total = Counter(
            "iap_verify_upstream_calls_total",
            "Total calls to store authorities",
            [MetricLabels.AUTHORITY, MetricLabels.OUTCOME],
        )

        self.upstream_call_duration_seconds = Histogram(
            "iap_verify_upstream_call_duration_seconds",
            "Store authority call duration in seconds",
            [MetricLabels.AUTHORITY],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        # ====================================================================
        # Audit Log Metrics
        # ====================================================================
        self.audit_writes_total = Counter(
            "iap_verify_audit_writes_total",
            "Total verification log writes",
            ["success"],
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=str(status_code)
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_verification(self, store: str, route: str, valid: bool) -> None:
        """Record a finished verification attempt."""
        self.verifications_total.labels(store=store, route=route, valid=str(valid).lower()).inc()

    def record_upstream_call(self, authority: str, outcome: str, duration: float) -> None:
        """Record one call to a store authority."""
        self.upstream_calls_total.labels(authority=authority, outcome=outcome).inc()
        self.upstream_call_duration_seconds.labels(authority=authority).observe(duration)

    def record_audit_write(self, success: bool) -> None:
        """Record an audit log write."""
        self.audit_writes_total.labels(success=str(success).lower()).inc()


# Global metrics instance
metrics = VerificationMetrics()
