"""
Observability module - Logging, Metrics, and Tracing.
"""

from iap_verify.observability.logging import get_logger, log_context, setup_logging
from iap_verify.observability.metrics import metrics
from iap_verify.observability.tracing import setup_tracing, trace_upstream_call

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_upstream_call",
]
