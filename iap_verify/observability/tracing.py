"""
Distributed Tracing with OpenTelemetry.

Spans cover inbound requests (FastAPI instrumentation) and every call to a
store authority. Disabled unless TRACING_ENABLED is set; the API falls back
to OpenTelemetry's no-op tracer.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from iap_verify.config import settings

_tracer = trace.get_tracer("iap_verify.upstream")


def setup_tracing(app: FastAPI) -> None:
    """Install the OTLP exporter and instrument ``app``."""
    if not settings.tracing_enabled:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.service_name,
                "service.version": settings.api_version,
            }
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app)


@contextmanager
def trace_upstream_call(authority: str, endpoint: str) -> Iterator[Span]:
    """
    Span around one store authority call.

    Usage:
        with trace_upstream_call("Apple verifyReceipt", url):
            raw = await adapter.fetch(receipt, url)

    Failures are recorded on the span and re-raised unchanged.
    """
    with _tracer.start_as_current_span(
        "upstream_fetch", record_exception=False, set_status_on_exception=False
    ) as span:
        span.set_attribute("iap.authority", authority)
        span.set_attribute("iap.endpoint", endpoint)
        try:
            yield span
        except BaseException as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
