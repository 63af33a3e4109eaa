"""
Main Application - FastAPI application setup.
"""

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from iap_verify.api.dependencies import build_verifiers
from iap_verify.api.routes import router
from iap_verify.config import settings
from iap_verify.db.session import close_engine, get_session_factory
from iap_verify.observability import (
    get_logger,
    log_context,
    metrics,
    setup_logging,
    setup_tracing,
)
from iap_verify.services.audit import SqlVerificationLogRepository

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds the verifiers once; configuration is bound for the process lifetime.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        grace_days=settings.grace_days,
        metrics_enabled=settings.metrics_enabled,
    )

    audit_log = SqlVerificationLogRepository(get_session_factory())
    app.state.verifiers = build_verifiers(settings, audit_log)

    yield

    logger.info("application_shutting_down")
    await close_engine()
    logger.info("database_engine_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    """Malformed bodies are a plain 400 like any other failed verification."""
    sanitized_errors = [
        {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
        for error in exc.errors()
    ]
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    return Response(status_code=status.HTTP_400_BAD_REQUEST)


setup_tracing(app)


@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Time the request and tag every log entry it produces with its id and path."""
    start_time = time.time()
    endpoint = request.url.path
    method = request.method

    with log_context(
        request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex,
        method=method,
        path=endpoint,
    ):
        logger.info("request_started")
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_http_request(endpoint, method, 500, duration)
            logger.error(
                "request_failed", error=str(e), duration_seconds=duration, exc_info=True
            )
            raise
        finally:
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()

        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        logger.info(
            "request_completed", status_code=response.status_code, duration_seconds=duration
        )
        return response


app.include_router(router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    if not settings.metrics_enabled:
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "iap_verify.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
