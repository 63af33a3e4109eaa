"""
Structured logging for the verification service.

Every entry carries the service name and version. Entries emitted while a
request is being handled also carry its request id, method and path, and
entries emitted inside a verifier carry the store and route. Receipt
tokens and shared secrets are masked before rendering.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from iap_verify.config import settings

# Purchase tokens and receipt blobs are bearer credentials for the store APIs
SENSITIVE_KEYS = frozenset({"token", "receipt_data", "password", "shared_secret"})
VISIBLE_PREFIX = 6


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def mask_receipt_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Keep only a short prefix of credential-like values."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > VISIBLE_PREFIX:
            event_dict[key] = value[:VISIBLE_PREFIX] + "..."
    return event_dict


def setup_logging() -> None:
    """
    Route structlog through stdlib logging on stdout.

    ``LOG_FORMAT=json`` renders one JSON object per line, for example::

        {"event": "iap_validated", "level": "info", "store": "Apple",
         "route": "v1/Apple", "request_id": "3f2c...", "bundle_id": "com.app",
         "service": "iap-verify-api", "timestamp": "2024-06-01T12:00:00Z"}

    Any other value uses the colored console renderer.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    # googleapiclient logs every discovery request at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        mask_receipt_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Bind ``context`` to every entry logged inside the block, on this task only."""
    with structlog.contextvars.bound_contextvars(**context):
        yield
