"""
Environment fallback caller.

Apple recommends validating against production first and retrying against
the sandbox when production reports a sandbox receipt. The retry happens at
most once; a second failure is final for the request.
"""

import time
from typing import Any, Protocol

from structlog import get_logger

from iap_verify.exceptions import VerificationError, WrongEnvironmentError
from iap_verify.models.domain import AuthorityResult, Receipt
from iap_verify.observability.metrics import metrics
from iap_verify.observability.tracing import trace_upstream_call

logger = get_logger(__name__)


class UpstreamAdapter(Protocol):
    """
    One store authority API generation.

    ``fetch`` performs the network call and raises ``WrongEnvironmentError``
    when the authority says the receipt belongs to the other environment.
    ``normalize`` maps the raw payload into records.
    """

    authority: str

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        """Production endpoint and, where the authority has one, the sandbox endpoint."""
        ...

    async def fetch(self, receipt: Receipt, endpoint: str) -> Any:
        ...

    def normalize(self, receipt: Receipt, raw: Any) -> AuthorityResult:
        ...


async def _timed_fetch(adapter: UpstreamAdapter, receipt: Receipt, endpoint: str) -> Any:
    start_time = time.perf_counter()
    outcome = "error"
    try:
        with trace_upstream_call(adapter.authority, endpoint):
            raw = await adapter.fetch(receipt, endpoint)
        outcome = "ok"
        return raw
    except WrongEnvironmentError:
        outcome = "wrong_environment"
        raise
    except VerificationError:
        outcome = "rejected"
        raise
    finally:
        metrics.record_upstream_call(
            adapter.authority, outcome, time.perf_counter() - start_time
        )


async def call_with_fallback(adapter: UpstreamAdapter, receipt: Receipt) -> AuthorityResult:
    """
    Fetch from production, retrying once against the sandbox on a wrong environment signal.

    Raises:
        VerificationError: Any adapter failure, including a second wrong environment signal
    """
    production, sandbox = adapter.endpoints(receipt)

    try:
        raw = await _timed_fetch(adapter, receipt, production)
    except WrongEnvironmentError:
        if sandbox is None:
            raise
        logger.info(
            "sandbox_purchase_calling_test_environment",
            authority=adapter.authority,
            bundle_id=receipt.bundle_id,
        )
        raw = await _timed_fetch(adapter, receipt, sandbox)

    return adapter.normalize(receipt, raw)
