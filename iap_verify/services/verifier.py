"""
Verification orchestrators - one per store endpoint.

Each verifier checks the receipt's shape, calls the store authority through
the environment fallback caller, reconciles the answer and writes one audit
row per attempt.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from structlog import get_logger

from iap_verify.exceptions import (
    InvalidReceiptError,
    UpstreamRejectedError,
    VerificationError,
)
from iap_verify.models.domain import Receipt, ValidationOutcome
from iap_verify.observability.logging import log_context
from iap_verify.observability.metrics import metrics
from iap_verify.services.apple_receipt_adapter import AppleReceiptAdapter
from iap_verify.services.apple_storekit_adapter import AppleStoreKitAdapter
from iap_verify.services.audit import VerificationLogRepository
from iap_verify.services.dates import utc_now
from iap_verify.services.fallback import UpstreamAdapter, call_with_fallback
from iap_verify.services.google_play_adapter import (
    GooglePlayCatalog,
    GooglePlayLegacyAdapter,
    GooglePlaySubscriptionsV2Adapter,
    GoogleProductKind,
)
from iap_verify.services.google_play_client import GooglePlayPublisher
from iap_verify.services.reconciliation import reconcile

logger = get_logger(__name__)


class ReceiptVerifier(ABC):
    """Base orchestrator. Subclasses pick the adapter for a receipt."""

    store_name: str = ""
    validator_route: str = ""

    def __init__(
        self,
        audit_log: VerificationLogRepository,
        grace_days: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if grace_days < 0:
            raise ValueError(f"grace_days must be non-negative: {grace_days}")
        self._audit_log = audit_log
        self.grace_days = grace_days
        self._clock = clock

    @abstractmethod
    async def _select_adapter(self, receipt: Receipt) -> UpstreamAdapter:
        """Adapter that answers for ``receipt``."""

    async def _validate(self, receipt: Receipt) -> ValidationOutcome:
        adapter = await self._select_adapter(receipt)
        result = await call_with_fallback(adapter, receipt)
        return reconcile(receipt, result, self.grace_days, self._clock())

    async def verify(self, receipt: Receipt) -> ValidationOutcome:
        """
        Verify one receipt.

        Never raises for verification failures; cancellation propagates and
        skips the audit write.
        """
        with log_context(store=self.store_name, route=self.validator_route):
            try:
                if not receipt.is_valid():
                    raise InvalidReceiptError()
                outcome = await self._validate(receipt)
            except VerificationError as exc:
                outcome = ValidationOutcome.invalid(exc.message)
            except Exception as exc:
                logger.exception("verification_unexpected_error", error=str(exc))
                outcome = ValidationOutcome.invalid(str(exc))

            await self._audit_log.save_log(
                self.store_name, self.validator_route, receipt, outcome
            )
            metrics.record_verification(self.store_name, self.validator_route, outcome.is_valid)

            if outcome.is_valid:
                logger.info(
                    "iap_validated",
                    bundle_id=receipt.bundle_id,
                    product_id=receipt.product_id,
                    environment=outcome.environment.value,
                )
            elif receipt.bundle_id and receipt.product_id:
                logger.info(
                    "iap_validation_failed",
                    bundle_id=receipt.bundle_id,
                    product_id=receipt.product_id,
                    reason=outcome.message,
                )
            else:
                logger.info("iap_validation_failed", reason=outcome.message)

            return outcome


class AppleReceiptVerifier(ReceiptVerifier):
    """``POST /v1/Apple`` - legacy iOS 7 receipts."""

    store_name = "Apple"
    validator_route = "v1/Apple"

    def __init__(
        self,
        adapter: AppleReceiptAdapter,
        audit_log: VerificationLogRepository,
        grace_days: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(audit_log, grace_days, clock)
        self._adapter = adapter

    async def _select_adapter(self, receipt: Receipt) -> UpstreamAdapter:
        return self._adapter


class AppleTransactionVerifier(ReceiptVerifier):
    """``POST /v2/Apple`` - StoreKit v2 transactions."""

    store_name = "Apple"
    validator_route = "v2/Apple"

    def __init__(
        self,
        adapter: AppleStoreKitAdapter,
        audit_log: VerificationLogRepository,
        grace_days: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(audit_log, grace_days, clock)
        self._adapter = adapter

    async def _select_adapter(self, receipt: Receipt) -> UpstreamAdapter:
        return self._adapter


class GooglePlayVerifier(ReceiptVerifier):
    """``POST /v1/Google`` - Google Play products and subscriptions."""

    store_name = "Google"
    validator_route = "v1/Google"

    def __init__(
        self,
        publisher: GooglePlayPublisher,
        audit_log: VerificationLogRepository,
        grace_days: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(audit_log, grace_days, clock)
        self._catalog = GooglePlayCatalog(publisher)
        self._adapters: dict[GoogleProductKind, UpstreamAdapter] = {
            GoogleProductKind.LEGACY_PRODUCT: GooglePlayLegacyAdapter(publisher, subscription=False),
            GoogleProductKind.LEGACY_SUBSCRIPTION: GooglePlayLegacyAdapter(
                publisher, subscription=True
            ),
            GoogleProductKind.SUBSCRIPTION_V2: GooglePlaySubscriptionsV2Adapter(publisher),
        }

    async def _select_adapter(self, receipt: Receipt) -> UpstreamAdapter:
        kind = await self._catalog.discover(receipt.bundle_id, receipt.product_id)
        if kind is GoogleProductKind.NOT_FOUND:
            raise UpstreamRejectedError(
                "Google Play", f"IAP '{receipt.bundle_id}':'{receipt.product_id}' not found"
            )
        return self._adapters[kind]
