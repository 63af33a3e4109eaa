"""
Apple legacy receipt adapter.

Validates iOS 7 style app receipts with the ``verifyReceipt`` endpoint.
https://developer.apple.com/documentation/appstorereceipts/verifyreceipt
"""

import httpx
from structlog import get_logger

from iap_verify.exceptions import (
    NoReceiptError,
    UpstreamParseError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
    WrongEnvironmentError,
)
from iap_verify.models.apple import AppleInAppPurchase, AppleVerifyReceiptResponse
from iap_verify.models.domain import (
    AuthorityResult,
    Environment,
    PurchaseRecord,
    Receipt,
    SubscriptionState,
)
from iap_verify.services.dates import parse_epoch_ms, parse_purchase_date_ms

logger = get_logger(__name__)

APPLE_PRODUCTION_URL = "https://buy.itunes.apple.com/verifyReceipt"
APPLE_SANDBOX_URL = "https://sandbox.itunes.apple.com/verifyReceipt"


class AppleReceiptAdapter:
    """Calls ``verifyReceipt`` and maps the receipt's purchases into records."""

    authority = "Apple verifyReceipt"

    def __init__(
        self,
        master_secret: str,
        app_secrets: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            master_secret: Shared secret used when no per-app secret exists
            app_secrets: Per bundle id shared secrets
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._master_secret = master_secret
        self._app_secrets = app_secrets or {}
        self._timeout = timeout
        self._transport = transport

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        return APPLE_PRODUCTION_URL, APPLE_SANDBOX_URL

    def shared_secret(self, bundle_id: str) -> str | None:
        """Per-app secret first, then the master secret."""
        return self._app_secrets.get(bundle_id) or self._master_secret or None

    async def fetch(self, receipt: Receipt, endpoint: str) -> AppleVerifyReceiptResponse:
        """
        POST the receipt to ``endpoint``.

        Raises:
            UpstreamRejectedError: No shared secret configured for the bundle
            UpstreamUnreachableError: Network failure or non-2xx response
            UpstreamParseError: Response body is not a receipt response
            WrongEnvironmentError: Apple answered 21007 or 21008
        """
        secret = self.shared_secret(receipt.bundle_id)
        if secret is None:
            logger.warning("apple_shared_secret_missing", bundle_id=receipt.bundle_id)
            raise UpstreamRejectedError(
                self.authority, f"no shared secret configured for '{receipt.bundle_id}'"
            )

        body = {"receipt-data": receipt.token, "password": secret}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(endpoint, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnreachableError(
                self.authority, f"verifyReceipt returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnreachableError(
                self.authority, f"verifyReceipt request failed: {exc}"
            ) from exc
        except ValueError as exc:
            raise UpstreamParseError(
                self.authority, f"Failed to parse AppleResponse: {exc}"
            ) from exc

        try:
            parsed = AppleVerifyReceiptResponse.from_json(data)
        except (AttributeError, TypeError, ValueError) as exc:
            raise UpstreamParseError(
                self.authority, f"Failed to parse AppleResponse: {exc}"
            ) from exc

        if parsed.wrong_environment:
            raise WrongEnvironmentError(self.authority, parsed.error)

        return parsed

    def normalize(self, receipt: Receipt, raw: AppleVerifyReceiptResponse) -> AuthorityResult:
        """
        Map a receipt response into purchase records.

        Raises:
            UpstreamRejectedError: Apple reported a non-zero status
            NoReceiptError: The response carries no receipt
        """
        if not raw.is_valid:
            raise UpstreamRejectedError(self.authority, raw.error or "Invalid Receipt")

        if raw.receipt is None:
            raise NoReceiptError(self.authority)

        environment = (
            Environment.PRODUCTION
            if raw.environment.lower() == Environment.PRODUCTION.value.lower()
            else Environment.TEST
        )

        return AuthorityResult(
            bundle_id=raw.receipt.bundle_id,
            environment=environment,
            records=tuple(self._to_record(p) for p in raw.purchases),
        )

    @staticmethod
    def _to_record(purchase: AppleInAppPurchase) -> PurchaseRecord:
        cancellation = parse_epoch_ms(purchase.cancellation_date_ms)
        return PurchaseRecord(
            product_id=purchase.product_id,
            transaction_id=purchase.transaction_id,
            original_transaction_id=purchase.original_transaction_id,
            purchase_date_utc=parse_purchase_date_ms(purchase.purchase_date_ms),
            expiry_date_utc=parse_epoch_ms(purchase.expires_date_ms),
            cancellation_date_utc=cancellation,
            subscription_state=(
                SubscriptionState.CANCELED if cancellation else SubscriptionState.ACTIVE
            ),
        )
