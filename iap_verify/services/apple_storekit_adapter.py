"""
Apple StoreKit v2 adapter.

Uses the App Store Server API transaction lookup.
https://developer.apple.com/documentation/appstoreserverapi/get_transaction_info
"""

import httpx
from structlog import get_logger

from iap_verify.exceptions import (
    MalformedPayloadError,
    UpstreamParseError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
    WrongEnvironmentError,
)
from iap_verify.models.apple import StoreKitTransactionInfo
from iap_verify.models.domain import (
    AuthorityResult,
    Environment,
    PurchaseRecord,
    Receipt,
    SubscriptionState,
)
from iap_verify.services.app_store_token import AppStoreTokenCache
from iap_verify.services.dates import parse_epoch_ms, parse_purchase_date_ms
from iap_verify.services.signed_payload import AUTHORITY, decode_signed_payload

logger = get_logger(__name__)

STOREKIT_PRODUCTION_URL = "https://api.storekit.itunes.apple.com/inApps/v1/transactions/{}"
STOREKIT_SANDBOX_URL = "https://api.storekit-sandbox.itunes.apple.com/inApps/v1/transactions/{}"


class AppleStoreKitAdapter:
    """Looks up one signed transaction and maps it into a record."""

    authority = AUTHORITY

    def __init__(
        self,
        token_cache: AppStoreTokenCache,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_cache = token_cache
        self._timeout = timeout
        self._transport = transport

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        return (
            STOREKIT_PRODUCTION_URL.format(receipt.transaction_id),
            STOREKIT_SANDBOX_URL.format(receipt.transaction_id),
        )

    async def fetch(self, receipt: Receipt, endpoint: str) -> StoreKitTransactionInfo:
        """
        GET the transaction from ``endpoint``.

        A 404 means the transaction does not exist in this environment.

        Raises:
            WrongEnvironmentError: Transaction not found in this environment
            UpstreamRejectedError: API credentials rejected
            UpstreamUnreachableError: Network failure or other API error
            UpstreamParseError: Response or JWS could not be decoded
        """
        headers = {
            "Authorization": f"Bearer {self._token_cache.get(receipt.bundle_id)}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.get(endpoint, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamUnreachableError(
                self.authority, f"Transaction lookup failed: {exc}"
            ) from exc

        if response.status_code == 404:
            raise WrongEnvironmentError(
                self.authority, f"transaction '{receipt.transaction_id}' not found"
            )
        if response.status_code == 401:
            # A rejected token must not be reused by later requests
            self._token_cache.invalidate(receipt.bundle_id)
            raise UpstreamRejectedError(self.authority, "Invalid API credentials")
        if response.status_code >= 400:
            logger.error(
                "apple_storekit_api_error",
                status=response.status_code,
                error=response.text,
            )
            raise UpstreamUnreachableError(self.authority, f"API error: {response.status_code}")

        try:
            data = response.json()
            signed_data = data.get("signedTransactionInfo")
        except (ValueError, AttributeError) as exc:
            raise UpstreamParseError(
                self.authority, f"Failed to parse StoreKitTransactionResponse: {exc}"
            ) from exc

        if not signed_data:
            raise MalformedPayloadError(self.authority, "signedTransactionInfo")

        return StoreKitTransactionInfo.from_claims(decode_signed_payload(signed_data))

    def normalize(self, receipt: Receipt, raw: StoreKitTransactionInfo) -> AuthorityResult:
        revocation = parse_epoch_ms(raw.revocation_date)
        record = PurchaseRecord(
            product_id=raw.product_id,
            transaction_id=raw.transaction_id,
            original_transaction_id=raw.original_transaction_id,
            purchase_date_utc=parse_purchase_date_ms(raw.purchase_date),
            expiry_date_utc=parse_epoch_ms(raw.expires_date),
            cancellation_date_utc=revocation,
            subscription_state=(
                SubscriptionState.CANCELED if revocation else SubscriptionState.ACTIVE
            ),
        )

        environment = (
            Environment.PRODUCTION
            if raw.environment.lower() == Environment.PRODUCTION.value.lower()
            else Environment.TEST
        )

        return AuthorityResult(bundle_id=raw.bundle_id, environment=environment, records=(record,))
