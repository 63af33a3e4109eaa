"""
Google Play adapters.

Google receipts do not say whether the product is a one-time product or a
subscription, so ``GooglePlayCatalog`` discovers the product type before
one of the adapters is picked.
"""

import asyncio
from enum import Enum
from typing import Any

from googleapiclient.errors import HttpError
from structlog import get_logger

from iap_verify.exceptions import (
    MalformedPayloadError,
    UpstreamParseError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
)
from iap_verify.models.domain import (
    AuthorityResult,
    Environment,
    PurchaseRecord,
    Receipt,
    SubscriptionState,
)
from iap_verify.models.google_play import (
    GooglePlayInAppProduct,
    GooglePlayProductPurchase,
    GooglePlaySubscriptionProduct,
    GooglePlaySubscriptionPurchase,
    GooglePlaySubscriptionPurchaseV2,
)
from iap_verify.services.dates import (
    EPOCH,
    parse_epoch_ms,
    parse_purchase_date_ms,
    parse_rfc3339,
)
from iap_verify.services.google_play_client import GooglePlayPublisher

logger = get_logger(__name__)

AUTHORITY = "Google Play"

SUBSCRIPTION_STATES: dict[str, SubscriptionState] = {
    "SUBSCRIPTION_STATE_ACTIVE": SubscriptionState.ACTIVE,
    "SUBSCRIPTION_STATE_IN_GRACE_PERIOD": SubscriptionState.ACTIVE,
    "SUBSCRIPTION_STATE_PENDING": SubscriptionState.PENDING,
    "SUBSCRIPTION_STATE_PAUSED": SubscriptionState.PAUSED,
    "SUBSCRIPTION_STATE_ON_HOLD": SubscriptionState.ON_HOLD,
    "SUBSCRIPTION_STATE_CANCELED": SubscriptionState.CANCELED,
    "SUBSCRIPTION_STATE_PENDING_PURCHASE_CANCELED": SubscriptionState.CANCELED,
    "SUBSCRIPTION_STATE_EXPIRED": SubscriptionState.EXPIRED,
}


class GoogleProductKind(str, Enum):
    """Which Android Publisher API answers for a product."""

    LEGACY_PRODUCT = "legacy_product"
    LEGACY_SUBSCRIPTION = "legacy_subscription"
    SUBSCRIPTION_V2 = "subscription_v2"
    NOT_FOUND = "not_found"


def base_order_id(order_id: str) -> str:
    """Strip the renewal suffix: ``GPA.1234-5678..3`` -> ``GPA.1234-5678``."""
    return order_id.split("..", 1)[0]


def _error_content(exc: HttpError) -> str:
    return exc.content.decode("utf-8") if exc.content else str(exc)


def _translate_http_error(exc: HttpError) -> Exception:
    error_content = _error_content(exc)
    logger.error(
        "google_play_verification_failed",
        status=exc.resp.status,
        error=error_content,
    )

    if exc.resp.status == 404:
        return UpstreamRejectedError(AUTHORITY, "Purchase not found or invalid token")
    if exc.resp.status == 410:
        return UpstreamRejectedError(AUTHORITY, "Purchase token expired")
    return UpstreamUnreachableError(AUTHORITY, f"Google Play API error: {error_content}")


def _environment(is_test: bool) -> Environment:
    return Environment.TEST if is_test else Environment.PRODUCTION


class GooglePlayCatalog:
    """Product type discovery for Google Play receipts."""

    def __init__(self, publisher: GooglePlayPublisher) -> None:
        self._publisher = publisher

    async def get_in_app_product(
        self, package_name: str, product_id: str
    ) -> GooglePlayInAppProduct | None:
        try:
            data = await self._publisher.get_in_app_product(package_name, product_id)
        except Exception as exc:
            # Subscriptions created in the new console are not in-app products
            logger.debug("google_play_in_app_product_lookup_failed", error=str(exc))
            return None
        return GooglePlayInAppProduct.from_json(data) if data else None

    async def get_subscription(
        self, package_name: str, product_id: str
    ) -> GooglePlaySubscriptionProduct | None:
        try:
            data = await self._publisher.get_subscription(package_name, product_id)
        except Exception as exc:
            logger.debug("google_play_subscription_lookup_failed", error=str(exc))
            return None
        return GooglePlaySubscriptionProduct.from_json(data) if data else None

    async def discover(self, package_name: str, product_id: str) -> GoogleProductKind:
        """
        Look the product up as an in-app product and as a subscription at once.

        Both lookups finish before deciding; an in-app product match wins.
        """
        in_app_product, subscription = await asyncio.gather(
            self.get_in_app_product(package_name, product_id),
            self.get_subscription(package_name, product_id),
        )

        if in_app_product is not None:
            kind = (
                GoogleProductKind.LEGACY_SUBSCRIPTION
                if in_app_product.is_subscription()
                else GoogleProductKind.LEGACY_PRODUCT
            )
        elif subscription is not None:
            kind = GoogleProductKind.SUBSCRIPTION_V2
        else:
            kind = GoogleProductKind.NOT_FOUND

        logger.info(
            "google_play_product_discovered",
            package_name=package_name,
            product_id=product_id,
            kind=kind.value,
        )
        return kind


class GooglePlayLegacyAdapter:
    """``purchases.products.get`` or ``purchases.subscriptions.get``."""

    authority = AUTHORITY

    def __init__(self, publisher: GooglePlayPublisher, subscription: bool) -> None:
        self._publisher = publisher
        self.subscription = subscription

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        # Sandbox vs production is decided by the tester account, not the URL
        if self.subscription:
            return "purchases.subscriptions.get", None
        return "purchases.products.get", None

    async def fetch(
        self, receipt: Receipt, endpoint: str
    ) -> GooglePlayProductPurchase | GooglePlaySubscriptionPurchase:
        try:
            if self.subscription:
                data = await self._publisher.get_subscription_purchase(
                    receipt.bundle_id, receipt.product_id, receipt.token
                )
                return GooglePlaySubscriptionPurchase.from_json(data)

            data = await self._publisher.get_product_purchase(
                receipt.bundle_id, receipt.product_id, receipt.token
            )
            return GooglePlayProductPurchase.from_json(data)
        except HttpError as exc:
            raise _translate_http_error(exc) from exc
        except (AttributeError, TypeError, ValueError) as exc:
            raise UpstreamParseError(AUTHORITY, f"Failed to parse {endpoint}: {exc}") from exc

    def normalize(
        self,
        receipt: Receipt,
        raw: GooglePlayProductPurchase | GooglePlaySubscriptionPurchase,
    ) -> AuthorityResult:
        if isinstance(raw, GooglePlaySubscriptionPurchase):
            return self._normalize_subscription(receipt, raw)
        return self._normalize_product(receipt, raw)

    def _normalize_product(
        self, receipt: Receipt, raw: GooglePlayProductPurchase
    ) -> AuthorityResult:
        if not raw.order_id:
            raise MalformedPayloadError(AUTHORITY, "orderId")
        if raw.purchase_state != 0:
            raise UpstreamRejectedError(AUTHORITY, "purchase was cancelled or refunded")

        record = PurchaseRecord(
            product_id=raw.product_id or receipt.product_id,
            transaction_id=raw.order_id,
            original_transaction_id=base_order_id(raw.order_id),
            purchase_date_utc=parse_purchase_date_ms(raw.purchase_time_millis),
        )
        return AuthorityResult(
            bundle_id=receipt.bundle_id,
            environment=_environment(raw.is_test_purchase()),
            records=(record,),
        )

    def _normalize_subscription(
        self, receipt: Receipt, raw: GooglePlaySubscriptionPurchase
    ) -> AuthorityResult:
        if not raw.order_id:
            raise MalformedPayloadError(AUTHORITY, "orderId")

        if raw.cancel_reason is not None:
            state = SubscriptionState.CANCELED
        elif raw.payment_state == 0:
            state = SubscriptionState.PENDING
        else:
            state = SubscriptionState.ACTIVE

        record = PurchaseRecord(
            product_id=receipt.product_id,
            transaction_id=raw.order_id,
            original_transaction_id=base_order_id(raw.order_id),
            purchase_date_utc=parse_purchase_date_ms(raw.start_time_millis),
            expiry_date_utc=parse_epoch_ms(raw.expiry_time_millis),
            subscription_state=state,
        )
        return AuthorityResult(
            bundle_id=receipt.bundle_id,
            environment=_environment(raw.is_test_purchase()),
            records=(record,),
        )


class GooglePlaySubscriptionsV2Adapter:
    """``purchases.subscriptionsv2.get``."""

    authority = AUTHORITY

    def __init__(self, publisher: GooglePlayPublisher) -> None:
        self._publisher = publisher

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        return "purchases.subscriptionsv2.get", None

    async def fetch(self, receipt: Receipt, endpoint: str) -> GooglePlaySubscriptionPurchaseV2:
        try:
            data: dict[str, Any] = await self._publisher.get_subscription_purchase_v2(
                receipt.bundle_id, receipt.token
            )
            return GooglePlaySubscriptionPurchaseV2.from_json(data)
        except HttpError as exc:
            raise _translate_http_error(exc) from exc
        except (AttributeError, TypeError, ValueError) as exc:
            raise UpstreamParseError(AUTHORITY, f"Failed to parse {endpoint}: {exc}") from exc

    def normalize(self, receipt: Receipt, raw: GooglePlaySubscriptionPurchaseV2) -> AuthorityResult:
        if not raw.latest_order_id:
            raise MalformedPayloadError(AUTHORITY, "latestOrderId")

        # An order can hold several line items; the latest expiry wins
        expiries = [
            expiry
            for expiry in (parse_rfc3339(item.expiry_time) for item in raw.line_items)
            if expiry is not None
        ]

        line_item_products = [item.product_id for item in raw.line_items if item.product_id]
        if not line_item_products or receipt.product_id in line_item_products:
            product_id = receipt.product_id
        else:
            product_id = line_item_products[0]

        record = PurchaseRecord(
            product_id=product_id,
            transaction_id=raw.latest_order_id,
            original_transaction_id=base_order_id(raw.latest_order_id),
            purchase_date_utc=parse_rfc3339(raw.start_time) or EPOCH,
            expiry_date_utc=max(expiries) if expiries else None,
            subscription_state=SUBSCRIPTION_STATES.get(
                raw.subscription_state, SubscriptionState.UNKNOWN
            ),
        )
        return AuthorityResult(
            bundle_id=receipt.bundle_id,
            environment=_environment(raw.test_purchase),
            records=(record,),
        )
