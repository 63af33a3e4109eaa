"""
Google Play wire models - Immutable dataclasses for Android Publisher responses.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass, field
from typing import Any

# In-app product catalog purchase types (inappproducts.get)
PURCHASE_TYPE_SUBSCRIPTION = "subscription"
PURCHASE_TYPE_MANAGED = "managedUser"


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class GooglePlayInAppProduct:
    """Catalog entry from ``inappproducts.get``."""

    package_name: str
    sku: str
    purchase_type: str  # "managedUser" or "subscription"
    status: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlayInAppProduct":
        return cls(
            package_name=str(data.get("packageName", "")),
            sku=str(data.get("sku", "")),
            purchase_type=str(data.get("purchaseType", "")),
            status=str(data.get("status", "")),
        )

    def is_subscription(self) -> bool:
        return self.purchase_type.lower() == PURCHASE_TYPE_SUBSCRIPTION.lower()


@dataclass(frozen=True)
class GooglePlaySubscriptionProduct:
    """Catalog entry from ``monetization.subscriptions.get``."""

    package_name: str
    product_id: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlaySubscriptionProduct":
        return cls(
            package_name=str(data.get("packageName", "")),
            product_id=str(data.get("productId", "")),
        )


@dataclass(frozen=True)
class GooglePlayProductPurchase:
    """Result of ``purchases.products.get``."""

    order_id: str | None
    purchase_time_millis: str | None
    purchase_state: int | None  # 0: purchased, 1: canceled, 2: pending
    product_id: str | None = None
    consumption_state: int | None = None  # 0: not consumed, 1: consumed
    acknowledgement_state: int | None = None  # 0: not acknowledged, 1: acknowledged
    developer_payload: str | None = None
    purchase_type: int | None = None  # None: real, 0: test, 1: promo, 2: rewarded

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlayProductPurchase":
        return cls(
            order_id=data.get("orderId"),
            purchase_time_millis=data.get("purchaseTimeMillis"),
            purchase_state=_optional_int(data.get("purchaseState")),
            product_id=data.get("productId"),
            consumption_state=_optional_int(data.get("consumptionState")),
            acknowledgement_state=_optional_int(data.get("acknowledgementState")),
            developer_payload=data.get("developerPayload"),
            purchase_type=_optional_int(data.get("purchaseType")),
        )

    def is_test_purchase(self) -> bool:
        """Check if this is a test purchase (license tester account)."""
        return self.purchase_type == 0


@dataclass(frozen=True)
class GooglePlaySubscriptionPurchase:
    """Result of the legacy ``purchases.subscriptions.get``."""

    order_id: str | None
    start_time_millis: str | None
    expiry_time_millis: str | None
    auto_renewing: bool = False
    payment_state: int | None = None  # 0: pending, 1: received, 2: free trial, 3: deferred
    cancel_reason: int | None = None  # 0: user, 1: system, 2: replaced, 3: developer
    user_cancellation_time_millis: str | None = None
    developer_payload: str | None = None
    purchase_type: int | None = None  # None: real, 0: test, 1: promo

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlaySubscriptionPurchase":
        return cls(
            order_id=data.get("orderId"),
            start_time_millis=data.get("startTimeMillis"),
            expiry_time_millis=data.get("expiryTimeMillis"),
            auto_renewing=bool(data.get("autoRenewing", False)),
            payment_state=_optional_int(data.get("paymentState")),
            cancel_reason=_optional_int(data.get("cancelReason")),
            user_cancellation_time_millis=data.get("userCancellationTimeMillis"),
            developer_payload=data.get("developerPayload"),
            purchase_type=_optional_int(data.get("purchaseType")),
        )

    def is_test_purchase(self) -> bool:
        return self.purchase_type == 0


@dataclass(frozen=True)
class GooglePlaySubscriptionLineItem:
    """One line item of a subscriptions v2 purchase."""

    product_id: str
    expiry_time: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlaySubscriptionLineItem":
        return cls(
            product_id=str(data.get("productId", "")),
            expiry_time=data.get("expiryTime"),
        )


@dataclass(frozen=True)
class GooglePlaySubscriptionPurchaseV2:
    """Result of ``purchases.subscriptionsv2.get``."""

    subscription_state: str  # SUBSCRIPTION_STATE_*
    latest_order_id: str | None
    start_time: str | None = None
    line_items: tuple[GooglePlaySubscriptionLineItem, ...] = field(default_factory=tuple)
    test_purchase: bool = False
    acknowledgement_state: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "GooglePlaySubscriptionPurchaseV2":
        return cls(
            subscription_state=str(data.get("subscriptionState", "")),
            latest_order_id=data.get("latestOrderId"),
            start_time=data.get("startTime"),
            line_items=tuple(
                GooglePlaySubscriptionLineItem.from_json(item)
                for item in data.get("lineItems") or []
            ),
            # testPurchase is an empty object when present
            test_purchase=data.get("testPurchase") is not None,
            acknowledgement_state=str(data.get("acknowledgementState", "")),
        )
