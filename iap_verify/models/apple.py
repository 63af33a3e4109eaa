"""
Apple wire models - Immutable dataclasses for App Store responses.

NO DICTIONARIES - All data uses strongly typed models.

Two payload shapes are covered:
- iOS 7 style receipts returned by the legacy ``verifyReceipt`` endpoint
  (snake_case keys, millisecond dates encoded as strings)
- StoreKit v2 signed transactions returned by the App Store Server API
  (camelCase JWS claims, millisecond dates encoded as numbers)
"""

from dataclasses import dataclass, field
from typing import Any

# https://developer.apple.com/documentation/appstorereceipts/status
APPLE_STATUS_MESSAGES: dict[int, str] = {
    21000: "The App Store could not read the JSON object you provided.",
    21002: "The data in the receipt-data property was malformed or missing.",
    21003: "The receipt could not be authenticated.",
    21004: "The shared secret you provided does not match the shared secret on file for your account.",
    21005: "The receipt server is not currently available.",
    21006: "This receipt is valid but the subscription has expired. When this status code is returned to your server, the receipt data is also decoded and returned as part of the response. Only returned for iOS 6 style transaction receipts for auto-renewable subscriptions.",
    21007: "This receipt is from the test environment, but it was sent to the production environment for verification. Send it to the test environment instead.",
    21008: "This receipt is from the production environment, but it was sent to the test environment for verification. Send it to the production environment instead.",
    21010: "This receipt could not be authorized. Treat this the same as if a purchase was never made.",
}
APPLE_INTERNAL_ERROR_MESSAGE = "Internal data access error."
WRONG_ENVIRONMENT_STATUSES = frozenset({21007, 21008})


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else str(value)


@dataclass(frozen=True)
class AppleInAppPurchase:
    """One entry of ``receipt.in_app`` or ``latest_receipt_info``."""

    product_id: str
    transaction_id: str
    original_transaction_id: str
    purchase_date_ms: str | None = None
    expires_date_ms: str | None = None
    cancellation_date_ms: str | None = None
    cancellation_reason: str | None = None
    is_trial_period: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "AppleInAppPurchase":
        return cls(
            product_id=_str(data, "product_id"),
            transaction_id=_str(data, "transaction_id"),
            original_transaction_id=_str(data, "original_transaction_id"),
            purchase_date_ms=_optional_str(data, "purchase_date_ms"),
            expires_date_ms=_optional_str(data, "expires_date_ms"),
            cancellation_date_ms=_optional_str(data, "cancellation_date_ms"),
            cancellation_reason=_optional_str(data, "cancellation_reason"),
            is_trial_period=_optional_str(data, "is_trial_period"),
        )


@dataclass(frozen=True)
class AppleReceipt:
    """Decoded app receipt."""

    bundle_id: str
    application_version: str = ""
    in_app: tuple[AppleInAppPurchase, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "AppleReceipt":
        return cls(
            bundle_id=_str(data, "bundle_id"),
            application_version=_str(data, "application_version"),
            in_app=tuple(AppleInAppPurchase.from_json(p) for p in data.get("in_app") or []),
        )


@dataclass(frozen=True)
class AppleVerifyReceiptResponse:
    """
    Response body of ``verifyReceipt``.

    See https://developer.apple.com/documentation/appstorereceipts/responsebody
    """

    status: int
    environment: str = ""
    receipt: AppleReceipt | None = None
    latest_receipt_info: tuple[AppleInAppPurchase, ...] = field(default_factory=tuple)
    is_retryable: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "AppleVerifyReceiptResponse":
        receipt = data.get("receipt")
        return cls(
            status=int(data.get("status", -1)),
            environment=_str(data, "environment"),
            receipt=AppleReceipt.from_json(receipt) if isinstance(receipt, dict) else None,
            latest_receipt_info=tuple(
                AppleInAppPurchase.from_json(p) for p in data.get("latest_receipt_info") or []
            ),
            is_retryable=bool(data.get("is-retryable", False)),
        )

    @property
    def is_valid(self) -> bool:
        return self.status == 0

    @property
    def wrong_environment(self) -> bool:
        return self.status in WRONG_ENVIRONMENT_STATUSES

    @property
    def error(self) -> str:
        """Apple's documented explanation of the status code, empty if unknown."""
        if self.status in APPLE_STATUS_MESSAGES:
            return APPLE_STATUS_MESSAGES[self.status]
        if 21100 <= self.status <= 21199:
            return APPLE_INTERNAL_ERROR_MESSAGE
        return ""

    @property
    def purchases(self) -> tuple[AppleInAppPurchase, ...]:
        """Latest receipt info wins over the receipt's own in-app list."""
        if self.latest_receipt_info:
            return self.latest_receipt_info
        if self.receipt is not None:
            return self.receipt.in_app
        return ()


@dataclass(frozen=True)
class StoreKitTransactionInfo:
    """Decoded ``signedTransactionInfo`` claims from the App Store Server API.

    Dates are millisecond epoch numbers.
    """

    transaction_id: str
    original_transaction_id: str
    bundle_id: str
    product_id: str
    environment: str
    purchase_date: int | None = None
    expires_date: int | None = None
    revocation_date: int | None = None
    revocation_reason: int | None = None
    type: str = ""  # "Auto-Renewable Subscription", "Non-Consumable", "Consumable"
    in_app_ownership_type: str | None = None  # "PURCHASED" or "FAMILY_SHARED"

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "StoreKitTransactionInfo":
        return cls(
            transaction_id=_str(claims, "transactionId"),
            original_transaction_id=_str(claims, "originalTransactionId"),
            bundle_id=_str(claims, "bundleId"),
            product_id=_str(claims, "productId"),
            environment=_str(claims, "environment"),
            purchase_date=claims.get("purchaseDate"),
            expires_date=claims.get("expiresDate"),
            revocation_date=claims.get("revocationDate"),
            revocation_reason=claims.get("revocationReason"),
            type=_str(claims, "type"),
            in_app_ownership_type=_optional_str(claims, "inAppOwnershipType"),
        )


@dataclass(frozen=True)
class AppleStoreKitConfig:
    """Credentials for the App Store Server API."""

    key_id: str  # Key ID from App Store Connect
    issuer_id: str  # Issuer ID from App Store Connect
    private_key: str  # PEM encoded .p8 key

    def __post_init__(self) -> None:
        """Validate configuration fields."""
        if not self.key_id:
            raise ValueError("StoreKit key_id is required")
        if not self.issuer_id:
            raise ValueError("StoreKit issuer_id is required")
        if not self.private_key:
            raise ValueError("StoreKit private_key is required")
