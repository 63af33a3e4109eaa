"""
Domain Models - Immutable dataclasses for the verification engine.

NO DICTIONARIES - All data uses strongly typed models.

Every upstream payload shape (Apple receipts, StoreKit v2 transactions,
Google Play legacy purchases, Google Play subscriptions v2) is normalised
into ``PurchaseRecord`` before reconciliation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Environment(str, Enum):
    """Store environment a purchase was made in."""

    PRODUCTION = "Production"
    TEST = "Test"
    UNKNOWN = "Unknown"


class SubscriptionState(str, Enum):
    """Store-independent subscription state."""

    ACTIVE = "Active"
    PENDING = "Pending"
    PAUSED = "Paused"
    ON_HOLD = "OnHold"
    CANCELED = "Canceled"
    EXPIRED = "Expired"
    UNKNOWN = "Unknown"

    @property
    def is_suspended(self) -> bool:
        """Billing-hold states block entitlement independently of expiry."""
        return self in (
            SubscriptionState.PENDING,
            SubscriptionState.PAUSED,
            SubscriptionState.ON_HOLD,
        )


@dataclass(frozen=True)
class Receipt:
    """Client-submitted purchase claim, unverified until reconciled."""

    bundle_id: str
    product_id: str
    transaction_id: str
    token: str
    app_version: str = ""
    developer_payload: str = ""

    def is_valid(self) -> bool:
        """A receipt can only be verified when all identifiers are present."""
        return bool(self.bundle_id and self.product_id and self.transaction_id and self.token)


@dataclass(frozen=True)
class PurchaseRecord:
    """One purchase or transaction as reported by the store authority."""

    product_id: str
    transaction_id: str
    original_transaction_id: str
    purchase_date_utc: datetime
    expiry_date_utc: datetime | None = None  # None for non-subscription products
    cancellation_date_utc: datetime | None = None  # Refund or family-sharing revocation
    subscription_state: SubscriptionState = SubscriptionState.ACTIVE


@dataclass(frozen=True)
class AuthorityResult:
    """Normalised response of a single store authority call."""

    bundle_id: str
    environment: Environment
    records: tuple[PurchaseRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ValidatedReceipt:
    """Verified purchase returned to the caller."""

    bundle_id: str
    product_id: str
    transaction_id: str
    original_transaction_id: str
    purchase_date_utc: datetime
    server_utc: datetime  # Verification instant
    is_expired: bool
    is_suspended: bool
    token: str
    expiry_utc: datetime | None = None
    grace_days: int | None = None  # Only set when expiry_utc is set


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one verification attempt."""

    is_valid: bool
    message: str = ""
    validated_receipt: ValidatedReceipt | None = None
    environment: Environment = Environment.UNKNOWN

    def __post_init__(self) -> None:
        """Validate outcome consistency."""
        if self.is_valid and self.validated_receipt is None:
            raise ValueError("Valid outcome requires a validated receipt")
        if not self.is_valid and self.validated_receipt is not None:
            raise ValueError("Invalid outcome cannot carry a validated receipt")

    @classmethod
    def invalid(
        cls, message: str, environment: Environment = Environment.UNKNOWN
    ) -> "ValidationOutcome":
        return cls(is_valid=False, message=message, environment=environment)
