"""
API Models - Pydantic request/response models.

NO DICTIONARIES - All requests/responses use Pydantic models.

Wire format is camelCase to match the mobile clients.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from iap_verify.models.domain import Receipt, ValidatedReceipt


class ReceiptRequest(BaseModel):
    """
    Receipt submitted by a mobile client.

    Every field is optional here; completeness is checked by the verifier
    so incomplete receipts are still written to the audit log.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bundle_id: str | None = None
    product_id: str | None = None
    transaction_id: str | None = None
    token: str | None = None
    app_version: str | None = None
    developer_payload: str | None = None

    def to_domain(self) -> Receipt:
        return Receipt(
            bundle_id=self.bundle_id or "",
            product_id=self.product_id or "",
            transaction_id=self.transaction_id or "",
            token=self.token or "",
            app_version=self.app_version or "",
            developer_payload=self.developer_payload or "",
        )


class ValidatedReceiptResponse(BaseModel):
    """Verified purchase. ``expiryUtc`` and ``graceDays`` are omitted when null."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bundle_id: str
    product_id: str
    transaction_id: str
    original_transaction_id: str
    purchase_date_utc: datetime
    expiry_utc: datetime | None = None
    server_utc: datetime
    grace_days: int | None = None
    is_expired: bool
    is_suspended: bool
    token: str

    @classmethod
    def from_domain(cls, receipt: ValidatedReceipt) -> "ValidatedReceiptResponse":
        return cls(
            bundle_id=receipt.bundle_id,
            product_id=receipt.product_id,
            transaction_id=receipt.transaction_id,
            original_transaction_id=receipt.original_transaction_id,
            purchase_date_utc=receipt.purchase_date_utc,
            expiry_utc=receipt.expiry_utc,
            server_utc=receipt.server_utc,
            grace_days=receipt.grace_days,
            is_expired=receipt.is_expired,
            is_suspended=receipt.is_suspended,
            token=receipt.token,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
