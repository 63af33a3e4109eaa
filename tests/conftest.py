"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- Client receipts and a controllable clock
- Recording audit log
- Apple verifyReceipt / StoreKit v2 payload builders
- Google Play publisher mock
- EC signing key for App Store Server API tokens
"""

import base64
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APPLE_SECRET_MASTER", "test-master-secret")
os.environ.setdefault("LOG_FORMAT", "console")

from iap_verify.models.domain import (
    PurchaseRecord,
    Receipt,
    ValidationOutcome,
)
from iap_verify.services.google_play_client import GooglePlayPublisher

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)


# ============================================================================
# Receipt Fixtures
# ============================================================================


@pytest.fixture
def receipt() -> Receipt:
    """A complete client receipt."""
    return Receipt(
        bundle_id="com.app",
        product_id="gold",
        transaction_id="1000",
        token="abc",
        app_version="1.2.3",
        developer_payload="payload",
    )


@pytest.fixture
def google_receipt() -> Receipt:
    """A complete Google Play receipt; the transaction id is the order id."""
    return Receipt(
        bundle_id="com.app.android",
        product_id="premium_monthly",
        transaction_id="GPA.1234-5678-9012-34567",
        token="purchase-token-xyz",
        app_version="4.0",
    )


def make_record(
    product_id: str = "gold",
    transaction_id: str = "1000",
    original_transaction_id: str = "1000",
    purchase_date_utc: datetime = FIXED_NOW - timedelta(days=10),
    **kwargs: Any,
) -> PurchaseRecord:
    return PurchaseRecord(
        product_id=product_id,
        transaction_id=transaction_id,
        original_transaction_id=original_transaction_id,
        purchase_date_utc=purchase_date_utc,
        **kwargs,
    )


@pytest.fixture
def record_factory() -> Callable[..., PurchaseRecord]:
    """Factory for purchase records with sensible defaults."""
    return make_record


# ============================================================================
# Clock Fixtures
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Audit Log Fixtures
# ============================================================================


@dataclass
class RecordingAuditLog:
    """Audit log that keeps every call in memory."""

    result: bool = True
    calls: list[tuple[str, str, Receipt, ValidationOutcome]] = field(default_factory=list)

    async def save_log(
        self,
        store_name: str,
        validator_route: str,
        receipt: Receipt,
        outcome: ValidationOutcome,
    ) -> bool:
        self.calls.append((store_name, validator_route, receipt, outcome))
        return self.result


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


# ============================================================================
# Apple Payload Fixtures
# ============================================================================


@pytest.fixture
def apple_response() -> Callable[..., dict[str, Any]]:
    """Factory for verifyReceipt response bodies."""

    def _create(
        status: int = 0,
        environment: str = "Production",
        bundle_id: str = "com.app",
        in_app: list[dict[str, Any]] | None = None,
        latest_receipt_info: list[dict[str, Any]] | None = None,
        include_receipt: bool = True,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"status": status, "environment": environment}
        if include_receipt:
            body["receipt"] = {
                "bundle_id": bundle_id,
                "application_version": "1",
                "in_app": in_app
                if in_app is not None
                else [
                    {
                        "product_id": "gold",
                        "transaction_id": "1000",
                        "original_transaction_id": "1000",
                        "purchase_date_ms": "1000000",
                    }
                ],
            }
        if latest_receipt_info is not None:
            body["latest_receipt_info"] = latest_receipt_info
        return body

    return _create


@pytest.fixture
def storekit_claims() -> Callable[..., dict[str, Any]]:
    """Factory for decoded StoreKit v2 transaction claims."""

    def _create(**overrides: Any) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "transactionId": "1000",
            "originalTransactionId": "900",
            "bundleId": "com.app",
            "productId": "gold",
            "environment": "Production",
            "purchaseDate": int((FIXED_NOW - timedelta(days=3)).timestamp() * 1000),
            "expiresDate": int((FIXED_NOW + timedelta(days=27)).timestamp() * 1000),
            "type": "Auto-Renewable Subscription",
            "inAppOwnershipType": "PURCHASED",
        }
        claims.update(overrides)
        return claims

    return _create


def sign_transaction(claims: dict[str, Any]) -> str:
    """JWS compact string carrying ``claims``; the signature is never checked."""
    return jwt.encode(claims, "test-signing-secret-that-is-long-enough", algorithm="HS256")


@pytest.fixture
def signed_transaction() -> Callable[[dict[str, Any]], str]:
    return sign_transaction


# ============================================================================
# Signing Key Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def ec_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def ec_private_key_pem(ec_private_key: ec.EllipticCurvePrivateKey) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def ec_private_key_base64(ec_private_key_pem: str) -> str:
    """Base64 of the .p8 file contents, as stored in the environment."""
    return base64.b64encode(ec_private_key_pem.encode("utf-8")).decode("ascii")


# ============================================================================
# Google Play Fixtures
# ============================================================================


@pytest.fixture
def publisher() -> AsyncMock:
    """Google Play publisher with every API call mocked."""
    mock = AsyncMock(spec=GooglePlayPublisher)
    mock.get_in_app_product = AsyncMock(return_value={})
    mock.get_subscription = AsyncMock(return_value={})
    mock.get_product_purchase = AsyncMock(return_value={})
    mock.get_subscription_purchase = AsyncMock(return_value={})
    mock.get_subscription_purchase_v2 = AsyncMock(return_value={})
    return mock
