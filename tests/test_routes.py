"""
Tests for API routes.

Verifiers are replaced through FastAPI dependency overrides; the lifespan
handler is not run.
"""

from collections.abc import Iterator
from datetime import UTC, datetime

import pytest
import structlog
from fastapi.testclient import TestClient

from iap_verify.api.dependencies import (
    get_apple_receipt_verifier,
    get_apple_transaction_verifier,
    get_audit_log,
    get_google_play_verifier,
)
from iap_verify.main import app
from iap_verify.models.api import ReceiptRequest, ValidatedReceiptResponse
from iap_verify.models.domain import Environment, Receipt, ValidatedReceipt, ValidationOutcome

VALIDATED = ValidatedReceipt(
    bundle_id="com.app",
    product_id="gold",
    transaction_id="1000",
    original_transaction_id="900",
    purchase_date_utc=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    server_utc=datetime(2024, 6, 1, 12, 0, tzinfo=UTC),
    is_expired=False,
    is_suspended=False,
    token="abc",
)

RECEIPT_BODY = {
    "bundleId": "com.app",
    "productId": "gold",
    "transactionId": "1000",
    "token": "abc",
    "appVersion": "1.2.3",
}


class StubVerifier:
    """Verifier returning a fixed outcome and remembering receipts."""

    def __init__(self, outcome: ValidationOutcome) -> None:
        self.outcome = outcome
        self.receipts: list[Receipt] = []

    async def verify(self, receipt: Receipt) -> ValidationOutcome:
        self.receipts.append(receipt)
        return self.outcome


VALID = ValidationOutcome(
    is_valid=True, validated_receipt=VALIDATED, environment=Environment.PRODUCTION
)


@pytest.fixture
def client(audit_log) -> Iterator[TestClient]:
    app.dependency_overrides[get_audit_log] = lambda: audit_log
    yield TestClient(app)
    app.dependency_overrides.clear()


def _override(dependency, verifier) -> None:
    app.dependency_overrides[dependency] = lambda: verifier


class TestReceiptModels:
    """Wire models use camelCase."""

    def test_request_aliases(self):
        request = ReceiptRequest.model_validate(RECEIPT_BODY)
        receipt = request.to_domain()

        assert receipt.bundle_id == "com.app"
        assert receipt.app_version == "1.2.3"
        assert receipt.developer_payload == ""

    def test_request_missing_fields_become_empty(self):
        receipt = ReceiptRequest.model_validate({"bundleId": None}).to_domain()
        assert receipt == Receipt("", "", "", "")

    def test_response_omits_null_expiry_and_grace(self):
        body = ValidatedReceiptResponse.from_domain(VALIDATED).model_dump(
            mode="json", by_alias=True, exclude_none=True
        )

        assert "expiryUtc" not in body
        assert "graceDays" not in body
        assert body["originalTransactionId"] == "900"
        assert body["isExpired"] is False

    def test_response_includes_expiry_and_grace(self):
        validated = ValidatedReceipt(
            **{**VALIDATED.__dict__, "expiry_utc": datetime(2024, 7, 1, tzinfo=UTC), "grace_days": 3}
        )
        body = ValidatedReceiptResponse.from_domain(validated).model_dump(
            mode="json", by_alias=True, exclude_none=True
        )

        assert body["graceDays"] == 3
        assert body["expiryUtc"].startswith("2024-07-01T00:00:00")


class TestVerificationRoutes:
    """200 with the validated receipt, 400 with an empty body otherwise."""

    @pytest.mark.parametrize(
        "path,dependency",
        [
            ("/v1/Apple", get_apple_receipt_verifier),
            ("/v2/Apple", get_apple_transaction_verifier),
            ("/v1/Google", get_google_play_verifier),
        ],
    )
    def test_valid(self, client, path, dependency):
        verifier = StubVerifier(VALID)
        _override(dependency, verifier)

        response = client.post(path, json=RECEIPT_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["bundleId"] == "com.app"
        assert body["transactionId"] == "1000"
        assert body["isSuspended"] is False
        assert "expiryUtc" not in body
        assert verifier.receipts[0].token == "abc"

    def test_invalid_is_empty_400(self, client):
        _override(get_apple_receipt_verifier, StubVerifier(ValidationOutcome.invalid("nope")))

        response = client.post("/v1/Apple", json=RECEIPT_BODY)

        assert response.status_code == 400
        assert response.content == b""

    def test_unconfigured_store_is_400(self, client, audit_log):
        _override(get_google_play_verifier, None)

        response = client.post("/v1/Google", json=RECEIPT_BODY)

        assert response.status_code == 400
        assert response.content == b""
        ((store_name, route, receipt, outcome),) = audit_log.calls
        assert (store_name, route) == ("Google", "v1/Google")
        assert receipt.token == "abc"
        assert outcome.is_valid is False
        assert outcome.message == "Google verification is not configured"

    def test_incomplete_body_reaches_verifier(self, client):
        """Incomplete receipts are audited by the verifier, not rejected by FastAPI."""
        verifier = StubVerifier(ValidationOutcome.invalid("Invalid Receipt"))
        _override(get_apple_receipt_verifier, verifier)

        response = client.post("/v1/Apple", json={"bundleId": "com.app"})

        assert response.status_code == 400
        assert verifier.receipts == [Receipt("com.app", "", "", "")]

    def test_malformed_json_is_empty_400(self, client):
        _override(get_apple_receipt_verifier, StubVerifier(VALID))

        response = client.post(
            "/v1/Apple", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.content == b""


class TestRequestLogContext:
    """Log entries written while handling a request carry its id."""

    def test_request_id_bound_during_verification(self, client):
        seen: list[dict] = []

        class ContextRecordingVerifier(StubVerifier):
            async def verify(self, receipt: Receipt) -> ValidationOutcome:
                seen.append(structlog.contextvars.get_contextvars())
                return await super().verify(receipt)

        _override(get_apple_receipt_verifier, ContextRecordingVerifier(VALID))

        client.post("/v1/Apple", json=RECEIPT_BODY, headers={"X-Request-ID": "req-42"})

        assert seen[0]["request_id"] == "req-42"
        assert seen[0]["path"] == "/v1/Apple"


class TestServiceRoutes:
    """Root, health and metrics."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self, client):
        _override(get_apple_receipt_verifier, StubVerifier(VALID))
        client.post("/v1/Apple", json=RECEIPT_BODY)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "iap_verify_http_requests_total" in response.text
