"""
Tests for exception classes.

Covers the verification error taxonomy and its messages.
"""

import pytest

from iap_verify.exceptions import (
    InvalidReceiptError,
    MalformedPayloadError,
    NoReceiptError,
    ReconciliationMismatchError,
    UpstreamParseError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
    VerificationError,
    WrongEnvironmentError,
)


class TestVerificationError:
    """Tests for base VerificationError."""

    def test_message_attribute(self):
        exc = VerificationError("something failed")
        assert exc.message == "something failed"
        assert str(exc) == "something failed"

    @pytest.mark.parametrize(
        "exc",
        [
            InvalidReceiptError(),
            UpstreamUnreachableError("Apple verifyReceipt", "timeout"),
            UpstreamParseError("Apple verifyReceipt", "bad json"),
            WrongEnvironmentError("Apple verifyReceipt", "sandbox"),
            UpstreamRejectedError("Google Play", "expired"),
            ReconciliationMismatchError("bundle_id", "com.app", "mismatch"),
        ],
    )
    def test_all_are_verification_errors(self, exc):
        assert isinstance(exc, VerificationError)


class TestInvalidReceiptError:
    def test_fixed_message(self):
        assert InvalidReceiptError().message == "Invalid Receipt"


class TestUpstreamErrors:
    """Upstream errors remember which authority failed."""

    def test_authority(self):
        exc = UpstreamUnreachableError("Google Play", "HTTP 500")
        assert exc.authority == "Google Play"
        assert exc.message == "HTTP 500"

    def test_no_receipt_is_rejection(self):
        exc = NoReceiptError("Apple verifyReceipt")
        assert isinstance(exc, UpstreamRejectedError)
        assert exc.message == "no receipt returned"

    def test_malformed_payload_is_parse_error(self):
        exc = MalformedPayloadError("Google Play", "latestOrderId")
        assert isinstance(exc, UpstreamParseError)
        assert exc.field == "latestOrderId"
        assert exc.message == "Google Play response is missing 'latestOrderId'"

    def test_wrong_environment_is_not_rejection(self):
        """The fallback caller relies on telling these apart."""
        assert not issubclass(WrongEnvironmentError, UpstreamRejectedError)


class TestReconciliationMismatchError:
    def test_attributes(self):
        exc = ReconciliationMismatchError("transaction_id", "1000", "does not match")
        assert exc.field == "transaction_id"
        assert exc.claimed == "1000"
        assert exc.message == "does not match"
