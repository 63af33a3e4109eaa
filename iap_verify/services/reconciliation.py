"""
Reconciliation and status engine.

Matches the client's claim against the authority's records and derives the
expiry, grace and suspension state of the purchase.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from structlog import get_logger

from iap_verify.exceptions import ReconciliationMismatchError, VerificationError
from iap_verify.models.domain import (
    AuthorityResult,
    PurchaseRecord,
    Receipt,
    SubscriptionState,
    ValidatedReceipt,
    ValidationOutcome,
)

logger = get_logger(__name__)

REVOKED_MESSAGE = "App Store refunded a transaction or revoked it from family sharing"


def select_latest(records: Iterable[PurchaseRecord], product_id: str) -> PurchaseRecord | None:
    """
    Latest purchase of ``product_id``.

    Ties on purchase date go to the record that came last from the authority.
    """
    latest: PurchaseRecord | None = None
    for record in records:
        if record.product_id != product_id:
            continue
        if latest is None or record.purchase_date_utc >= latest.purchase_date_utc:
            latest = record
    return latest


def is_expired(expiry_utc: datetime | None, grace_days: int, now: datetime) -> bool:
    """A purchase without an expiry (consumables, lifetime unlocks) never expires."""
    if expiry_utc is None:
        return False
    try:
        return expiry_utc + timedelta(days=grace_days) <= now
    except OverflowError:
        # Grace runs past datetime.max, so the deadline is still ahead
        return False


def _match(receipt: Receipt, result: AuthorityResult) -> PurchaseRecord:
    if result.bundle_id != receipt.bundle_id:
        raise ReconciliationMismatchError(
            "bundle_id",
            receipt.bundle_id,
            f"bundle id '{receipt.bundle_id}' does not match '{result.bundle_id}'",
        )

    if not result.records:
        raise ReconciliationMismatchError("product_id", receipt.product_id, "no purchase found")

    record = select_latest(result.records, receipt.product_id)
    if record is None:
        raise ReconciliationMismatchError(
            "product_id",
            receipt.product_id,
            f"did not find '{receipt.product_id}' in list of purchases",
        )

    # A renewal's transaction id differs from the original the client may hold
    if receipt.transaction_id not in (record.transaction_id, record.original_transaction_id):
        raise ReconciliationMismatchError(
            "transaction_id",
            receipt.transaction_id,
            f"transaction id '{receipt.transaction_id}' does not match either original "
            f"'{record.original_transaction_id}', or '{record.transaction_id}'",
        )

    return record


def reconcile(
    receipt: Receipt,
    result: AuthorityResult,
    grace_days: int,
    now: datetime,
) -> ValidationOutcome:
    """
    Reconcile a receipt against the authority's normalised response.

    Never raises: every failure becomes an invalid outcome.
    """
    try:
        record = _match(receipt, result)

        message = ""
        expiry_utc = record.expiry_date_utc
        effective_grace = grace_days

        if record.cancellation_date_utc is not None:
            message = REVOKED_MESSAGE
            expiry_utc = record.cancellation_date_utc
            effective_grace = 0
        elif record.subscription_state is SubscriptionState.CANCELED:
            effective_grace = 0

        validated = ValidatedReceipt(
            bundle_id=receipt.bundle_id,
            product_id=receipt.product_id,
            transaction_id=record.transaction_id,
            original_transaction_id=record.original_transaction_id,
            purchase_date_utc=record.purchase_date_utc,
            expiry_utc=expiry_utc,
            server_utc=now,
            grace_days=effective_grace if expiry_utc is not None else None,
            is_expired=is_expired(expiry_utc, effective_grace, now),
            is_suspended=record.subscription_state.is_suspended,
            token=receipt.token,
        )
        return ValidationOutcome(
            is_valid=True,
            message=message,
            validated_receipt=validated,
            environment=result.environment,
        )

    except VerificationError as exc:
        return ValidationOutcome.invalid(exc.message, result.environment)
    except Exception as exc:
        logger.exception("reconciliation_failed", error=str(exc))
        return ValidationOutcome.invalid(str(exc), result.environment)
