"""
Verification audit log.

Every verification attempt is appended as one row. The verifier never
depends on the write succeeding.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from iap_verify.db.models import VerificationLog
from iap_verify.models.domain import Receipt, ValidationOutcome
from iap_verify.observability.metrics import metrics

logger = get_logger(__name__)


class VerificationLogRepository(Protocol):
    """Audit log collaborator."""

    async def save_log(
        self,
        store_name: str,
        validator_route: str,
        receipt: Receipt,
        outcome: ValidationOutcome,
    ) -> bool:
        """
        Append one row for a verification attempt.

        Returns:
            True if the row was written, False otherwise. Never raises for
            storage failures.
        """
        ...


def build_log_row(
    store_name: str,
    validator_route: str,
    receipt: Receipt,
    outcome: ValidationOutcome,
) -> VerificationLog:
    """Flatten a receipt and its outcome into a log row."""
    return VerificationLog(
        store_name=store_name,
        validator_route=validator_route,
        product_id=receipt.product_id,
        bundle_id=receipt.bundle_id,
        transaction_id=receipt.transaction_id,
        developer_payload=receipt.developer_payload,
        token=receipt.token,
        app_version=receipt.app_version,
        environment=outcome.environment.value,
        is_valid=outcome.is_valid,
        message=outcome.message,
    )


class SqlVerificationLogRepository:
    """Writes verification logs through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save_log(
        self,
        store_name: str,
        validator_route: str,
        receipt: Receipt,
        outcome: ValidationOutcome,
    ) -> bool:
        row = build_log_row(store_name, validator_route, receipt, outcome)

        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception as exc:
            logger.error(
                "verification_log_save_failed",
                store_name=store_name,
                validator_route=validator_route,
                error=str(exc),
            )
            metrics.record_audit_write(False)
            return False

        metrics.record_audit_write(True)
        return True
