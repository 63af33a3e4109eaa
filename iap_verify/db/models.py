"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class VerificationLog(Base):
    """
    ORM model for verification_logs table.

    One append-only row per verification attempt, valid or not.
    Rows are never updated or deleted by the service.
    """

    __tablename__ = "verification_logs"

    # BigInteger on PostgreSQL, INTEGER (rowid alias) on SQLite
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    # Which endpoint handled the attempt
    store_name: Mapped[str] = mapped_column(String(50), nullable=False)
    validator_route: Mapped[str] = mapped_column(String(50), nullable=False)

    # Client claim
    product_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    bundle_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    developer_payload: Mapped[str] = mapped_column(Text, nullable=False, default="")
    token: Mapped[str] = mapped_column(Text, nullable=False, default="")
    app_version: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Outcome
    environment: Mapped[str] = mapped_column(String(20), nullable=False, default="Unknown")
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_verification_logs_product_verified", "product_id", "verified_at"),
        Index("idx_verification_logs_transaction_id", "transaction_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationLog(id={self.id}, route={self.validator_route}, "
            f"product_id={self.product_id}, is_valid={self.is_valid})>"
        )
