"""
Tests for the verification audit log.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from iap_verify.db.models import Base, VerificationLog
from iap_verify.models.domain import Environment, ValidationOutcome
from iap_verify.services.audit import SqlVerificationLogRepository, build_log_row


def _session_factory(session: AsyncMock) -> MagicMock:
    """Session factory whose context manager yields ``session``."""
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


@pytest.fixture
def db_session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.commit = AsyncMock()
    return session


class TestBuildLogRow:
    """Receipt and outcome are flattened into one row."""

    def test_invalid_outcome(self, receipt):
        row = build_log_row(
            "Apple", "v1/Apple", receipt, ValidationOutcome.invalid("nope", Environment.TEST)
        )

        assert row.store_name == "Apple"
        assert row.validator_route == "v1/Apple"
        assert row.bundle_id == "com.app"
        assert row.product_id == "gold"
        assert row.transaction_id == "1000"
        assert row.token == "abc"
        assert row.app_version == "1.2.3"
        assert row.developer_payload == "payload"
        assert row.environment == "Test"
        assert row.is_valid is False
        assert row.message == "nope"


class TestSqlVerificationLogRepository:
    """Writes go through the session; failures never raise."""

    @pytest.mark.asyncio
    async def test_save_commits(self, receipt, db_session):
        repository = SqlVerificationLogRepository(_session_factory(db_session))

        saved = await repository.save_log(
            "Google", "v1/Google", receipt, ValidationOutcome.invalid("x")
        )

        assert saved is True
        db_session.add.assert_called_once()
        assert isinstance(db_session.add.call_args.args[0], VerificationLog)
        db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_save_failure_returns_false(self, receipt, db_session):
        db_session.commit.side_effect = RuntimeError("database is down")
        repository = SqlVerificationLogRepository(_session_factory(db_session))

        saved = await repository.save_log("Apple", "v1/Apple", receipt, ValidationOutcome.invalid("x"))

        assert saved is False

    @pytest.mark.asyncio
    async def test_rows_are_appended_to_sqlite(self, receipt):
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            repository = SqlVerificationLogRepository(factory)
            outcome = ValidationOutcome.invalid("Invalid Receipt")

            assert await repository.save_log("Apple", "v1/Apple", receipt, outcome)
            assert await repository.save_log("Apple", "v1/Apple", receipt, outcome)

            async with factory() as session:
                count = await session.scalar(select(func.count()).select_from(VerificationLog))
                row = (await session.execute(select(VerificationLog).limit(1))).scalar_one()

            assert count == 2
            assert row.message == "Invalid Receipt"
            assert row.environment == "Unknown"
            assert row.verified_at is not None
        finally:
            await engine.dispose()
