"""
Tests for the production to sandbox fallback caller.
"""

from typing import Any

import pytest

from iap_verify.exceptions import (
    UpstreamRejectedError,
    UpstreamUnreachableError,
    WrongEnvironmentError,
)
from iap_verify.models.domain import AuthorityResult, Environment, Receipt
from iap_verify.services.fallback import call_with_fallback


class ScriptedAdapter:
    """Adapter whose fetch answers from a script, one entry per call."""

    authority = "Scripted"

    def __init__(self, script: list[Any], sandbox: str | None = "sandbox") -> None:
        self.script = list(script)
        self.sandbox = sandbox
        self.calls: list[str] = []

    def endpoints(self, receipt: Receipt) -> tuple[str, str | None]:
        return "production", self.sandbox

    async def fetch(self, receipt: Receipt, endpoint: str) -> Any:
        self.calls.append(endpoint)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    def normalize(self, receipt: Receipt, raw: Any) -> AuthorityResult:
        return AuthorityResult(bundle_id=receipt.bundle_id, environment=raw)


class TestCallWithFallback:
    """Production first, sandbox at most once."""

    @pytest.mark.asyncio
    async def test_production_success_does_not_touch_sandbox(self, receipt):
        adapter = ScriptedAdapter([Environment.PRODUCTION])

        result = await call_with_fallback(adapter, receipt)

        assert adapter.calls == ["production"]
        assert result.environment is Environment.PRODUCTION

    @pytest.mark.asyncio
    async def test_wrong_environment_retries_sandbox_once(self, receipt):
        adapter = ScriptedAdapter(
            [WrongEnvironmentError("Scripted", "sandbox receipt"), Environment.TEST]
        )

        result = await call_with_fallback(adapter, receipt)

        assert adapter.calls == ["production", "sandbox"]
        assert result.environment is Environment.TEST

    @pytest.mark.asyncio
    async def test_second_wrong_environment_is_terminal(self, receipt):
        adapter = ScriptedAdapter(
            [
                WrongEnvironmentError("Scripted", "first"),
                WrongEnvironmentError("Scripted", "second"),
                Environment.TEST,
            ]
        )

        with pytest.raises(WrongEnvironmentError, match="second"):
            await call_with_fallback(adapter, receipt)
        assert adapter.calls == ["production", "sandbox"]

    @pytest.mark.asyncio
    async def test_no_sandbox_reraises(self, receipt):
        adapter = ScriptedAdapter([WrongEnvironmentError("Scripted", "nope")], sandbox=None)

        with pytest.raises(WrongEnvironmentError):
            await call_with_fallback(adapter, receipt)
        assert adapter.calls == ["production"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            UpstreamUnreachableError("Scripted", "timeout"),
            UpstreamRejectedError("Scripted", "rejected"),
            RuntimeError("boom"),
        ],
    )
    async def test_other_failures_do_not_retry(self, receipt, error):
        adapter = ScriptedAdapter([error, Environment.TEST])

        with pytest.raises(type(error)):
            await call_with_fallback(adapter, receipt)
        assert adapter.calls == ["production"]
