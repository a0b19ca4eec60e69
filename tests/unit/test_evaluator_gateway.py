"""Tests for the evaluator gateway.

Tests verify:
- A valid result on the first attempt is returned after one call
- Timeouts and malformed answers are retried up to the attempt limit
- The last error surfaces when every attempt fails
- Comprehensive requests are rejected before any call
"""

import asyncio
import copy
from typing import Any

import pytest

from expertise.core.pricing import ModuleType
from expertise.evaluator.client import EvaluatorClient
from expertise.evaluator.errors import (
    EvaluatorAuthenticationError,
    EvaluatorMalformedResponseError,
    EvaluatorTimeoutError,
    EvaluatorUnavailableError,
    UnsupportedModuleError,
)
from expertise.evaluator.gateway import EvaluatorGateway
from expertise.evaluator.mock_client import SAMPLE_RESULTS, MockEvaluatorClient
from expertise.evaluator.retry import RetryPolicy
from expertise.evaluator.schemas import DamageResult, PaintResult

_NO_DELAY = RetryPolicy(max_attempts=3, delay_seconds=0)


class _HangingClient(EvaluatorClient):
    """Never answers; every attempt runs into the gateway timeout."""

    def __init__(self) -> None:
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "hanging"

    async def evaluate(
        self, module: ModuleType, payload: dict[str, Any], timeout_seconds: float
    ) -> Any:
        self.calls += 1
        await asyncio.Event().wait()


def _gateway(client: EvaluatorClient, timeout: float = 5.0) -> EvaluatorGateway:
    return EvaluatorGateway(client, policy=_NO_DELAY, timeout_seconds=timeout)


def _damage_without_summary() -> dict[str, Any]:
    raw = copy.deepcopy(SAMPLE_RESULTS[ModuleType.DAMAGE])
    del raw["decision_summary"]
    return raw


# =============================================================================
# Success
# =============================================================================


class TestInvokeSuccess:
    """Valid answers come back as typed results."""

    async def test_returns_typed_result(self):
        """A sample paint answer parses into PaintResult."""
        client = MockEvaluatorClient()

        result = await _gateway(client).invoke(ModuleType.PAINT, {"image_urls": []})

        assert isinstance(result, PaintResult)
        assert result.overall_score == 82
        assert client.calls_for(ModuleType.PAINT) == 1

    async def test_passes_payload_and_timeout_to_client(self):
        """The client sees the payload and the per-attempt timeout."""
        client = MockEvaluatorClient()

        await _gateway(client, timeout=42).invoke(
            ModuleType.AUDIO, {"audio_url": "uploads/engine.wav"}
        )

        assert client.calls[0]["payload"] == {"audio_url": "uploads/engine.wav"}
        assert client.calls[0]["timeout_seconds"] == 42

    async def test_succeeds_on_third_attempt(self):
        """Two failures followed by a valid answer is a success after 3 calls."""
        client = MockEvaluatorClient()
        client.set_outcomes(
            ModuleType.DAMAGE,
            EvaluatorUnavailableError("connection reset"),
            _damage_without_summary(),
            SAMPLE_RESULTS[ModuleType.DAMAGE],
        )

        result = await _gateway(client).invoke(ModuleType.DAMAGE, {})

        assert isinstance(result, DamageResult)
        assert client.calls_for(ModuleType.DAMAGE) == 3


# =============================================================================
# Failure
# =============================================================================


class TestInvokeFailure:
    """Failures are retried, then the last one propagates."""

    async def test_timeout_on_every_attempt(self):
        """A hanging evaluator costs exactly max_attempts calls."""
        client = _HangingClient()

        with pytest.raises(EvaluatorTimeoutError):
            await _gateway(client, timeout=0.01).invoke(ModuleType.PAINT, {})

        assert client.calls == 3

    async def test_malformed_on_every_attempt(self):
        """Missing required sections on every attempt surface as malformed."""
        client = MockEvaluatorClient()
        client.set_outcomes(ModuleType.DAMAGE, _damage_without_summary())

        with pytest.raises(EvaluatorMalformedResponseError) as exc_info:
            await _gateway(client).invoke(ModuleType.DAMAGE, {})

        assert "decision_summary" in exc_info.value.missing_fields
        assert client.calls_for(ModuleType.DAMAGE) == 3

    async def test_empty_answer_is_malformed(self):
        """An empty object is never a result."""
        client = MockEvaluatorClient()
        client.set_outcomes(ModuleType.VALUE, {})

        with pytest.raises(EvaluatorMalformedResponseError):
            await _gateway(client).invoke(ModuleType.VALUE, {})

    async def test_authentication_error_is_not_retried(self):
        """A bad API key fails on the first call."""
        client = MockEvaluatorClient()
        client.set_outcomes(ModuleType.PAINT, EvaluatorAuthenticationError("bad key"))

        with pytest.raises(EvaluatorAuthenticationError):
            await _gateway(client).invoke(ModuleType.PAINT, {})

        assert client.calls_for(ModuleType.PAINT) == 1

    async def test_comprehensive_is_rejected_without_calling(self):
        """Comprehensive reports are aggregated, never evaluated directly."""
        client = MockEvaluatorClient()

        with pytest.raises(UnsupportedModuleError):
            await _gateway(client).invoke(ModuleType.COMPREHENSIVE, {})

        assert client.calls == []
