"""Evaluator gateway: timeout, bounded retry and schema validation.

invoke() is the only way the rest of the system talks to the evaluator.
It neither reads nor writes the credit ledger or the report store, so a
failure here has no side effects for the orchestrator to undo beyond the
reservation it already made.
"""

import asyncio
import logging
from typing import Any

from expertise.core.pricing import COMPONENT_MODULES, ModuleType
from expertise.evaluator.client import EvaluatorClient
from expertise.evaluator.errors import EvaluatorTimeoutError, UnsupportedModuleError
from expertise.evaluator.retry import RetryPolicy, with_retries
from expertise.evaluator.schemas import parse_module_result

logger = logging.getLogger(__name__)


class EvaluatorGateway:
    """Calls the evaluator for one module with retries and validation.

    Every attempt is bounded by timeout_seconds; a timeout, an empty or
    malformed answer, a rate limit or a connection failure counts as one
    failed attempt. The policy's attempts are made with its delay between
    them, and the last error propagates when all of them fail.

    Args:
        client: The evaluator client.
        policy: Retry policy (3 attempts, 2s apart by default).
        timeout_seconds: Hard deadline per attempt.
    """

    def __init__(
        self,
        client: EvaluatorClient,
        policy: RetryPolicy | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self._client = client
        self._policy = policy or RetryPolicy()
        self._timeout_seconds = timeout_seconds

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def _attempt(self, module: ModuleType, payload: dict[str, Any]) -> Any:
        try:
            raw = await asyncio.wait_for(
                self._client.evaluate(module, payload, self._timeout_seconds),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as e:
            raise EvaluatorTimeoutError(self._timeout_seconds) from e
        return parse_module_result(module, raw)

    async def invoke(self, module: ModuleType, payload: dict[str, Any]) -> Any:
        """Run one module analysis and return its validated result.

        Args:
            module: A component module (paint, damage, audio or value).
            payload: Module input passed through to the client.

        Returns:
            The validated ModuleResult variant for the module.

        Raises:
            UnsupportedModuleError: If module is not a component module.
            EvaluatorError: The last attempt's error when all attempts fail,
                or the first non-retryable error.
        """
        if module not in COMPONENT_MODULES:
            raise UnsupportedModuleError(
                f"'{module.value}' cannot be evaluated directly"
            )

        result = await with_retries(
            lambda: self._attempt(module, payload),
            self._policy,
            label=f"{module.value} evaluation",
        )
        logger.info("Evaluator returned a valid %s result", module.value)
        return result
