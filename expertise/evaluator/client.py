"""Abstract evaluator client.

The client is the boundary to the external AI service. It returns the raw
decoded result for one module and maps transport and SDK failures onto the
evaluator error taxonomy. It does not retry, time out, or validate; the
gateway does all three.
"""

from abc import ABC, abstractmethod
from typing import Any

from expertise.core.pricing import ModuleType


class EvaluatorClient(ABC):
    """One call to the external evaluator for one module."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier used in logs."""

    @abstractmethod
    async def evaluate(
        self,
        module: ModuleType,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> Any:
        """Run one analysis.

        Args:
            module: Which analysis to run.
            payload: Module input: media references plus optional vehicle
                metadata. Opaque to everything but the client.
            timeout_seconds: Deadline the caller will enforce; clients pass
                it on to their transport.

        Returns:
            Decoded result object (normally a dict), unvalidated.

        Raises:
            EvaluatorError: Subclass describing the failure.
        """
