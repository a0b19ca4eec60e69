"""Evaluator client factory.

Clients are built once per process by the service container
(expertise.services.container) and injected; there is no module-level
singleton to reset between tests.
"""

from expertise.evaluator.client import EvaluatorClient
from expertise.evaluator.config import EvaluatorConfig
from expertise.evaluator.mock_client import MockEvaluatorClient
from expertise.evaluator.openai_client import OpenAIEvaluatorClient


def create_evaluator_client(config: EvaluatorConfig) -> EvaluatorClient:
    """Build the client named by config.provider.

    Args:
        config: Evaluator configuration.

    Returns:
        EvaluatorClient instance.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    if config.provider == "openai":
        return OpenAIEvaluatorClient(config)
    if config.provider == "mock":
        return MockEvaluatorClient()
    raise ValueError(f"Unknown evaluator provider: {config.provider}")
