"""Evaluator abstraction layer.

Exports:
    Error classes for evaluator error handling
    EvaluatorConfig and RetryPolicy for configuration
    EvaluatorGateway, the single entry point used by the services
    create_evaluator_client for building the configured client
"""

from expertise.evaluator.config import EvaluatorConfig
from expertise.evaluator.errors import (
    EvaluatorAuthenticationError,
    EvaluatorError,
    EvaluatorMalformedResponseError,
    EvaluatorRateLimitError,
    EvaluatorTimeoutError,
    EvaluatorUnavailableError,
    TransientEvaluatorError,
    UnsupportedModuleError,
)
from expertise.evaluator.factory import create_evaluator_client
from expertise.evaluator.gateway import EvaluatorGateway
from expertise.evaluator.retry import RetryPolicy, with_retries

__all__ = [
    # Config
    "EvaluatorConfig",
    "RetryPolicy",
    # Errors
    "EvaluatorError",
    "TransientEvaluatorError",
    "EvaluatorTimeoutError",
    "EvaluatorMalformedResponseError",
    "EvaluatorRateLimitError",
    "EvaluatorUnavailableError",
    "EvaluatorAuthenticationError",
    "UnsupportedModuleError",
    # Gateway
    "EvaluatorGateway",
    "with_retries",
    # Factory
    "create_evaluator_client",
]
