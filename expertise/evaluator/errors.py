"""Evaluator error taxonomy.

Client adapters map SDK and transport failures onto these classes; the
gateway's retry policy is keyed on them. None of them is an APIError: the
orchestrator turns a final evaluator failure into a refunded, FAILED report.

Transient (retried): timeout, malformed/empty response, rate limit,
unavailable. Permanent (raised immediately): authentication, unsupported
module, any other EvaluatorError.
"""


__all__ = [
    "EvaluatorError",
    "TransientEvaluatorError",
    "EvaluatorTimeoutError",
    "EvaluatorMalformedResponseError",
    "EvaluatorRateLimitError",
    "EvaluatorUnavailableError",
    "EvaluatorAuthenticationError",
    "UnsupportedModuleError",
]


class EvaluatorError(Exception):
    """Base class for all evaluator errors."""

    pass


class TransientEvaluatorError(EvaluatorError):
    """Failure that may succeed on a later attempt."""

    pass


class EvaluatorTimeoutError(TransientEvaluatorError):
    """An attempt exceeded the per-attempt timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Evaluator did not respond within {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class EvaluatorMalformedResponseError(TransientEvaluatorError):
    """Response was empty, not JSON, or failed schema validation.

    Attributes:
        missing_fields: Required fields absent from the response, if known.
    """

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class EvaluatorRateLimitError(TransientEvaluatorError):
    """The model provider throttled the request."""

    def __init__(self, message: str, retry_after_seconds: float | None = None):
        """Initialize EvaluatorRateLimitError.

        Args:
            message: Error description from the provider.
            retry_after_seconds: Optional hint from provider on when to retry.
        """
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class EvaluatorUnavailableError(TransientEvaluatorError):
    """Connection failure or 5xx from the model provider."""

    pass


class EvaluatorAuthenticationError(EvaluatorError):
    """Invalid or missing API key. Retrying cannot help."""

    pass


class UnsupportedModuleError(EvaluatorError):
    """The evaluator has no analysis for the requested module."""

    pass
