"""Evaluator configuration."""

from dataclasses import dataclass, field

from expertise.core.config import Settings, settings
from expertise.evaluator.retry import RetryPolicy


@dataclass
class EvaluatorConfig:
    """Everything the gateway and its client need.

    Attributes:
        provider: Which client to build ("openai" or "mock").
        openai_api_key: OpenAI API key.
        model: Default model identifier.
        model_routing: Per-module model overrides keyed by module value.
        timeout_seconds: Hard per-attempt timeout.
        max_attempts: Total attempts per invocation, including the first.
        retry_delay_seconds: Wait before the first retry.
        retry_backoff: Multiplier applied to the wait after each retry.
        temperature: Sampling temperature for the model.
    """

    provider: str = "openai"
    openai_api_key: str | None = None
    model: str = "gpt-4o"
    model_routing: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 120.0
    max_attempts: int = 3
    retry_delay_seconds: float = 2.0
    retry_backoff: float = 1.0
    temperature: float = 0.2

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            delay_seconds=self.retry_delay_seconds,
            backoff_multiplier=self.retry_backoff,
        )

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "EvaluatorConfig":
        """Build the config from application settings.

        Args:
            source: Settings to read; defaults to the process settings.

        Returns:
            EvaluatorConfig with values from the environment.
        """
        s = source or settings
        return cls(
            provider=s.evaluator_provider,
            openai_api_key=s.openai_api_key or None,
            model=s.evaluator_model,
            model_routing=dict(s.evaluator_model_routing),
            timeout_seconds=s.evaluator_timeout_seconds,
            max_attempts=s.evaluator_max_attempts,
            retry_delay_seconds=s.evaluator_retry_delay_seconds,
            retry_backoff=s.evaluator_retry_backoff,
        )
