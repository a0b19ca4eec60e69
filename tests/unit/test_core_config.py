"""Tests for application configuration.

Tests cover evaluator policy validation, production security checks,
and the database URLs derived from settings.
"""

import pytest
from pydantic import SecretStr, ValidationError

from expertise.core.config import _INSECURE_DEFAULT_PASSWORD, Settings
from expertise.evaluator.config import EvaluatorConfig

_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


class TestEvaluatorPolicyValidation:
    """Retry and timeout settings are checked in every environment."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError, match="EVALUATOR_MAX_ATTEMPTS"):
            Settings(evaluator_max_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValidationError, match="EVALUATOR_RETRY_DELAY_SECONDS"):
            Settings(evaluator_retry_delay_seconds=-1)

    def test_rejects_shrinking_backoff(self):
        with pytest.raises(ValidationError, match="EVALUATOR_RETRY_BACKOFF"):
            Settings(evaluator_retry_backoff=0.5)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError, match="EVALUATOR_TIMEOUT_SECONDS"):
            Settings(evaluator_timeout_seconds=0)

    def test_evaluator_config_reads_settings(self):
        s = Settings(
            evaluator_provider="mock",
            evaluator_timeout_seconds=30,
            evaluator_max_attempts=5,
            evaluator_retry_delay_seconds=1.5,
            evaluator_retry_backoff=2.0,
            evaluator_model_routing={"audio": "gpt-4o-mini"},
        )

        config = EvaluatorConfig.from_settings(s)

        assert config.provider == "mock"
        assert config.timeout_seconds == 30
        assert config.retry_policy.max_attempts == 5
        assert config.retry_policy.delay_seconds == 1.5
        assert config.retry_policy.delay_before(3) == 3.0
        assert config.model_routing == {"audio": "gpt-4o-mini"}


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_INSECURE_DEFAULT_PASSWORD,
            )

        assert "Cannot use default database password in production" in str(
            exc_info.value.errors()[0]["msg"]
        )

    def test_rejects_mock_evaluator_in_production(self):
        """Production must never serve canned analysis results."""
        with pytest.raises(ValidationError, match="EVALUATOR_PROVIDER=mock"):
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                evaluator_provider="mock",
            )

    def test_rejects_short_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_enabled=True,
                auth_secret=SecretStr("short"),
            )

    def test_rejects_missing_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="AUTH_SECRET must be set"):
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_enabled=True,
                auth_secret=SecretStr(""),
            )

    def test_accepts_secure_production_config(self):
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
            evaluator_provider="openai",
            auth_enabled=True,
            auth_secret=SecretStr(_TEST_AUTH_SECRET),
        )
        assert s.auth_enabled is True

    def test_rejects_wildcard_cors(self):
        with pytest.raises(ValidationError, match="wildcard"):
            Settings(allowed_origins=["*"])


class TestDatabaseUrls:
    """Connection strings are built from the individual settings."""

    def test_async_url_uses_asyncpg(self):
        s = Settings(
            database_user="u",
            database_password="p",
            database_host="db",
            database_port=5433,
            database_name="expertise",
        )

        assert s.database_url == "postgresql+asyncpg://u:p@db:5433/expertise"
        assert s.database_url_sync == "postgresql://u:p@db:5433/expertise"
