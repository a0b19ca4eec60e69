"""Application configuration loaded from environment variables.

Settings for the database, the evaluator, persistence backend selection,
authentication, and rate limiting. Uses pydantic-settings for validation
and .env file support.
"""

import uuid
from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
_INSECURE_DEFAULT_PASSWORD = "expertise_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "vehicle_expertise"
    database_user: str = "expertise_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # "memory" keeps ledger and reports in process (local runs, tests)
    persistence_backend: Literal["postgres", "memory"] = "postgres"

    # API
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Evaluator
    evaluator_provider: Literal["openai", "mock"] = "openai"
    openai_api_key: str = ""
    evaluator_model: str = "gpt-4o"
    # JSON object, e.g. {"audio": "gpt-4o-mini"}
    evaluator_model_routing: dict[str, str] = {}
    evaluator_timeout_seconds: float = 120.0
    evaluator_max_attempts: int = 3
    evaluator_retry_delay_seconds: float = 2.0
    evaluator_retry_backoff: float = 1.0

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    # Local-first mode: DEFAULT_USER_ID provides user context without JWT
    # Hosted mode: auth_enabled=True, JWT cookie required on every request
    default_user_id: uuid.UUID | None = None
    auth_enabled: bool = False
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "vehicle-expertise"
    auth_audience: str = "vehicle-expertise"
    auth_cookie_name: str = "expertise.session-token"

    # Rate Limiting
    # Limits evaluator-calling endpoints to prevent abuse and cost explosion
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_analysis: str = "10/minute"
    rate_limit_enabled: bool = True

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate evaluator policy and production security requirements.

        Checks:
        - Evaluator attempts, delay and timeout are sane (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars when auth is enabled in production
        """
        if self.evaluator_max_attempts < 1:
            msg = (
                "EVALUATOR_MAX_ATTEMPTS must be at least 1. "
                f"Got: {self.evaluator_max_attempts}"
            )
            raise ValueError(msg)
        if self.evaluator_retry_delay_seconds < 0:
            msg = (
                "EVALUATOR_RETRY_DELAY_SECONDS cannot be negative. "
                f"Got: {self.evaluator_retry_delay_seconds}"
            )
            raise ValueError(msg)
        if self.evaluator_retry_backoff < 1:
            msg = (
                "EVALUATOR_RETRY_BACKOFF must be at least 1. "
                f"Got: {self.evaluator_retry_backoff}"
            )
            raise ValueError(msg)
        if self.evaluator_timeout_seconds <= 0:
            msg = (
                "EVALUATOR_TIMEOUT_SECONDS must be positive. "
                f"Got: {self.evaluator_timeout_seconds}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if self.evaluator_provider == "mock":
                msg = "EVALUATOR_PROVIDER=mock is not allowed in production."
                raise ValueError(msg)

            if self.auth_enabled:
                secret_value = self.auth_secret.get_secret_value()
                if not secret_value:
                    msg = (
                        "AUTH_SECRET must be set when AUTH_ENABLED=true in production. "
                        'Generate with: python -c "import secrets; '
                        'print(secrets.token_hex(32))"'
                    )
                    raise ValueError(msg)
                if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                    msg = (
                        f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                        "characters for adequate security."
                    )
                    raise ValueError(msg)

        return self


settings = Settings()
