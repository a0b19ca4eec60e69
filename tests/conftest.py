"""Shared test fixtures.

Service-level and API tests run against the in-memory repositories and the
scripted MockEvaluatorClient with a zero retry delay. Repository tests that
need PostgreSQL skip when it is not reachable on port 5432.
"""

import socket
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import create_async_engine

from expertise.core.config import settings
from expertise.core.database import create_session_factory
from expertise.core.rate_limiting import limiter
from expertise.evaluator.config import EvaluatorConfig
from expertise.evaluator.mock_client import MockEvaluatorClient
from expertise.models.base import Base
from expertise.repositories.memory import (
    InMemoryCreditRepository,
    InMemoryReportRepository,
)
from expertise.services.container import AnalysisServices, assemble_services

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


# =============================================================================
# Service Fixtures (in-memory)
# =============================================================================


@pytest.fixture
def evaluator_config() -> EvaluatorConfig:
    """Mock evaluator, 3 attempts, no delay between them."""
    return EvaluatorConfig(
        provider="mock",
        timeout_seconds=5.0,
        max_attempts=3,
        retry_delay_seconds=0.0,
    )


@pytest.fixture
def mock_evaluator() -> MockEvaluatorClient:
    """Scripted evaluator answering SAMPLE_RESULTS unless told otherwise."""
    return MockEvaluatorClient()


@pytest.fixture
def credit_repo() -> InMemoryCreditRepository:
    return InMemoryCreditRepository()


@pytest.fixture
def report_repo() -> InMemoryReportRepository:
    return InMemoryReportRepository()


@pytest.fixture
def services(
    credit_repo: InMemoryCreditRepository,
    report_repo: InMemoryReportRepository,
    mock_evaluator: MockEvaluatorClient,
    evaluator_config: EvaluatorConfig,
) -> AnalysisServices:
    """Fully wired services over in-memory storage and the mock evaluator."""
    return assemble_services(credit_repo, report_repo, mock_evaluator, evaluator_config)


async def fund(services: AnalysisServices, user_id: uuid.UUID, amount: str) -> None:
    """Give a user a starting balance through the ledger."""
    await services.ledger.purchase(user_id, Decimal(amount), reference="test-seed")


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(services: AnalysisServices) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client authenticated as TEST_USER_ID.

    Enables JWT auth with the test secret, installs the in-memory services
    on the app, and clears rate limiter state so tests stay independent.

    Yields:
        AsyncClient with the auth cookie set.
    """
    from expertise.main import app

    original_services = getattr(app.state, "services", None)
    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    app.state.services = services
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth_cookie_name: create_test_jwt(TEST_USER_ID)},
    ) as ac:
        yield ac

    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    app.state.services = original_services


@pytest_asyncio.fixture
async def unauthenticated_client(
    services: AnalysisServices,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client with auth enabled but no cookie (expects 401)."""
    from expertise.main import app

    original_services = getattr(app.state, "services", None)
    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    app.state.services = services
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    app.state.services = original_services


# =============================================================================
# Database Fixtures (PostgreSQL)
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with a fresh schema.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)
