"""Rate limit enforcement tests for analysis endpoints.

Every analysis request may cost up to three evaluator calls, so the
analysis routes are throttled per user. These tests drive the real app
through the HTTP transport.

Tests verify:
- Requests beyond the configured limit answer 429 with the error envelope
- Requests rejected inside the endpoint (402) still count
- Limits are keyed per user, not shared between users
- The key function falls back to the client address
"""

from httpx import AsyncClient
from starlette.requests import Request

from expertise.core.config import settings
from expertise.core.rate_limiting import _rate_limit_key_func
from tests.conftest import OTHER_USER_ID, TEST_USER_ID, create_test_jwt, fund

_URL_VALUE = "/api/v1/analyses/value"
_LIMIT = int(settings.rate_limit_analysis.split("/")[0])


def _request(cookies: dict[str, str] | None = None) -> Request:
    headers = []
    if cookies:
        cookie = "; ".join(f"{k}={v}" for k, v in cookies.items())
        headers.append((b"cookie", cookie.encode()))
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": _URL_VALUE,
            "headers": headers,
            "client": ("203.0.113.7", 5000),
        }
    )


class TestAnalysisRateLimit:
    """The analysis routes stop answering once the limit is spent."""

    async def test_request_exceeding_limit_returns_429(self, client: AsyncClient):
        """Unfunded requests fail with 402 but still consume the limit."""
        codes = [
            (await client.post(_URL_VALUE, json={})).status_code
            for _ in range(_LIMIT)
        ]

        response = await client.post(_URL_VALUE, json={})

        assert set(codes) == {402}
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert int(response.headers["retry-after"]) > 0

    async def test_throttled_request_charges_nothing(
        self, client: AsyncClient, services, mock_evaluator
    ):
        await fund(services, TEST_USER_ID, "10000")
        for _ in range(_LIMIT):
            await client.post(_URL_VALUE, json={})
        balance_before = await services.ledger.get_balance(TEST_USER_ID)

        response = await client.post(_URL_VALUE, json={})

        assert response.status_code == 429
        assert await services.ledger.get_balance(TEST_USER_ID) == balance_before
        assert len(mock_evaluator.calls) == _LIMIT

    async def test_limits_are_per_user(self, client: AsyncClient):
        for _ in range(_LIMIT):
            await client.post(_URL_VALUE, json={})

        client.cookies.set(settings.auth_cookie_name, create_test_jwt(OTHER_USER_ID))
        response = await client.post(_URL_VALUE, json={})

        assert response.status_code == 402


class TestRateLimitKey:
    """Key selection for the limiter."""

    async def test_valid_token_keys_by_user(self, client):  # noqa: ARG002
        """The client fixture enables auth with the test secret."""
        request = _request({settings.auth_cookie_name: create_test_jwt(TEST_USER_ID)})

        assert _rate_limit_key_func(request) == f"user:{TEST_USER_ID}"

    async def test_missing_token_keys_by_address(self, client):  # noqa: ARG002
        assert _rate_limit_key_func(_request()) == "unauth:203.0.113.7"

    async def test_invalid_token_keys_by_address(self, client):  # noqa: ARG002
        request = _request({settings.auth_cookie_name: "not-a-jwt"})

        assert _rate_limit_key_func(request) == "unauth:203.0.113.7"
