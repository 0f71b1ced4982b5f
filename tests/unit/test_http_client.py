"""
Unit tests for the HTTP transport.
"""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from etoro_trading.exchange.exceptions import (
    AuthenticationError,
    PermanentError,
    RateLimitError,
    TransientError,
    ValidationError,
    ConnectionError as ExchangeConnectionError
)
from etoro_trading.exchange.exchange_config import RateLimitConfig, load_config
from etoro_trading.exchange.http_client import HttpClient, is_retryable, parse_retry_after
from etoro_trading.exchange.rate_limiter import RateLimiter


class FakeResponse:
    """Minimal aiohttp response."""

    def __init__(self, status=200, body="", headers=None, reason="OK"):
        self.status = status
        self.body = body if isinstance(body, str) else json.dumps(body)
        self.headers = headers or {}
        self.reason = reason

    async def text(self):
        return self.body


class _RequestContext:
    def __init__(self, outcome):
        self.outcome = outcome

    async def __aenter__(self):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records requests and replays scripted responses or exceptions."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return _RequestContext(self.outcomes.pop(0))

    async def close(self):
        self.closed = True


def make_client(config, *outcomes, rate_limiter=None):
    session = FakeSession(*outcomes)
    return HttpClient(config, rate_limiter=rate_limiter, session=session), session


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_returns_decoded_json(config):
    """Test a successful GET sends auth headers and decodes the body."""
    client, session = make_client(config, FakeResponse(200, {"orderID": 1}))

    result = await client.request("GET", "/api/v1/test", query={"page": 2, "skip": None, "flag": True})

    assert result == {"orderID": 1}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://public-api.etoro.com/api/v1/test"
    assert call["params"] == {"page": "2", "flag": "true"}
    assert call["data"] is None

    headers = call["headers"]
    assert headers["x-api-key"] == "test-api-key"
    assert headers["x-user-key"] == "test-user-key"
    assert uuid.UUID(headers["x-request-id"])
    assert "Content-Type" not in headers


@pytest.mark.asyncio
@pytest.mark.unit
async def test_post_sends_json_body(config):
    """Test a body is serialized as JSON with a content type."""
    client, session = make_client(config, FakeResponse(200, {"ok": True}))

    await client.post("/api/v1/orders", body={"amount": 100}, request_id="req-1")

    call = session.calls[0]
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["headers"]["x-request-id"] == "req-1"
    assert json.loads(call["data"]) == {"amount": 100}


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("response", [FakeResponse(204), FakeResponse(200, "")])
async def test_empty_responses_return_none(config, response):
    """Test 204 and empty bodies map to None."""
    client, _ = make_client(config, response)

    assert await client.get("/api/v1/test") is None


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failure_not_retried(config, status):
    """Test 401/403 raise AuthenticationError without retrying."""
    client, session = make_client(config, FakeResponse(status))

    with pytest.raises(AuthenticationError) as exc_info:
        await client.get("/api/v1/test", request_id="req-auth")

    assert exc_info.value.status_code == status
    assert exc_info.value.request_id == "req-auth"
    assert len(session.calls) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_client_error_is_permanent(config):
    """Test other 4xx responses carry status, body and request context."""
    client, session = make_client(config, FakeResponse(404, '{"error":"not found"}', reason="Not Found"))

    with pytest.raises(PermanentError) as exc_info:
        await client.get("/api/v1/trading/info/demo/orders/1")

    error = exc_info.value
    assert error.status_code == 404
    assert error.response_body == '{"error":"not found"}'
    assert error.request_id
    assert error.request_context.method == "GET"
    assert error.request_context.path == "/api/v1/trading/info/demo/orders/1"
    assert error.request_context.duration >= 0
    assert len(session.calls) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_server_error_retried_then_succeeds(config):
    """Test 5xx responses are retried transparently."""
    client, session = make_client(config, FakeResponse(503), FakeResponse(200, {"ok": 1}))

    assert await client.get("/api/v1/test") == {"ok": 1}
    assert len(session.calls) == 2
    assert client.stats['retries'] == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_server_error_exhausts_retries(config):
    """Test TransientError surfaces after the retry budget is spent."""
    client, session = make_client(config, FakeResponse(500), FakeResponse(502), FakeResponse(500))

    with pytest.raises(TransientError) as exc_info:
        await client.get("/api/v1/test")

    assert exc_info.value.status_code == 500
    assert len(session.calls) == config.retry_attempts
    assert client.stats['errors'] == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rate_limit_penalizes_limiter(config):
    """Test a 429 with Retry-After penalizes the limiter and is retried."""
    limiter = RateLimiter(max_requests=10, window=1.0)
    client, session = make_client(
        config,
        FakeResponse(429, headers={"Retry-After": "0.05"}),
        FakeResponse(200, {"ok": 1}),
        rate_limiter=limiter
    )

    assert await client.get("/api/v1/test") == {"ok": 1}
    assert len(session.calls) == 2
    assert limiter.get_stats()['penalties'] == 1
    assert limiter.get_stats()['total_requests'] == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rate_limit_error_exposes_retry_after(config):
    """Test the final RateLimitError carries the parsed Retry-After."""
    client, _ = make_client(
        config,
        *[FakeResponse(429, headers={"Retry-After": "0.01"}) for _ in range(3)]
    )

    with pytest.raises(RateLimitError) as exc_info:
        await client.get("/api/v1/test")

    assert exc_info.value.retry_after == 0.01
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
@pytest.mark.unit
async def test_network_errors_become_connection_errors(config):
    """Test aiohttp and timeout failures are retried, then raised as ConnectionError."""
    client, session = make_client(
        config,
        aiohttp.ClientConnectionError("reset"),
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("reset")
    )

    with pytest.raises(ExchangeConnectionError) as exc_info:
        await client.get("/api/v1/test", request_id="req-net")

    assert exc_info.value.request_id == "req-net"
    assert len(session.calls) == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rate_limiter_acquired_per_attempt(config):
    """Test every attempt goes through the limiter."""
    limiter = Mock()
    limiter.acquire = AsyncMock()
    client, _ = make_client(config, FakeResponse(500), FakeResponse(200, {}), rate_limiter=limiter)

    await client.get("/api/v1/test")

    assert limiter.acquire.await_count == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_close_disposes_limiter_and_keeps_injected_session(config):
    """Test close disposes the limiter but leaves a caller-owned session open."""
    limiter = RateLimiter()
    client, session = make_client(config, rate_limiter=limiter)

    await client.close()

    assert limiter.is_disposed is True
    assert session.closed is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_request_after_close_gets_fresh_limiter():
    """Test a closed client rebuilds its own limiter instead of running unthrottled."""
    config = load_config(env={}, api_key="k", user_key="u", rate_limits=RateLimitConfig(5, 1.0))
    session = FakeSession(FakeResponse(200, {}))
    client = HttpClient(config, session=session)
    original = client.rate_limiter

    await client.close()
    assert original.is_disposed is True

    await client.get("/api/v1/test")

    assert client.rate_limiter is not original
    assert client.rate_limiter.is_disposed is False
    assert client.rate_limiter.current_usage == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_injected_limiter_is_not_replaced(config):
    """Test reopen leaves a caller-provided limiter alone."""
    limiter = RateLimiter()
    client, _ = make_client(config, rate_limiter=limiter)

    await client.close()
    client.reopen()

    assert client.rate_limiter is limiter


@pytest.mark.asyncio
@pytest.mark.unit
async def test_limiter_built_from_config(config_factory):
    """Test a limiter is created unless rate limiting is disabled."""
    enabled = load_config(env={}, api_key="k", user_key="u", rate_limits=RateLimitConfig(5, 1.0))
    client = HttpClient(enabled, session=FakeSession())
    assert client.rate_limiter.max_requests == 5

    disabled = config_factory()
    assert HttpClient(disabled, session=FakeSession()).rate_limiter is None


@pytest.mark.unit
def test_retry_predicate():
    """Test which failures are considered retryable."""
    assert is_retryable(RateLimitError("429"))
    assert is_retryable(TransientError("503", status_code=503))
    assert is_retryable(ExchangeConnectionError("reset"))
    assert not is_retryable(AuthenticationError())
    assert not is_retryable(PermanentError("400", status_code=400))
    assert not is_retryable(ValidationError("bad"))


@pytest.mark.unit
def test_parse_retry_after():
    assert parse_retry_after("2") == 2.0
    assert parse_retry_after(" 1.5 ") == 1.5
    assert parse_retry_after(None) is None
    assert parse_retry_after("") is None
    assert parse_retry_after("0") is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
