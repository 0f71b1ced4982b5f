"""
HTTP transport for the eToro REST API.

Every request goes through the same pipeline:
    rate limiter acquire() -> aiohttp call -> status mapping
wrapped in the retry engine, so transient failures (5xx, 429, network) are
retried with backoff while authentication and client errors surface at once.
"""

import asyncio
import json
import time
import uuid
from typing import Any, Dict, Mapping, Optional

import aiohttp

from .exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    PermanentError,
    RateLimitError,
    RequestContext,
    TransientError,
    ConnectionError as ExchangeConnectionError
)
from .exchange_config import ExchangeConfig
from .rate_limiter import RateLimiter
from ..utils.logger import get_logger
from ..utils.retry import retry


logger = get_logger(__name__)


def is_retryable(error: BaseException) -> bool:
    """Rate limits, server errors and network failures are worth retrying."""
    return isinstance(error, (RateLimitError, TransientError, ExchangeConnectionError))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class HttpClient:
    """
    Async HTTP client for the eToro public API.

    Sends the API/user keys and a correlation id with every request. The
    correlation id is attached to every exception raised for that request.
    """

    def __init__(
        self,
        config: ExchangeConfig,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize HTTP client.

        Args:
            config: Client configuration
            rate_limiter: Limiter to use (default: built from config.rate_limits,
                none when rate limiting is disabled)
            session: Existing aiohttp session (default: created on first request
                and owned by this client)
        """
        self.config = config
        self._timeout = aiohttp.ClientTimeout(total=config.timeout)

        self._owns_limiter = rate_limiter is None
        if rate_limiter is None and config.rate_limits is not None:
            rate_limiter = RateLimiter.from_config(config.rate_limits)
        self.rate_limiter = rate_limiter

        self._session = session
        self._owns_session = session is None

        self.stats = {
            'requests': 0,
            'retries': 0,
            'errors': 0
        }

    async def request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        request_id: Optional[str] = None
    ) -> Any:
        """
        Execute an API request with rate limiting and retries.

        Args:
            method: HTTP method
            path: Path relative to the base URL (e.g. "/api/v1/...")
            query: Query parameters; None values are dropped
            body: JSON-serializable request body
            request_id: Correlation id (default: new UUID4)

        Returns:
            Decoded JSON response, or None for empty responses

        Raises:
            AuthenticationError: 401/403
            RateLimitError: 429 after retries are exhausted
            TransientError: 5xx after retries are exhausted
            PermanentError: Any other non-2xx status
            ConnectionError: Network failure after retries are exhausted
        """
        request_id = request_id or str(uuid.uuid4())
        start_time = time.monotonic()
        self.reopen()

        async def attempt():
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()
            return await self._execute(method, path, query, body, request_id, start_time)

        def get_retry_after(error: BaseException) -> Optional[float]:
            if isinstance(error, RateLimitError) and error.retry_after:
                if self.rate_limiter is not None:
                    self.rate_limiter.penalize(error.retry_after)
                return error.retry_after
            return None

        def on_retry(attempt_number: int, wait: float, error: BaseException):
            self.stats['retries'] += 1
            logger.warning(
                "Retrying request",
                method=method,
                path=path,
                request_id=request_id,
                attempt=attempt_number,
                wait_seconds=round(wait, 3),
                error=str(error)
            )

        try:
            return await retry(
                attempt,
                attempts=self.config.retry_attempts,
                delay=self.config.retry_delay,
                should_retry=is_retryable,
                jitter=True,
                get_retry_after=get_retry_after,
                on_retry=on_retry
            )
        except Exception:
            self.stats['errors'] += 1
            raise

    async def get(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs) -> Any:
        return await self.request("GET", path, query=query, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, body=body, **kwargs)

    async def close(self) -> None:
        """
        Dispose the rate limiter and close the owned session.

        The client stays usable: the next request recreates an owned session and,
        when the limiter was built from config, a fresh limiter.
        """
        if self.rate_limiter is not None:
            self.rate_limiter.dispose()

        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None

    def reopen(self) -> None:
        """Replace a limiter disposed by close(), if this client built it."""
        limiter = self.rate_limiter
        if self._owns_limiter and limiter is not None and limiter.is_disposed:
            self.rate_limiter = RateLimiter.from_config(self.config.rate_limits)
            logger.debug("Rate limiter recreated after close")

    async def _execute(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]],
        body: Any,
        request_id: str,
        start_time: float
    ) -> Any:
        """Perform a single HTTP call and map the response."""
        url = f"{self.config.base_url.rstrip('/')}{path}"

        headers = {
            'x-request-id': request_id,
            'x-api-key': self.config.api_key,
            'x-user-key': self.config.user_key,
        }
        data = None
        if body is not None:
            headers['Content-Type'] = 'application/json'
            data = json.dumps(body)

        params = _build_query(query)

        logger.debug("HTTP request", method=method, path=path, request_id=request_id)
        self.stats['requests'] += 1

        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=self._timeout
            ) as response:
                status = response.status
                text = await response.text()
                retry_after_header = response.headers.get('Retry-After')
                reason = getattr(response, 'reason', None) or ''

        except aiohttp.ClientError as e:
            raise ExchangeConnectionError(f"Network error: {e}", request_id=request_id)
        except asyncio.TimeoutError:
            raise ExchangeConnectionError(
                f"Request timeout after {self.config.timeout}s",
                request_id=request_id
            )

        context = RequestContext(
            method=method,
            path=path,
            duration=time.monotonic() - start_time
        )

        return self._map_response(status, reason, text, retry_after_header, request_id, context)

    def _map_response(
        self,
        status: int,
        reason: str,
        text: str,
        retry_after_header: Optional[str],
        request_id: str,
        context: RequestContext
    ) -> Any:
        """
        Map an HTTP response to a result or an internal exception type.

        Returns:
            Decoded JSON body, None for 204 or empty bodies
        """
        if status == 204:
            return None

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed ({status})",
                status_code=status,
                request_id=request_id
            )

        if status == 429:
            raise RateLimitError(
                "Rate limit exceeded",
                retry_after=parse_retry_after(retry_after_header),
                request_id=request_id
            )

        if status >= 500:
            raise TransientError(
                f"API request failed: {status} {reason}".strip(),
                status_code=status,
                response_body=text,
                request_id=request_id,
                request_context=context
            )

        if not 200 <= status < 300:
            raise PermanentError(
                f"API request failed: {status} {reason}".strip(),
                status_code=status,
                response_body=text,
                request_id=request_id,
                request_context=context
            )

        if not text:
            return None

        try:
            return json.loads(text)
        except ValueError:
            raise ExchangeAPIError(
                "Invalid JSON in API response",
                status_code=status,
                response_body=text,
                request_id=request_id,
                request_context=context
            )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session


def _build_query(query: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    if not query:
        return None

    params = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        params[key] = str(value)
    return params or None
