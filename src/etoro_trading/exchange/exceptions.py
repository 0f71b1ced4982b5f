"""
Exchange-related exception classes.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class RequestContext:
    """Request details attached to API failures for traceability."""
    method: str
    path: str
    duration: float  # seconds


class ExchangeError(Exception):
    """Base exception for all exchange-related errors."""
    pass


class ExchangeAPIError(ExchangeError):
    """Exception raised when API call fails."""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        error_code: str = None,
        response_body: Any = None,
        request_id: Optional[str] = None,
        request_context: Optional[RequestContext] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.response_body = response_body
        self.request_id = request_id
        self.request_context = request_context
        super().__init__(self.message)


class TransientError(ExchangeAPIError):
    """Exception for temporary errors that can be retried (5xx)."""
    pass


class PermanentError(ExchangeAPIError):
    """Exception for permanent errors that should not be retried (4xx)."""
    pass


class AuthenticationError(ExchangeAPIError):
    """Exception raised when REST or WebSocket authentication fails."""

    def __init__(
        self,
        message: str = "Authentication failed",
        status_code: int = None,
        request_id: Optional[str] = None
    ):
        super().__init__(message, status_code=status_code, request_id=request_id)


class RateLimitError(ExchangeAPIError):
    """Exception raised when API rate limit is exceeded."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        request_id: Optional[str] = None
    ):
        super().__init__(message, status_code=429, request_id=request_id)
        self.retry_after = retry_after


class ConnectionError(ExchangeError):
    """Exception raised when connection to exchange fails."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        self.message = message
        self.request_id = request_id
        super().__init__(message)


class ValidationError(ExchangeError):
    """Exception raised for invalid input or configuration."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class WebSocketError(ExchangeError):
    """Exception raised for WebSocket-related errors."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class WebSocketNotConnectedError(WebSocketError):
    """Exception raised when an operation needs an open WebSocket."""

    def __init__(self, message: str = "WebSocket not connected"):
        super().__init__(message)


class MaxReconnectAttemptsError(WebSocketError):
    """Exception raised when the session gives up reconnecting."""
    pass


class RateLimiterDisposedError(ExchangeError):
    """Exception raised for requests still queued when the limiter is disposed."""
    pass


class OrderFailedError(ExchangeError):
    """Exception raised when an order ends Failed or Cancelled."""

    def __init__(
        self,
        message: str,
        order_id: int,
        status: Any = None,
        error_code: Optional[int] = None,
        reason: Optional[str] = None
    ):
        self.message = message
        self.order_id = order_id
        self.status = status
        self.error_code = error_code
        self.reason = reason
        super().__init__(message)


class OrderTimeoutError(ExchangeError):
    """Exception raised when an order does not reach a terminal state in time."""

    def __init__(self, message: str, order_id: int, timeout: float):
        self.message = message
        self.order_id = order_id
        self.timeout = timeout
        super().__init__(message)


class InvalidTransitionError(ExchangeError):
    """Exception raised for invalid state machine transitions."""
    pass
