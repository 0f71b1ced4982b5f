"""
Exchange module for eToro API integration.

REST transport, WebSocket session, payload models and configuration.
"""

from .exceptions import (
    ExchangeError,
    ExchangeAPIError,
    TransientError,
    PermanentError,
    AuthenticationError,
    RateLimitError,
    ConnectionError,
    ValidationError,
    WebSocketError,
    WebSocketNotConnectedError,
    MaxReconnectAttemptsError,
    RateLimiterDisposedError,
    OrderFailedError,
    OrderTimeoutError,
    InvalidTransitionError,
    RequestContext
)
from .models import (
    OrderStatusId,
    MessageKind,
    InstrumentRate,
    OrderInfo,
    OrderPositionInfo,
    PrivateEvent,
    ParsedMessage
)
from .exchange_config import (
    TradingMode,
    ExchangeConfig,
    RateLimitConfig,
    WebSocketConfig,
    load_config
)
from .rate_limiter import RateLimiter
from .http_client import HttpClient
from .trading_info import TradingInfoClient
from .subscriptions import SubscriptionTracker
from .websocket_manager import WebSocketManager, WebSocketEvent, SessionState
from .websocket_parser import parse_envelope, parse_messages, is_auth_response

__all__ = [
    # Exceptions
    "ExchangeError",
    "ExchangeAPIError",
    "TransientError",
    "PermanentError",
    "AuthenticationError",
    "RateLimitError",
    "ConnectionError",
    "ValidationError",
    "WebSocketError",
    "WebSocketNotConnectedError",
    "MaxReconnectAttemptsError",
    "RateLimiterDisposedError",
    "OrderFailedError",
    "OrderTimeoutError",
    "InvalidTransitionError",
    "RequestContext",

    # Data models
    "OrderStatusId",
    "MessageKind",
    "InstrumentRate",
    "OrderInfo",
    "OrderPositionInfo",
    "PrivateEvent",
    "ParsedMessage",

    # Config
    "TradingMode",
    "ExchangeConfig",
    "RateLimitConfig",
    "WebSocketConfig",
    "load_config",

    # REST
    "RateLimiter",
    "HttpClient",
    "TradingInfoClient",

    # WebSocket
    "SubscriptionTracker",
    "WebSocketManager",
    "WebSocketEvent",
    "SessionState",
    "parse_envelope",
    "parse_messages",
    "is_auth_response"
]
