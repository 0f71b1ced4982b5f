"""
Client configuration for the eToro public API.

This module contains:
- API endpoints and path prefixes
- Rate limit, retry and WebSocket session settings
- Loading configuration from environment variables and explicit overrides

Configuration values are immutable. Every component receives its settings
through its constructor, so there is no process-wide config singleton.
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ValidationError


class TradingMode(Enum):
    """Trading account the client operates on."""
    DEMO = "demo"
    REAL = "real"


# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_BASE_URL = "https://public-api.etoro.com"
DEFAULT_WS_URL = "wss://ws.etoro.com/ws"
API_PREFIX = "/api/v1"

DEFAULT_TIMEOUT = 30.0               # seconds per HTTP request
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0            # seconds, base of exponential backoff

DEFAULT_MAX_REQUESTS = 20            # requests per window
DEFAULT_RATE_WINDOW = 10.0           # seconds

DEFAULT_WS_RECONNECT_ATTEMPTS = 10
DEFAULT_WS_RECONNECT_DELAY = 1.0     # seconds, doubled on every attempt
DEFAULT_WS_AUTH_TIMEOUT = 10.0       # seconds
DEFAULT_WS_HEARTBEAT_INTERVAL = 30.0  # seconds, 0 disables the heartbeat
DEFAULT_WS_HEARTBEAT_TIMEOUT = 10.0  # seconds to wait for a pong

# Environment variable names
ENV_API_KEY = "ETORO_API_KEY"
ENV_USER_KEY = "ETORO_USER_KEY"
ENV_MODE = "ETORO_MODE"
ENV_BASE_URL = "ETORO_BASE_URL"
ENV_WS_URL = "ETORO_WS_URL"


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window limits for outgoing REST requests."""
    max_requests: int = DEFAULT_MAX_REQUESTS
    window: float = DEFAULT_RATE_WINDOW


@dataclass(frozen=True)
class WebSocketConfig:
    """WebSocket session settings."""
    url: str = DEFAULT_WS_URL
    reconnect_attempts: int = DEFAULT_WS_RECONNECT_ATTEMPTS
    reconnect_delay: float = DEFAULT_WS_RECONNECT_DELAY
    auth_timeout: float = DEFAULT_WS_AUTH_TIMEOUT
    heartbeat_interval: float = DEFAULT_WS_HEARTBEAT_INTERVAL
    heartbeat_timeout: float = DEFAULT_WS_HEARTBEAT_TIMEOUT


@dataclass(frozen=True)
class ExchangeConfig:
    """
    Configuration for one client instance.

    `rate_limits=None` disables proactive rate limiting.
    """
    api_key: str
    user_key: str
    mode: TradingMode = TradingMode.DEMO

    # Endpoints
    base_url: str = DEFAULT_BASE_URL

    # HTTP behaviour
    timeout: float = DEFAULT_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    rate_limits: Optional[RateLimitConfig] = field(default_factory=RateLimitConfig)

    # WebSocket
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)

    @property
    def ws_url(self) -> str:
        return self.websocket.url

    @property
    def is_demo(self) -> bool:
        return self.mode is TradingMode.DEMO


def load_config(
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = False,
    **overrides: Any
) -> ExchangeConfig:
    """
    Build a validated configuration from overrides and environment variables.

    Explicit overrides win over the environment. The result is a frozen
    value; reading the environment has no other side effect.

    Args:
        env: Mapping to read variables from (defaults to os.environ)
        dotenv: Load a .env file into os.environ first
        **overrides: ExchangeConfig fields (plus `ws_url`)

    Returns:
        ExchangeConfig instance

    Raises:
        ValidationError: If a required value is missing or out of range
    """
    if dotenv:
        load_dotenv()
    if env is None:
        env = os.environ

    ws_url = overrides.pop("ws_url", None) or env.get(ENV_WS_URL) or DEFAULT_WS_URL
    websocket = overrides.pop("websocket", None) or WebSocketConfig()
    websocket = replace(websocket, url=ws_url)

    raw: Dict[str, Any] = {
        "api_key": overrides.pop("api_key", None) or env.get(ENV_API_KEY, ""),
        "user_key": overrides.pop("user_key", None) or env.get(ENV_USER_KEY, ""),
        "mode": overrides.pop("mode", None) or env.get(ENV_MODE) or TradingMode.DEMO,
        "base_url": overrides.pop("base_url", None) or env.get(ENV_BASE_URL) or DEFAULT_BASE_URL,
        "websocket": websocket,
    }
    raw.update(overrides)

    _validate(raw)

    raw["mode"] = TradingMode(raw["mode"]) if not isinstance(raw["mode"], TradingMode) else raw["mode"]

    try:
        return ExchangeConfig(**raw)
    except TypeError as e:
        raise ValidationError(f"Invalid configuration: {e}")


def _validate(raw: Dict[str, Any]) -> None:
    """Collect every problem so the error lists them all at once."""
    issues = []

    if not raw["api_key"]:
        issues.append(("api_key", "API key is required"))
    if not raw["user_key"]:
        issues.append(("user_key", "User key is required"))

    mode = raw["mode"]
    if not isinstance(mode, TradingMode) and mode not in {m.value for m in TradingMode}:
        issues.append(("mode", f"must be 'demo' or 'real', got {mode!r}"))

    base_url = raw["base_url"]
    if not str(base_url).startswith(("http://", "https://")):
        issues.append(("base_url", f"invalid URL {base_url!r}"))

    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    if timeout <= 0:
        issues.append(("timeout", "must be positive"))

    retry_attempts = raw.get("retry_attempts", DEFAULT_RETRY_ATTEMPTS)
    if not isinstance(retry_attempts, int) or retry_attempts < 0:
        issues.append(("retry_attempts", "must be a non-negative integer"))

    retry_delay = raw.get("retry_delay", DEFAULT_RETRY_DELAY)
    if retry_delay <= 0:
        issues.append(("retry_delay", "must be positive"))

    if issues:
        details = "; ".join(f"{name}: {message}" for name, message in issues)
        raise ValidationError(f"Invalid configuration: {details}", field=issues[0][0])
