"""
Shared fixtures for unit and integration tests.
"""

import asyncio
import json
from unittest.mock import Mock

import pytest
from websockets.protocol import State

from etoro_trading.exchange.exchange_config import WebSocketConfig, load_config


def make_config(**websocket_overrides):
    """Build a test configuration with fast WebSocket timings."""
    websocket = WebSocketConfig(**{
        'reconnect_attempts': 3,
        'reconnect_delay': 0.01,
        'auth_timeout': 0.5,
        'heartbeat_interval': 0,
        'heartbeat_timeout': 0.05,
        **websocket_overrides
    })
    return load_config(
        env={},
        api_key="test-api-key",
        user_key="test-user-key",
        ws_url="ws://localhost:8765/ws",
        websocket=websocket,
        retry_delay=0.01,
        rate_limits=None
    )


@pytest.fixture
def config():
    """Client configuration for tests."""
    return make_config()


@pytest.fixture
def eventually():
    """Poll a predicate until it holds or the timeout expires."""
    async def _eventually(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(interval)
    return _eventually


class FakeWebSocket:
    """
    In-memory stand-in for a websockets client connection.

    Frames sent by the client are decoded into `sent`; frames pushed with
    feed() are delivered to the client's reader in order.
    """

    AUTH_OK = {"operation": "Authenticate", "success": True}

    def __init__(self, auth_response=AUTH_OK):
        self.state = State.OPEN
        self.sent = []
        self.close_code = None
        self.close_reason = None
        self.auth_response = auth_response
        self.respond_to_pings = True
        self.pings = 0
        self._incoming = asyncio.Queue()
        self.transport = Mock()
        self.transport.abort.side_effect = lambda: self._terminate(1006, "")

    def feed(self, frame) -> None:
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server going away."""
        self._terminate(code, reason)

    def frames(self, operation):
        return [f for f in self.sent if f.get("operation") == operation]

    async def send(self, data) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        if frame.get("operation") == "Authenticate" and self.auth_response is not None:
            self.feed(self.auth_response)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._terminate(code, reason)

    async def ping(self):
        self.pings += 1
        pong = asyncio.get_running_loop().create_future()
        if self.respond_to_pings:
            pong.set_result(0.0)
        return pong

    def _terminate(self, code, reason) -> None:
        if self.state is State.CLOSED:
            return
        self.state = State.CLOSED
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def ws_factory():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def config_factory():
    """Factory for configurations with custom WebSocket settings."""
    return make_config
