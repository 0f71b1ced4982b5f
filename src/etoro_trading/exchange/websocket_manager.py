"""
WebSocket Manager for the eToro streaming API.

Owns one logical session:
- Connect, then authenticate with the API/user keys
- Topic subscriptions that survive reconnects
- Ping/pong heartbeat monitoring
- Auto-reconnection with exponential backoff after an unexpected close
- Typed events for prices, private (order) events and connection changes
"""

import asyncio
import json
import time
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from .exceptions import (
    AuthenticationError,
    ExchangeError,
    InvalidTransitionError,
    MaxReconnectAttemptsError,
    WebSocketError,
    WebSocketNotConnectedError,
    ConnectionError as ExchangeConnectionError
)
from .exchange_config import ExchangeConfig
from .models import MessageKind
from .subscriptions import SubscriptionTracker
from .websocket_parser import is_auth_response, parse_envelope, parse_messages
from ..utils.events import EventEmitter
from ..utils.logger import EventType, get_logger, log_system_event

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection


logger = get_logger(__name__)


class WebSocketEvent(Enum):
    """Events emitted by WebSocketManager."""
    OPEN = "open"                        # ()
    CLOSE = "close"                      # (code, reason)
    ERROR = "error"                      # (exception)
    AUTHENTICATED = "authenticated"      # ()
    INSTRUMENT_RATE = "instrument:rate"  # (instrument_id, InstrumentRate)
    PRIVATE_EVENT = "private:event"      # (PrivateEvent)
    MESSAGE = "message"                  # (envelope dict)


class SessionState(Enum):
    """WebSocket session lifecycle."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    AUTHENTICATED = "authenticated"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class SessionStateMachine:
    """
    Session state machine.

    Valid transitions:
    - DISCONNECTED → CONNECTING (first connect)
    - CONNECTING → OPEN (socket open) / CLOSED (connect failed)
    - OPEN → AUTHENTICATED (auth accepted) / CLOSED (auth failed)
    - AUTHENTICATED → RECONNECTING (unexpected close) / CLOSED (disconnect)
    - RECONNECTING → CONNECTING (next attempt) / CLOSED (gave up, disconnect)
    - CLOSED → CONNECTING (connect again) / RECONNECTING (attempt failed)
    """

    VALID_TRANSITIONS = {
        SessionState.DISCONNECTED: [SessionState.CONNECTING],
        SessionState.CONNECTING: [SessionState.OPEN, SessionState.CLOSED],
        SessionState.OPEN: [
            SessionState.AUTHENTICATED,
            SessionState.CLOSED,
            SessionState.RECONNECTING
        ],
        SessionState.AUTHENTICATED: [SessionState.CLOSED, SessionState.RECONNECTING],
        SessionState.RECONNECTING: [SessionState.CONNECTING, SessionState.CLOSED],
        SessionState.CLOSED: [SessionState.CONNECTING, SessionState.RECONNECTING],
    }

    @classmethod
    def can_transition(cls, from_state: SessionState, to_state: SessionState) -> bool:
        return to_state in cls.VALID_TRANSITIONS.get(from_state, [])

    @classmethod
    def validate_transition(cls, from_state: SessionState, to_state: SessionState):
        """
        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                f"Invalid session state transition: {from_state.value} → {to_state.value}"
            )


class WebSocketManager(EventEmitter[WebSocketEvent]):
    """
    Manages the authenticated WebSocket session.

    Usage:
        ws = WebSocketManager(config)
        ws.on(WebSocketEvent.INSTRUMENT_RATE, on_rate)
        await ws.connect()
        ws.subscribe(["instrument:1001"], snapshot=True)
        ...
        await ws.disconnect()
    """

    def __init__(self, config: ExchangeConfig):
        """
        Initialize WebSocket manager.

        Args:
            config: Client configuration (keys and config.websocket settings)
        """
        super().__init__()
        self.config = config
        self.ws_config = config.websocket

        self._ws: Optional["ClientConnection"] = None
        self._state = SessionState.DISCONNECTED
        self._authenticated = False
        self._intentional_close = False
        self._subscriptions = SubscriptionTracker()

        self._reconnect_attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._auth_future: Optional[asyncio.Future] = None
        self._send_tasks: Set[asyncio.Future] = set()
        self._last_pong_at: Optional[float] = None

        # Statistics
        self._stats = {
            'messages_received': 0,
            'reconnections': 0,
            'last_message_time': None,
            'connected_at': None
        }

        logger.info("WebSocket manager initialized", url=self.ws_config.url)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        return self._ws is not None and self._ws.state is State.OPEN

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def subscriptions(self) -> List[str]:
        """Topics currently intended to be subscribed."""
        return self._subscriptions.get_all()

    @property
    def last_pong_at(self) -> Optional[float]:
        """Wall-clock time of the last heartbeat pong, None before the first."""
        return self._last_pong_at

    @property
    def stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return self._stats.copy()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the socket and authenticate.

        Raises:
            ConnectionError: If the socket cannot be opened
            AuthenticationError: If the server rejects the keys or does not
                answer within auth_timeout
        """
        if self.is_connected:
            logger.warning("WebSocket already connected")
            return

        self._intentional_close = False
        self._cancel_reconnect()
        await self._establish()

    async def disconnect(self) -> None:
        """Close the session on purpose. No reconnect follows."""
        self._intentional_close = True
        self._stop_heartbeat()
        self._cancel_reconnect()

        ws, self._ws = self._ws, None
        reader = self._reader_task
        self._reader_task = None

        if ws is not None:
            try:
                await ws.close(1000, "Client disconnect")
            except (ConnectionClosed, WebSocketException, OSError) as e:
                logger.debug("Error closing WebSocket", error=str(e))

            if reader is not None and reader is not asyncio.current_task():
                await asyncio.gather(reader, return_exceptions=True)

        self._authenticated = False
        self._subscriptions.clear()

        if self._state not in (SessionState.DISCONNECTED, SessionState.CLOSED):
            self._set_state(SessionState.CLOSED)

        log_system_event(logger, EventType.WEBSOCKET_DISCONNECTED, "WebSocket disconnected")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, topics: Iterable[str], snapshot: bool = False) -> None:
        """
        Subscribe to topics (e.g. "instrument:1001", "private").

        Raises:
            WebSocketNotConnectedError: If no socket is open
        """
        topics = list(topics)
        self._ensure_connected()
        self._subscriptions.add(topics)

        logger.debug("Subscribing", topics=topics, snapshot=snapshot)
        self._send_nowait({
            'id': str(uuid.uuid4()),
            'operation': 'Subscribe',
            'data': {'topics': topics, 'snapshot': snapshot}
        })

    def unsubscribe(self, topics: Iterable[str]) -> None:
        """
        Unsubscribe from topics.

        Raises:
            WebSocketNotConnectedError: If no socket is open
        """
        topics = list(topics)
        self._ensure_connected()
        self._subscriptions.remove(topics)

        logger.debug("Unsubscribing", topics=topics)
        self._send_nowait({
            'id': str(uuid.uuid4()),
            'operation': 'Unsubscribe',
            'data': {'topics': topics}
        })

    # ------------------------------------------------------------------
    # Connection internals
    # ------------------------------------------------------------------

    async def _establish(self) -> None:
        """Connect, authenticate and start the heartbeat."""
        self._authenticated = False
        self._set_state(SessionState.CONNECTING)

        logger.info("Connecting to WebSocket", url=self.ws_config.url)

        try:
            ws = await websockets.connect(
                self.ws_config.url,
                ping_interval=None,
                open_timeout=self.config.timeout
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._set_state(SessionState.CLOSED)
            error = ExchangeConnectionError(f"WebSocket connection failed: {e}")
            logger.error("WebSocket connection failed", url=self.ws_config.url, error=str(e))
            self.emit(WebSocketEvent.ERROR, error)
            raise error from e

        if self._intentional_close:
            # disconnect() was called while the handshake was in flight
            await ws.close(1000, "Client disconnect")
            raise WebSocketError("WebSocket disconnected while connecting")

        self._ws = ws
        self._stats['connected_at'] = time.time()
        self._set_state(SessionState.OPEN)

        log_system_event(
            logger,
            EventType.WEBSOCKET_CONNECTED,
            "WebSocket connected",
            url=self.ws_config.url
        )
        self.emit(WebSocketEvent.OPEN)

        self._reader_task = asyncio.create_task(self._read_loop(ws))

        try:
            await self._authenticate(ws)
        except ExchangeError as e:
            logger.error("WebSocket authentication failed", error=str(e))
            if self._ws is ws:
                self._ws = None
            self._set_state(SessionState.CLOSED)
            await ws.close(1000, "Authentication failed")
            raise

        self._set_state(SessionState.AUTHENTICATED)
        self._reconnect_attempts = 0
        self._start_heartbeat(ws)

        logger.info("WebSocket authenticated")

    async def _authenticate(self, ws: "ClientConnection") -> None:
        """
        Send the Authenticate frame and wait for the response.

        Raises:
            AuthenticationError: On timeout or an error response
        """
        self._auth_future = asyncio.get_running_loop().create_future()

        try:
            await ws.send(json.dumps({
                'id': str(uuid.uuid4()),
                'operation': 'Authenticate',
                'data': {
                    'userKey': self.config.user_key,
                    'apiKey': self.config.api_key
                }
            }))

            await asyncio.wait_for(self._auth_future, timeout=self.ws_config.auth_timeout)
        except asyncio.TimeoutError:
            raise AuthenticationError("WebSocket authentication timed out")
        except ConnectionClosed as e:
            raise WebSocketError(f"WebSocket closed during authentication: {e}")
        finally:
            self._auth_future = None

    async def _read_loop(self, ws: "ClientConnection") -> None:
        """Deliver inbound frames in arrival order until the socket closes."""
        try:
            async for message in ws:
                self._handle_message(message)
        except (ConnectionClosed, WebSocketException, OSError) as e:
            logger.debug("WebSocket read loop ended", error=str(e))

        self._handle_close(ws, ws.close_code or 1006, ws.close_reason or "")

    def _handle_close(self, ws: "ClientConnection", code: int, reason: str) -> None:
        if self._auth_future is not None and not self._auth_future.done():
            self._auth_future.set_exception(
                WebSocketError(f"WebSocket closed during authentication ({code})")
            )

        was_current = ws is self._ws
        was_authenticated = self._state is SessionState.AUTHENTICATED

        if was_current:
            self._ws = None
            self._authenticated = False
            self._stop_heartbeat()

        logger.info("WebSocket closed", code=code, reason=reason)
        self.emit(WebSocketEvent.CLOSE, code, reason)

        if was_current and was_authenticated and not self._intentional_close:
            self._set_state(SessionState.RECONNECTING)
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Reconnect with exponential backoff, then replay subscriptions."""
        max_attempts = self.ws_config.reconnect_attempts

        while not self._intentional_close:
            if self._reconnect_attempts >= max_attempts:
                logger.error("Max reconnect attempts reached", max_attempts=max_attempts)
                self._set_state(SessionState.CLOSED)
                self.emit(
                    WebSocketEvent.ERROR,
                    MaxReconnectAttemptsError("Max reconnect attempts reached")
                )
                return

            delay = self.ws_config.reconnect_delay * 2 ** self._reconnect_attempts
            self._reconnect_attempts += 1
            self._stats['reconnections'] += 1

            log_system_event(
                logger,
                EventType.WEBSOCKET_RECONNECTING,
                "Reconnecting WebSocket",
                attempt=self._reconnect_attempts,
                max_attempts=max_attempts,
                delay_seconds=delay
            )

            await asyncio.sleep(delay)

            try:
                await self._establish()
            except ExchangeError as e:
                logger.error(
                    "Reconnection failed",
                    attempt=self._reconnect_attempts,
                    error=str(e)
                )
                if not self._intentional_close:
                    self._set_state(SessionState.RECONNECTING)
                continue

            topics = self._subscriptions.get_all()
            if topics:
                logger.info("Re-subscribing after reconnect", topics=len(topics))
                self.subscribe(topics)
            return

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self, ws: "ClientConnection") -> None:
        if self.ws_config.heartbeat_interval <= 0:
            return
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(ws))

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self, ws: "ClientConnection") -> None:
        """Ping periodically; abort the transport when no pong comes back."""
        while True:
            await asyncio.sleep(self.ws_config.heartbeat_interval)

            if ws is not self._ws or ws.state is not State.OPEN:
                return

            try:
                pong_waiter = await ws.ping()
                await asyncio.wait_for(pong_waiter, timeout=self.ws_config.heartbeat_timeout)
                self._last_pong_at = time.time()
                logger.debug("Ping/pong successful")
            except asyncio.TimeoutError:
                logger.warning("Heartbeat pong timeout, connection appears dead")
                ws.transport.abort()
                return
            except ConnectionClosed:
                return

    # ------------------------------------------------------------------
    # Inbound / outbound frames
    # ------------------------------------------------------------------

    def _handle_message(self, message: Any) -> None:
        """
        Handle one inbound frame.

        Auth responses settle the pending authentication; data envelopes are
        emitted verbatim and fanned out as typed events.
        """
        self._stats['messages_received'] += 1
        self._stats['last_message_time'] = time.time()

        if isinstance(message, bytes):
            message = message.decode('utf-8', errors='replace')

        try:
            frame = parse_envelope(message)
        except ValueError as e:
            logger.error("Failed to decode WebSocket message", error=str(e))
            return

        if not isinstance(frame, dict):
            logger.warning("Ignoring non-object WebSocket frame")
            return

        auth = is_auth_response(frame)
        if auth is not None:
            self._handle_auth_response(auth)
            return

        messages = frame.get('messages')
        if not isinstance(messages, list):
            return

        self.emit(WebSocketEvent.MESSAGE, frame)

        for parsed in parse_messages(frame):
            if parsed.kind is MessageKind.INSTRUMENT_RATE:
                self.emit(WebSocketEvent.INSTRUMENT_RATE, parsed.instrument_id, parsed.rate)
            elif parsed.kind is MessageKind.PRIVATE_EVENT:
                self.emit(WebSocketEvent.PRIVATE_EVENT, parsed.event)

    def _handle_auth_response(self, auth: Dict[str, Any]) -> None:
        future = self._auth_future

        if not auth['success']:
            error = AuthenticationError(f"WS auth failed: {auth['error_code']}")
            self.emit(WebSocketEvent.ERROR, error)
            if future is not None and not future.done():
                future.set_exception(error)
            return

        self._authenticated = True
        if future is not None and not future.done():
            future.set_result(None)
        self.emit(WebSocketEvent.AUTHENTICATED)

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise WebSocketNotConnectedError()

    def _send_nowait(self, payload: Dict[str, Any]) -> None:
        """Send a frame without waiting; failures are logged."""
        task = asyncio.ensure_future(self._ws.send(json.dumps(payload)))
        self._send_tasks.add(task)

        def _done(fut: asyncio.Future):
            self._send_tasks.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.error(
                    "Failed to send WebSocket frame",
                    operation=payload.get('operation'),
                    error=str(fut.exception())
                )

        task.add_done_callback(_done)

    def _set_state(self, new_state: SessionState) -> None:
        if new_state is self._state:
            return
        SessionStateMachine.validate_transition(self._state, new_state)
        logger.debug("Session state change", from_state=self._state.value, to_state=new_state.value)
        self._state = new_state
