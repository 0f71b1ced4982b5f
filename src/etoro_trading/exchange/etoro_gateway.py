"""
eToro trading gateway.

High-level entry point that wires the configuration, HTTP transport, REST
lookups, WebSocket session and order tracker together, and re-emits the
session events under application-level names.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ValidationError
from .exchange_config import ExchangeConfig, load_config
from .http_client import HttpClient
from .models import InstrumentRate, OrderInfo, PrivateEvent
from .trading_info import TradingInfoClient
from .websocket_manager import WebSocketEvent, WebSocketManager
from ..oms.order_tracker import DEFAULT_WAIT_TIMEOUT, PRIVATE_TOPIC, OrderTracker
from ..utils.events import EventEmitter
from ..utils.logger import get_logger


logger = get_logger(__name__)


class GatewayEvent(Enum):
    """Events emitted by EToroGateway."""
    PRICE = "price"                  # (instrument_id, InstrumentRate)
    ORDER_UPDATE = "order:update"    # (PrivateEvent)
    CONNECTED = "connected"          # ()
    DISCONNECTED = "disconnected"    # ()
    ERROR = "error"                  # (exception)
    WS_MESSAGE = "ws:message"        # (envelope dict)


def instrument_topic(instrument_id: int) -> str:
    return f"instrument:{instrument_id}"


class EToroGateway(EventEmitter[GatewayEvent]):
    """
    eToro client facade.

    Usage:
        async with EToroGateway(load_config(dotenv=True)) as gateway:
            gateway.on(GatewayEvent.PRICE, on_price)
            gateway.stream_prices([1001])
            event = await gateway.wait_for_order(order_id)
    """

    def __init__(
        self,
        config: Optional[ExchangeConfig] = None,
        http: Optional[HttpClient] = None,
        ws_manager: Optional[WebSocketManager] = None,
        **overrides: Any
    ):
        """
        Initialize gateway.

        Args:
            config: Client configuration (default: load_config(**overrides))
            http: HTTP client to use (default: built from config)
            ws_manager: WebSocket session to use (default: built from config)
            **overrides: Passed to load_config() when no config is given
        """
        super().__init__()
        self.config = config or load_config(**overrides)

        self.http = http or HttpClient(self.config)
        self.trading_info = TradingInfoClient(self.http, self.config.mode)
        self.ws = ws_manager or WebSocketManager(self.config)
        self.order_tracker = OrderTracker(self.ws, self.trading_info)

        self.ws.on(WebSocketEvent.INSTRUMENT_RATE, self._on_rate)
        self.ws.on(WebSocketEvent.PRIVATE_EVENT, self._on_private_event)
        self.ws.on(WebSocketEvent.ERROR, self._on_error)
        self.ws.on(WebSocketEvent.MESSAGE, self._on_message)

        logger.info(
            "eToro gateway initialized",
            mode=self.config.mode.value,
            base_url=self.config.base_url
        )

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open and authenticate the WebSocket session."""
        self.http.reopen()
        await self.ws.connect()
        self.emit(GatewayEvent.CONNECTED)

    async def disconnect(self) -> None:
        """Close the WebSocket session and the HTTP client."""
        await self.ws.disconnect()
        await self.http.close()
        self.emit(GatewayEvent.DISCONNECTED)

    @property
    def is_connected(self) -> bool:
        return self.ws.is_connected

    async def __aenter__(self) -> "EToroGateway":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def stream_prices(self, instrument_ids: Iterable[int], snapshot: bool = True) -> List[str]:
        """
        Subscribe to live prices.

        Args:
            instrument_ids: eToro instrument IDs
            snapshot: Ask the server for the current rate immediately

        Returns:
            Subscribed topics
        """
        topics = [instrument_topic(i) for i in self._validate_instrument_ids(instrument_ids)]
        self.ws.subscribe(topics, snapshot)
        return topics

    def stop_streaming_prices(self, instrument_ids: Iterable[int]) -> List[str]:
        topics = [instrument_topic(i) for i in self._validate_instrument_ids(instrument_ids)]
        self.ws.unsubscribe(topics)
        return topics

    def subscribe_to_private_events(self) -> None:
        self.ws.subscribe([PRIVATE_TOPIC])

    def unsubscribe_from_private_events(self) -> None:
        self.ws.unsubscribe([PRIVATE_TOPIC])

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int) -> OrderInfo:
        return await self.trading_info.get_order(order_id)

    async def wait_for_order(
        self,
        order_id: int,
        timeout: float = DEFAULT_WAIT_TIMEOUT
    ) -> PrivateEvent:
        """Wait for an order via private events, with REST polling fallback."""
        return await self.order_tracker.wait_for_order(order_id, timeout)

    async def wait_for_order_execution(
        self,
        order_id: int,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: Optional[float] = None
    ) -> OrderInfo:
        """Wait for an order using REST polling only (no WebSocket needed)."""
        return await self.order_tracker.poll_order_status(order_id, timeout, poll_interval)

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'websocket': self.ws.stats,
            'http': dict(self.http.stats),
        }
        if self.http.rate_limiter is not None:
            stats['rate_limiter'] = self.http.rate_limiter.get_stats()
        return stats

    # ------------------------------------------------------------------
    # Event forwarding
    # ------------------------------------------------------------------

    def _on_rate(self, instrument_id: int, rate: InstrumentRate) -> None:
        self.emit(GatewayEvent.PRICE, instrument_id, rate)

    def _on_private_event(self, event: PrivateEvent) -> None:
        self.emit(GatewayEvent.ORDER_UPDATE, event)

    def _on_error(self, error: BaseException) -> None:
        self.emit(GatewayEvent.ERROR, error)

    def _on_message(self, envelope: Dict[str, Any]) -> None:
        self.emit(GatewayEvent.WS_MESSAGE, envelope)

    @staticmethod
    def _validate_instrument_ids(instrument_ids: Iterable[int]) -> List[int]:
        ids = list(instrument_ids)
        if not ids:
            raise ValidationError("At least one instrument ID is required", field="instrument_ids")

        for instrument_id in ids:
            if isinstance(instrument_id, bool) or not isinstance(instrument_id, int):
                raise ValidationError(
                    f"Instrument ID must be an integer, got {instrument_id!r}",
                    field="instrument_ids"
                )
        return ids
