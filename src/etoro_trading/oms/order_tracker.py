"""
Order Management System - Order Tracker.

Waits for submitted orders to reach a terminal state. The WebSocket private
event stream is the primary signal; a REST polling loop starts after a short
delay as a fallback in case the event never arrives. Whichever path delivers
a terminal status first settles the wait, and the other is cancelled.
"""

import asyncio
import time
from enum import Enum
from typing import Optional

from ..exchange.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    OrderFailedError,
    OrderTimeoutError,
    WebSocketNotConnectedError,
    ConnectionError as ExchangeConnectionError
)
from ..exchange.models import OrderInfo, OrderStatusId, PrivateEvent
from ..exchange.trading_info import TradingInfoClient
from ..exchange.websocket_manager import WebSocketEvent, WebSocketManager
from ..utils.logger import EventType, get_logger, log_order_event

logger = get_logger(__name__)

PRIVATE_TOPIC = "private"

DEFAULT_WAIT_TIMEOUT = 30.0   # seconds
POLL_FALLBACK_DELAY = 3.0     # seconds before REST polling starts
POLL_INTERVAL = 0.5           # seconds between REST polls


class WaitState(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class PendingOrderWait:
    """
    Single-assignment result cell for one wait_for_order() call.

    The first resolve()/reject() wins; later calls return False and change
    nothing.
    """

    def __init__(self, order_id: int, timeout: float, poll_delay: float):
        loop = asyncio.get_running_loop()
        self.order_id = order_id
        self.created_at = time.monotonic()
        self.deadline = self.created_at + timeout
        self.poll_deadline = self.created_at + poll_delay
        self.state = WaitState.PENDING
        self.future: asyncio.Future = loop.create_future()

    @property
    def settled(self) -> bool:
        return self.state is not WaitState.PENDING

    def resolve(self, event: PrivateEvent) -> bool:
        if self.settled:
            return False
        self.state = WaitState.RESOLVED
        self.future.set_result(event)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.settled:
            return False
        self.state = WaitState.REJECTED
        self.future.set_exception(error)
        return True


class OrderTracker:
    """
    Order Tracker for confirming order completion.

    Responsibilities:
    - Listen for private events of a given order on the WebSocket
    - Fall back to REST polling when the event is slow to arrive
    - Report Executed, Failed/Cancelled or timeout exactly once
    """

    def __init__(
        self,
        ws_manager: WebSocketManager,
        trading_info: TradingInfoClient,
        poll_fallback_delay: float = POLL_FALLBACK_DELAY,
        poll_interval: float = POLL_INTERVAL
    ):
        """
        Initialize Order Tracker.

        Args:
            ws_manager: Authenticated WebSocket session
            trading_info: REST client used for the polling fallback
            poll_fallback_delay: Seconds to wait before REST polling starts
            poll_interval: Seconds between REST polls
        """
        self.ws_manager = ws_manager
        self.trading_info = trading_info
        self.poll_fallback_delay = poll_fallback_delay
        self.poll_interval = poll_interval

        logger.info("OrderTracker initialized")

    async def wait_for_order(
        self,
        order_id: int,
        timeout: float = DEFAULT_WAIT_TIMEOUT
    ) -> PrivateEvent:
        """
        Wait until an order is executed.

        Args:
            order_id: eToro order ID
            timeout: Seconds before giving up

        Returns:
            The terminal PrivateEvent (built from the REST response when the
            polling fallback wins)

        Raises:
            WebSocketNotConnectedError: If the WebSocket session is down
            OrderFailedError: If the order ends Failed or Cancelled
            OrderTimeoutError: If no terminal status arrives in time
        """
        if not self.ws_manager.is_connected:
            raise WebSocketNotConnectedError(
                "WebSocket not connected, call connect() before wait_for_order()"
            )

        if PRIVATE_TOPIC not in self.ws_manager.subscriptions:
            self.ws_manager.subscribe([PRIVATE_TOPIC])

        poll_delay = min(self.poll_fallback_delay, timeout / 2)
        wait = PendingOrderWait(order_id, timeout, poll_delay)
        loop = asyncio.get_running_loop()

        def on_private_event(event: PrivateEvent):
            if event.order_id != order_id or wait.settled:
                return
            self._settle_from_status(wait, event)

        def on_timeout():
            wait.reject(OrderTimeoutError(
                f"Timeout waiting for order {order_id} after {timeout:g}s",
                order_id=order_id,
                timeout=timeout
            ))

        self.ws_manager.on(WebSocketEvent.PRIVATE_EVENT, on_private_event)
        timer = loop.call_later(timeout, on_timeout)
        poll_task = asyncio.create_task(
            self._poll_fallback(wait, poll_delay, timeout - poll_delay)
        )

        try:
            event = await wait.future
        except OrderFailedError as e:
            log_order_event(
                logger,
                EventType.ORDER_FAILED if e.status is not OrderStatusId.CANCELLED
                else EventType.ORDER_CANCELED,
                order_id,
                status=getattr(e.status, 'label', None),
                error_code=e.error_code,
                reason=e.reason
            )
            raise
        except OrderTimeoutError:
            log_order_event(logger, EventType.ORDER_TIMEOUT, order_id, timeout_seconds=timeout)
            raise
        finally:
            timer.cancel()
            poll_task.cancel()
            self.ws_manager.off(WebSocketEvent.PRIVATE_EVENT, on_private_event)

        log_order_event(
            logger,
            EventType.ORDER_EXECUTED,
            order_id,
            status=OrderStatusId.EXECUTED.label,
            position_id=event.position_id
        )
        return event

    async def poll_order_status(
        self,
        order_id: int,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: Optional[float] = None
    ) -> OrderInfo:
        """
        Poll the REST API until the order is executed.

        Lookup errors other than authentication failures (for example a 404
        for an order that is not visible yet) are logged and polling goes on.

        Args:
            order_id: eToro order ID
            timeout: Seconds before giving up
            poll_interval: Seconds between polls (default: tracker setting)

        Returns:
            OrderInfo of the executed order

        Raises:
            OrderFailedError: If the order ends Failed or Cancelled
            OrderTimeoutError: If the order does not execute in time
            AuthenticationError: If the API keys are rejected
        """
        if poll_interval is None:
            poll_interval = self.poll_interval

        start = time.monotonic()
        while time.monotonic() - start < timeout:
            try:
                info = await self.trading_info.get_order(order_id)
            except AuthenticationError:
                raise
            except (ExchangeAPIError, ExchangeConnectionError) as e:
                logger.debug("Order lookup failed, will retry", order_id=order_id, error=str(e))
            else:
                status = info.status

                if status is OrderStatusId.EXECUTED:
                    return info

                if status in (OrderStatusId.FAILED, OrderStatusId.CANCELLED):
                    reason = info.error_message or 'unknown reason'
                    raise OrderFailedError(
                        f"Order {order_id} was {status.label}: {reason}",
                        order_id=order_id,
                        status=status,
                        error_code=info.error_code,
                        reason=reason
                    )

                if status is None:
                    logger.warning(
                        "Unknown order status, still waiting",
                        order_id=order_id,
                        status_id=info.status_id
                    )

            await asyncio.sleep(poll_interval)

        raise OrderTimeoutError(
            f"Timeout waiting for order {order_id} execution after {timeout:g}s",
            order_id=order_id,
            timeout=timeout
        )

    def _settle_from_status(self, wait: PendingOrderWait, event: PrivateEvent) -> None:
        """Resolve or reject on a terminal status; keep waiting otherwise."""
        status = event.status

        if status is OrderStatusId.EXECUTED:
            wait.resolve(event)

        elif status in (OrderStatusId.FAILED, OrderStatusId.CANCELLED):
            reason = event.error_message or event.close_reason or 'unknown reason'
            error_code = event.error_code if event.error_code is not None else 'none'
            wait.reject(OrderFailedError(
                f"Order {wait.order_id} {status.label}: {reason} (errorCode: {error_code})",
                order_id=wait.order_id,
                status=status,
                error_code=event.error_code,
                reason=reason
            ))

        elif status is None:
            logger.warning(
                "Unknown order status, still waiting",
                order_id=wait.order_id,
                status_id=event.status_id
            )

    async def _poll_fallback(self, wait: PendingOrderWait, delay: float, budget: float) -> None:
        """REST fallback: after `delay`, poll for the remaining budget."""
        await asyncio.sleep(delay)
        if wait.settled:
            return

        try:
            info = await self.poll_order_status(wait.order_id, budget)
        except OrderFailedError as e:
            wait.reject(e)
        except Exception as e:
            # The WebSocket path or the overall timer may still settle the wait
            if not wait.settled:
                logger.debug("REST poll fallback failed", order_id=wait.order_id, error=str(e))
        else:
            wait.resolve(PrivateEvent.from_order_info(info))
