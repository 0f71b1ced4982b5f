"""
REST lookups for order status on the eToro trading-info API.
"""

from .exceptions import ExchangeAPIError
from .exchange_config import API_PREFIX, TradingMode
from .http_client import HttpClient
from .models import OrderInfo


class TradingInfoClient:
    """Read-only trading info endpoints, scoped to the demo or real account."""

    def __init__(self, http: HttpClient, mode: TradingMode = TradingMode.DEMO):
        self.http = http
        self.mode = mode
        self.info_prefix = f"{API_PREFIX}/trading/info/{mode.value}"

    async def get_order(self, order_id: int) -> OrderInfo:
        """
        Fetch the current state of an order.

        Args:
            order_id: eToro order ID

        Returns:
            OrderInfo

        Raises:
            ExchangeAPIError: If the response is empty or lacks the order fields
        """
        path = f"{self.info_prefix}/orders/{order_id}"
        payload = await self.http.get(path)

        if not isinstance(payload, dict):
            raise ExchangeAPIError(
                f"Empty order info response for order {order_id}",
                response_body=payload
            )

        try:
            return OrderInfo.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise ExchangeAPIError(
                f"Malformed order info response for order {order_id}: {e!r}",
                response_body=payload
            ) from e
