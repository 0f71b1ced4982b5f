"""
eToro Trading Client

Async client for the eToro public trading API: rate-limited REST calls with
retries, an authenticated WebSocket session for live prices and order events,
and order completion tracking.
"""

from .exchange.etoro_gateway import EToroGateway, GatewayEvent
from .exchange.exchange_config import load_config

__version__ = "0.1.0"
__author__ = "eToro Trading Client Team"

__all__ = ["EToroGateway", "GatewayEvent", "load_config"]
