"""
Order Management System (OMS) module.

Provides order completion tracking over WebSocket events and REST polling.
"""

from .order_tracker import OrderTracker, PendingOrderWait, WaitState

__all__ = [
    "OrderTracker",
    "PendingOrderWait",
    "WaitState",
]
