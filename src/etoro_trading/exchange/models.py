"""
Data models for eToro WebSocket and REST payloads.

Wire payloads use PascalCase (WebSocket) or camelCase (REST) keys; these
models expose them as typed, snake_case attributes. Prices and amounts are
kept as Decimal for precision. The untouched payload is kept in `raw`.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class OrderStatusId(IntEnum):
    """Order status codes reported by eToro."""
    PENDING = 1
    FILLING = 2
    EXECUTED = 3
    FAILED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        """Display name as eToro spells it (e.g. "Cancelled")."""
        return self.name.title()

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatusId.EXECUTED, OrderStatusId.FAILED, OrderStatusId.CANCELLED)

    @classmethod
    def from_code(cls, code: Any) -> Optional["OrderStatusId"]:
        """Map a raw status code, returning None for codes we do not know."""
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return None


class MessageKind(Enum):
    """Classification of one entry of an inbound envelope."""
    INSTRUMENT_RATE = "instrument:rate"
    PRIVATE_EVENT = "private:event"
    UNKNOWN = "unknown"


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class InstrumentRate:
    """Live price update for one instrument."""
    ask: Decimal
    bid: Decimal
    last_execution: Decimal
    date: str
    price_rate_id: int
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.ask = _decimal(self.ask)
        self.bid = _decimal(self.bid)
        self.last_execution = _decimal(self.last_execution)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "InstrumentRate":
        return cls(
            ask=payload["Ask"],
            bid=payload["Bid"],
            last_execution=payload["LastExecution"],
            date=payload.get("Date", ""),
            price_rate_id=int(payload.get("PriceRateID", 0)),
            raw=payload
        )


@dataclass
class OrderPositionInfo:
    """Position opened by an order, as returned by the order-info endpoint."""
    position_id: int
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class OrderInfo:
    """REST view of an order (order-for-open info)."""
    order_id: int
    status_id: int
    order_type: int
    instrument_id: int
    amount: Optional[Decimal]
    units: Optional[Decimal]
    request_occurred: str
    cid: int = 0
    token: Optional[str] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    positions: List[OrderPositionInfo] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.amount = _decimal(self.amount)
        self.units = _decimal(self.units)

    @property
    def status(self) -> Optional[OrderStatusId]:
        return OrderStatusId.from_code(self.status_id)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "OrderInfo":
        return cls(
            order_id=int(payload["orderID"]),
            status_id=int(payload["statusID"]),
            order_type=int(payload.get("orderType", 0)),
            instrument_id=int(payload.get("instrumentID", 0)),
            amount=payload.get("amount"),
            units=payload.get("units"),
            request_occurred=payload.get("requestOccurred", ""),
            cid=int(payload.get("CID") or 0),
            token=payload.get("token"),
            error_code=payload.get("errorCode"),
            error_message=payload.get("errorMessage"),
            positions=[
                OrderPositionInfo(position_id=int(p["positionID"]), raw=p)
                for p in payload.get("positions") or []
            ],
            raw=payload
        )


@dataclass
class PrivateEvent:
    """Order/portfolio event delivered on the `private` topic."""
    order_id: int
    order_type: int
    status_id: int
    instrument_id: int
    cid: int
    requested_units: Optional[Decimal]
    executed_units: Optional[Decimal]
    net_profit: Optional[Decimal]
    close_reason: str
    open_date_time: str
    request_occurred: str

    # Optional fields
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    position_id: Optional[int] = None
    rate: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    is_buy: Optional[bool] = None
    leverage: Optional[int] = None

    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.requested_units = _decimal(self.requested_units)
        self.executed_units = _decimal(self.executed_units)
        self.net_profit = _decimal(self.net_profit)
        self.rate = _decimal(self.rate)
        self.amount = _decimal(self.amount)

    @property
    def status(self) -> Optional[OrderStatusId]:
        return OrderStatusId.from_code(self.status_id)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PrivateEvent":
        return cls(
            order_id=int(payload["OrderID"]),
            order_type=int(payload.get("OrderType", 0)),
            status_id=int(payload["StatusID"]),
            instrument_id=int(payload.get("InstrumentID", 0)),
            cid=int(payload.get("CID", 0)),
            requested_units=payload.get("RequestedUnits"),
            executed_units=payload.get("ExecutedUnits"),
            net_profit=payload.get("NetProfit"),
            close_reason=payload.get("CloseReason") or "",
            open_date_time=payload.get("OpenDateTime", ""),
            request_occurred=payload.get("RequestOccurred", ""),
            error_code=payload.get("ErrorCode"),
            error_message=payload.get("ErrorMessage"),
            position_id=payload.get("PositionID"),
            rate=payload.get("Rate"),
            amount=payload.get("Amount"),
            is_buy=payload.get("IsBuy"),
            leverage=payload.get("Leverage"),
            raw=payload
        )

    @classmethod
    def from_order_info(cls, info: OrderInfo) -> "PrivateEvent":
        """Build the equivalent event from a REST order lookup."""
        return cls(
            order_id=info.order_id,
            order_type=info.order_type,
            status_id=info.status_id,
            instrument_id=info.instrument_id,
            cid=info.cid,
            requested_units=info.units,
            executed_units=info.units,
            net_profit=Decimal("0"),
            close_reason="",
            open_date_time=info.request_occurred,
            request_occurred=info.request_occurred,
            error_code=info.error_code,
            error_message=info.error_message,
            position_id=info.positions[0].position_id if info.positions else None,
            amount=info.amount,
            raw=info.raw
        )


@dataclass
class ParsedMessage:
    """One classified entry of an inbound envelope."""
    kind: MessageKind
    instrument_id: Optional[int] = None
    rate: Optional[InstrumentRate] = None
    event: Optional[PrivateEvent] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)
