"""
Unit tests for WebSocket envelope parsing.
"""

import json
from decimal import Decimal

import pytest

from etoro_trading.exchange.models import MessageKind, OrderStatusId
from etoro_trading.exchange.websocket_parser import (
    is_auth_response,
    parse_envelope,
    parse_messages
)


RATE = {
    "Ask": 43250.5,
    "Bid": 43240.25,
    "LastExecution": 43245.0,
    "Date": "2024-01-15T10:30:00.000Z",
    "PriceRateID": 123456
}

PRIVATE = {
    "OrderID": 328112233,
    "OrderType": 17,
    "StatusID": 3,
    "InstrumentID": 100000,
    "CID": 9876,
    "RequestedUnits": 0.002,
    "ExecutedUnits": 0.002,
    "NetProfit": 0,
    "CloseReason": "",
    "OpenDateTime": "2024-01-15T10:30:01Z",
    "RequestOccurred": "2024-01-15T10:30:00Z",
    "PositionID": 2150001122,
    "Rate": 43250.5,
    "IsBuy": True,
    "Leverage": 1
}


def entry(topic, content, **extra):
    return {
        "topic": topic,
        "content": content if isinstance(content, str) else json.dumps(content),
        "id": extra.get("id", "1"),
        "type": extra.get("type", "Trading.Instrument.Rate")
    }


@pytest.mark.unit
def test_parse_instrument_rate():
    """Test instrument topics produce typed rates keyed by instrument id."""
    parsed = parse_messages({"messages": [entry("instrument:100000", RATE)]})

    assert len(parsed) == 1
    message = parsed[0]
    assert message.kind is MessageKind.INSTRUMENT_RATE
    assert message.instrument_id == 100000
    assert message.rate.ask == Decimal("43250.5")
    assert message.rate.bid == Decimal("43240.25")
    assert message.rate.last_execution == Decimal("43245.0")
    assert message.rate.price_rate_id == 123456


@pytest.mark.unit
def test_parse_private_event():
    """Test the private topic produces order events."""
    parsed = parse_messages({"messages": [entry("private", PRIVATE, type="Trading.OrderForOpen")]})

    event = parsed[0].event
    assert parsed[0].kind is MessageKind.PRIVATE_EVENT
    assert event.order_id == 328112233
    assert event.status is OrderStatusId.EXECUTED
    assert event.position_id == 2150001122
    assert event.executed_units == Decimal("0.002")
    assert event.is_buy is True


@pytest.mark.unit
def test_unknown_topic_kept_raw():
    """Test unrecognized topics are passed through untouched."""
    raw = entry("system:notice", "anything")
    parsed = parse_messages({"messages": [raw]})

    assert parsed[0].kind is MessageKind.UNKNOWN
    assert parsed[0].raw == raw


@pytest.mark.unit
def test_output_preserves_input_order():
    """Test entries are returned in the order received."""
    envelope = {"messages": [
        entry("private", PRIVATE),
        entry("instrument:1", RATE),
        entry("other", "{}"),
        entry("instrument:2", RATE),
    ]}

    kinds = [m.kind for m in parse_messages(envelope)]
    assert kinds == [
        MessageKind.PRIVATE_EVENT,
        MessageKind.INSTRUMENT_RATE,
        MessageKind.UNKNOWN,
        MessageKind.INSTRUMENT_RATE
    ]


@pytest.mark.unit
def test_malformed_entry_skipped_rest_of_batch_kept():
    """Test one bad entry does not drop the others."""
    envelope = {"messages": [
        entry("instrument:1", "{not json"),
        entry("instrument:abc", RATE),
        entry("private", {"StatusID": 3}),
        entry("instrument:2", RATE),
    ]}

    parsed = parse_messages(envelope)

    assert len(parsed) == 1
    assert parsed[0].instrument_id == 2


@pytest.mark.unit
def test_empty_envelope():
    assert parse_messages({"messages": []}) == []
    assert parse_messages({}) == []


@pytest.mark.unit
def test_parse_envelope():
    """Test raw frames are decoded and invalid JSON raises."""
    assert parse_envelope('{"messages": []}') == {"messages": []}

    with pytest.raises(json.JSONDecodeError):
        parse_envelope("not json")


@pytest.mark.unit
def test_is_auth_response():
    """Test classification of authentication responses."""
    assert is_auth_response({"messages": []}) is None
    assert is_auth_response({"operation": "Subscribe"}) is None

    assert is_auth_response({"operation": "Authenticate", "success": True}) == {
        "success": True, "error_code": None
    }
    assert is_auth_response({"type": "Authenticate", "status": "success"})["success"] is True
    assert is_auth_response({"operation": "Authenticate"})["success"] is True

    failed = is_auth_response({"operation": "Authenticate", "errorCode": "InvalidUserKey"})
    assert failed == {"success": False, "error_code": "InvalidUserKey"}
