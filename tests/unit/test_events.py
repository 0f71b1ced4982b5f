"""
Unit tests for the typed event emitter.
"""

import asyncio
from enum import Enum
from unittest.mock import Mock

import pytest

from etoro_trading.utils.events import EventEmitter


class SampleEvent(Enum):
    PING = "ping"
    PONG = "pong"


@pytest.fixture
def emitter():
    return EventEmitter[SampleEvent]()


@pytest.mark.unit
def test_emit_calls_handlers_in_registration_order(emitter):
    calls = []
    emitter.on(SampleEvent.PING, lambda value: calls.append(("a", value)))
    emitter.on(SampleEvent.PING, lambda value: calls.append(("b", value)))

    assert emitter.emit(SampleEvent.PING, 1) is True
    assert calls == [("a", 1), ("b", 1)]


@pytest.mark.unit
def test_emit_without_handlers_returns_false(emitter):
    emitter.on(SampleEvent.PING, Mock())

    assert emitter.emit(SampleEvent.PONG) is False


@pytest.mark.unit
def test_same_handler_registered_once(emitter):
    handler = Mock()
    emitter.on(SampleEvent.PING, handler)
    emitter.on(SampleEvent.PING, handler)

    emitter.emit(SampleEvent.PING)

    handler.assert_called_once_with()
    assert emitter.listener_count(SampleEvent.PING) == 1


@pytest.mark.unit
def test_once_fires_a_single_time(emitter):
    handler = Mock()
    emitter.once(SampleEvent.PING, handler)

    emitter.emit(SampleEvent.PING, "x")
    emitter.emit(SampleEvent.PING, "y")

    handler.assert_called_once_with("x")
    assert emitter.listener_count(SampleEvent.PING) == 0


@pytest.mark.unit
def test_off_removes_handler_and_once_wrapper(emitter):
    handler = Mock()
    once_handler = Mock()
    emitter.on(SampleEvent.PING, handler)
    emitter.once(SampleEvent.PING, once_handler)

    emitter.off(SampleEvent.PING, handler)
    emitter.off(SampleEvent.PING, once_handler)

    assert emitter.emit(SampleEvent.PING) is False
    handler.assert_not_called()
    once_handler.assert_not_called()


@pytest.mark.unit
def test_once_handler_shared_across_events(emitter):
    """Test off() on one event leaves the same once-handler on another event intact."""
    handler = Mock()
    emitter.once(SampleEvent.PING, handler)
    emitter.once(SampleEvent.PONG, handler)

    emitter.off(SampleEvent.PING, handler)

    assert emitter.emit(SampleEvent.PING) is False
    assert emitter.emit(SampleEvent.PONG, "pong") is True
    handler.assert_called_once_with("pong")
    assert emitter.listener_count(SampleEvent.PONG) == 0


@pytest.mark.unit
def test_remove_all_listeners_drops_once_wrappers_for_event(emitter):
    handler = Mock()
    emitter.once(SampleEvent.PING, handler)
    emitter.once(SampleEvent.PONG, handler)

    emitter.remove_all_listeners(SampleEvent.PING)

    assert (SampleEvent.PING, handler) not in emitter._once_wrappers
    emitter.off(SampleEvent.PONG, handler)
    assert emitter.emit(SampleEvent.PONG) is False
    handler.assert_not_called()


@pytest.mark.unit
def test_failing_handler_does_not_stop_delivery(emitter):
    after = Mock()
    emitter.on(SampleEvent.PING, Mock(side_effect=ValueError("boom")))
    emitter.on(SampleEvent.PING, after)

    assert emitter.emit(SampleEvent.PING, 1) is True
    after.assert_called_once_with(1)


@pytest.mark.unit
def test_handlers_added_during_emit_wait_for_next_emit(emitter):
    late = Mock()

    def register_late():
        emitter.on(SampleEvent.PING, late)

    emitter.on(SampleEvent.PING, register_late)

    emitter.emit(SampleEvent.PING)
    late.assert_not_called()

    emitter.emit(SampleEvent.PING)
    late.assert_called_once_with()


@pytest.mark.unit
def test_remove_all_listeners(emitter):
    emitter.on(SampleEvent.PING, Mock())
    emitter.on(SampleEvent.PONG, Mock())

    emitter.remove_all_listeners(SampleEvent.PING)
    assert emitter.listener_count(SampleEvent.PING) == 0
    assert emitter.listener_count(SampleEvent.PONG) == 1

    emitter.remove_all_listeners()
    assert emitter.listener_count(SampleEvent.PONG) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_coroutine_handlers_are_scheduled(emitter):
    received = asyncio.Event()

    async def handler(value):
        assert value == 42
        received.set()

    emitter.on(SampleEvent.PING, handler)
    emitter.emit(SampleEvent.PING, 42)

    await asyncio.wait_for(received.wait(), timeout=1.0)
