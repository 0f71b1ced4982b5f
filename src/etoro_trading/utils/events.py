"""
Typed publish/subscribe fabric.

Each component declares a closed Enum of event names and inherits from
EventEmitter. Handlers for one event are kept in registration order and
invoked synchronously by emit().
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, Set, Tuple, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)

Handler = Callable[..., Any]


class EventEmitter(Generic[E]):
    """
    Minimal typed event emitter.

    - on/once/off manage handlers per event
    - emit() calls handlers in registration order and returns whether any
      handler was registered
    - a failing handler is logged and does not stop delivery to the others
    - coroutine handlers are scheduled on the running loop
    """

    def __init__(self):
        # dict keys keep insertion order and give set semantics
        self._listeners: Dict[E, Dict[Handler, None]] = {}
        self._once_wrappers: Dict[Tuple[E, Handler], Handler] = {}
        self._pending: Set[asyncio.Future] = set()

    def on(self, event: E, handler: Handler) -> "EventEmitter[E]":
        self._listeners.setdefault(event, {})[handler] = None
        return self

    def once(self, event: E, handler: Handler) -> "EventEmitter[E]":
        def wrapper(*args):
            self.off(event, handler)
            return handler(*args)

        self._once_wrappers[(event, handler)] = wrapper
        return self.on(event, wrapper)

    def off(self, event: E, handler: Handler) -> "EventEmitter[E]":
        wrapper = self._once_wrappers.pop((event, handler), None)
        handlers = self._listeners.get(event)
        if handlers is None:
            return self

        handlers.pop(handler, None)
        if wrapper is not None:
            handlers.pop(wrapper, None)

        if not handlers:
            del self._listeners[event]
        return self

    def emit(self, event: E, *args: Any) -> bool:
        handlers = self._listeners.get(event)
        if not handlers:
            return False

        # Snapshot so handlers may register/unregister while we iterate
        for handler in list(handlers):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.error(
                    "Error in event handler",
                    event=event.value,
                    error=str(e),
                    exc_info=True
                )

        return True

    def listener_count(self, event: E) -> int:
        return len(self._listeners.get(event, {}))

    def remove_all_listeners(self, event: Optional[E] = None) -> "EventEmitter[E]":
        if event is None:
            self._listeners.clear()
            self._once_wrappers.clear()
        else:
            self._listeners.pop(event, None)
            for key in [k for k in self._once_wrappers if k[0] == event]:
                del self._once_wrappers[key]
        return self

    def _schedule(self, event: E, awaitable) -> None:
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)

        def _done(fut: asyncio.Future):
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.error(
                    "Error in async event handler",
                    event=event.value,
                    error=str(fut.exception())
                )

        future.add_done_callback(_done)
