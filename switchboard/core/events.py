"""Typed observable streams with subscribe-returns-unsubscribe semantics."""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], Any]
Unsubscribe = Callable[[], None]


class EventStream(Generic[T]):
    """Broadcast events of one type to any number of listeners.

    Listeners may be plain callables or coroutine functions. Coroutine
    listeners are scheduled as tasks so that emitting never suspends the
    caller; a failing listener is logged and does not affect the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register a listener.

        Args:
            listener: Callable invoked with every emitted event

        Returns:
            Function that removes the listener; calling it twice is harmless
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: T) -> None:
        """Deliver an event to every current listener."""
        for listener in list(self._listeners):
            try:
                result = listener(event)
            except Exception:
                logger.exception(f"Listener on {self.name} failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Async listener on {self.name} failed",
                exc_info=task.exception(),
            )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class KeyedEventStream(Generic[T]):
    """EventStream partitioned by key (e.g. one listener set per conversation)."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._streams: dict[str, EventStream[T]] = defaultdict(
            lambda: EventStream(name)
        )

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        stream = self._streams[key]
        inner = stream.subscribe(listener)

        def unsubscribe() -> None:
            inner()
            if key in self._streams and self._streams[key].listener_count == 0:
                del self._streams[key]

        return unsubscribe

    def emit(self, key: str, event: T) -> None:
        stream = self._streams.get(key)
        if stream is not None:
            stream.emit(event)

    def listener_count(self, key: str) -> int:
        stream = self._streams.get(key)
        return stream.listener_count if stream else 0
