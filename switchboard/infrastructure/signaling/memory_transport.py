"""In-process signal transport for single-process deployments and tests."""

import asyncio
import logging
from collections import defaultdict
from typing import Callable

from switchboard.infrastructure.signaling.base import (
    AsyncUnsubscribe,
    RawHandler,
    SignalTransport,
)

logger = logging.getLogger(__name__)


class _Subscription:
    """One subscriber: a queue drained by its own task, preserving order."""

    def __init__(self, topic: str, handler: RawHandler, on_done: Callable[[int], None]) -> None:
        self.topic = topic
        self.handler = handler
        self.on_done = on_done
        self.queue: asyncio.Queue[str] = asyncio.Queue()
        self.task = asyncio.create_task(self._consume(), name=f"signal-sub:{topic}")

    async def _consume(self) -> None:
        while True:
            data = await self.queue.get()
            try:
                await self.handler(data)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Signal handler for topic {self.topic} failed")
            finally:
                self.on_done(1)

    async def stop(self) -> None:
        self.task.cancel()
        if asyncio.current_task() is not self.task:
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        # Messages that will never be handled
        dropped = self.queue.qsize()
        while not self.queue.empty():
            self.queue.get_nowait()
        if dropped:
            self.on_done(dropped)


class InMemorySignalTransport(SignalTransport):
    """Signal bus backed by asyncio queues.

    Several participants' channels may share one instance, which is how two
    call parties talk to each other inside a single process.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = defaultdict(list)
        self._is_open = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def open(self) -> None:
        self._is_open = True

    async def close(self) -> None:
        self._is_open = False
        subscriptions = [sub for subs in self._subscriptions.values() for sub in subs]
        self._subscriptions.clear()
        for subscription in subscriptions:
            await subscription.stop()

    async def publish(self, topic: str, data: str) -> None:
        if not self._is_open:
            raise ConnectionError("Signal transport is closed")
        for subscription in list(self._subscriptions.get(topic, [])):
            self._in_flight += 1
            self._idle.clear()
            subscription.queue.put_nowait(data)

    async def subscribe(self, topic: str, handler: RawHandler) -> AsyncUnsubscribe:
        if not self._is_open:
            raise ConnectionError("Signal transport is closed")
        subscription = _Subscription(topic, handler, self._handled)
        self._subscriptions[topic].append(subscription)

        async def unsubscribe() -> None:
            subscribers = self._subscriptions.get(topic)
            if subscribers and subscription in subscribers:
                subscribers.remove(subscription)
                if not subscribers:
                    del self._subscriptions[topic]
            await subscription.stop()

        return unsubscribe

    def _handled(self, count: int) -> None:
        self._in_flight = max(0, self._in_flight - count)
        if self._in_flight == 0:
            self._idle.set()

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, []))

    async def drain(self) -> None:
        """Wait until every published message, including ones published by
        handlers while draining, has been handled."""
        await self._idle.wait()
