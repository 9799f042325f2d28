"""Publish/subscribe transport abstraction used by the signal channel."""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

RawHandler = Callable[[str], Awaitable[None]]
AsyncUnsubscribe = Callable[[], Awaitable[None]]


class SignalTransport(ABC):
    """Topic-based message bus.

    Implementations must deliver messages published to one topic to each of
    its subscribers in publish order.
    """

    @abstractmethod
    async def open(self) -> None:
        """Establish the underlying connection. Raises on failure."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear down all subscriptions and the connection."""
        pass

    @abstractmethod
    async def publish(self, topic: str, data: str) -> None:
        """Publish serialized data to a topic. Raises on failure."""
        pass

    @abstractmethod
    async def subscribe(self, topic: str, handler: RawHandler) -> AsyncUnsubscribe:
        """Subscribe a handler to a topic.

        Returns:
            Coroutine function that removes the subscription
        """
        pass
