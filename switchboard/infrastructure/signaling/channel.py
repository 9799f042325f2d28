"""Signal channel: typed call signals over a pub/sub transport.

One transport subscription is held per participant no matter how many
listeners are attached to it; the subscription is created with the first
listener and removed with the last one.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from switchboard.core.exceptions import ProtocolError, SignalingUnavailableError
from switchboard.domain.models.signals import Signal, parse_signal, signal_to_wire
from switchboard.infrastructure.signaling.base import AsyncUnsubscribe, SignalTransport

logger = logging.getLogger(__name__)

SignalListener = Callable[[Signal], Any]


class SignalChannel:
    """Bidirectional signal bus for call participants."""

    def __init__(self, transport: SignalTransport, topic_prefix: str = "signals") -> None:
        self._transport = transport
        self._topic_prefix = topic_prefix
        self._listeners: dict[str, list[SignalListener]] = defaultdict(list)
        self._subscriptions: dict[str, AsyncUnsubscribe] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def open(self) -> None:
        """Open the underlying transport.

        Raises:
            SignalingUnavailableError: If the transport cannot be established
        """
        if self._is_open:
            return
        try:
            await self._transport.open()
        except Exception as e:
            logger.error(f"Signal transport unavailable: {e}")
            raise SignalingUnavailableError(str(e)) from e
        self._is_open = True
        logger.info("Signal channel open")

    async def close(self) -> None:
        self._is_open = False
        self._subscriptions.clear()
        self._listeners.clear()
        await self._transport.close()

    def topic_for(self, participant_id: str) -> str:
        return f"{self._topic_prefix}:{participant_id}"

    async def send(self, signal: Signal) -> bool:
        """Publish a signal to its recipient's topic.

        Fire-and-forget: failures are logged and reported through the return
        value, never raised.

        Returns:
            True if the transport accepted the signal
        """
        if not self._is_open:
            logger.warning(
                f"Dropping {signal.type} signal for call {signal.call_id}: channel not open"
            )
            return False
        try:
            await self._transport.publish(self.topic_for(signal.to), signal_to_wire(signal))
        except Exception as e:
            logger.warning(
                f"Failed to send {signal.type} signal for call {signal.call_id}: {e}",
                extra={"call_id": signal.call_id},
            )
            return False
        return True

    async def subscribe(
        self, participant_id: str, listener: SignalListener
    ) -> Callable[[], Awaitable[None]]:
        """Attach a listener for signals addressed to ``participant_id``.

        Returns:
            Coroutine function that detaches the listener
        """
        if not self._is_open:
            raise SignalingUnavailableError("Signal channel is not open")

        async with self._locks[participant_id]:
            if participant_id not in self._subscriptions:
                topic = self.topic_for(participant_id)

                async def handle(data: str) -> None:
                    await self._dispatch(participant_id, data)

                self._subscriptions[participant_id] = await self._transport.subscribe(
                    topic, handle
                )
                logger.debug(f"Subscribed to {topic}")
            self._listeners[participant_id].append(listener)

        async def unsubscribe() -> None:
            async with self._locks[participant_id]:
                listeners = self._listeners.get(participant_id)
                if not listeners or listener not in listeners:
                    return
                listeners.remove(listener)
                if listeners:
                    return
                del self._listeners[participant_id]
                transport_unsubscribe = self._subscriptions.pop(participant_id, None)
                if transport_unsubscribe is not None:
                    await transport_unsubscribe()
                    logger.debug(f"Unsubscribed from {self.topic_for(participant_id)}")

        return unsubscribe

    async def _dispatch(self, participant_id: str, data: str) -> None:
        try:
            signal = parse_signal(data)
        except ProtocolError as e:
            logger.warning(f"Discarding malformed signal for {participant_id}: {e}")
            return

        for listener in list(self._listeners.get(participant_id, [])):
            try:
                result = listener(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Signal listener for {participant_id} failed on {signal.type}",
                    extra={"call_id": signal.call_id},
                )

    def listener_count(self, participant_id: str) -> int:
        return len(self._listeners.get(participant_id, []))

    def has_subscription(self, participant_id: str) -> bool:
        return participant_id in self._subscriptions
