"""Redis pub/sub signal transport for multi-process deployments."""

import asyncio
import logging

from switchboard.infrastructure.redis import RedisClient
from switchboard.infrastructure.signaling.base import (
    AsyncUnsubscribe,
    RawHandler,
    SignalTransport,
)

logger = logging.getLogger(__name__)


class RedisSignalTransport(SignalTransport):
    """Signal bus over Redis channels.

    Each subscription owns a pub/sub handle and a reader task, so messages on
    one channel are handled strictly in the order Redis delivers them.
    """

    def __init__(self, redis_client: RedisClient) -> None:
        self._redis = redis_client
        self._unsubscribers: set[AsyncUnsubscribe] = set()

    async def open(self) -> None:
        await self._redis.connect()
        if not self._redis.is_connected:
            raise ConnectionError("Redis signal transport requires redis_enabled=true")

    async def close(self) -> None:
        for unsubscribe in list(self._unsubscribers):
            await unsubscribe()
        await self._redis.disconnect()

    async def publish(self, topic: str, data: str) -> None:
        receivers = await self._redis.publish(topic, data)
        logger.debug(f"Published signal to {topic} ({receivers} receivers)")

    async def subscribe(self, topic: str, handler: RawHandler) -> AsyncUnsubscribe:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(topic)

        async def reader() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await handler(message["data"])
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"Signal handler for topic {topic} failed")

        task = asyncio.create_task(reader(), name=f"redis-signal-sub:{topic}")

        async def unsubscribe() -> None:
            self._unsubscribers.discard(unsubscribe)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Reader for {topic} had stopped with an error: {e}")
            try:
                await pubsub.unsubscribe(topic)
            finally:
                await pubsub.aclose()

        self._unsubscribers.add(unsubscribe)
        return unsubscribe
