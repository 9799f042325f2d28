"""Redis client wrapper for pub/sub signaling."""

import logging

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper for async operations."""

    def __init__(self, url: str, enabled: bool = True) -> None:
        """Initialize Redis client.

        Args:
            url: Redis connection URL
            enabled: When False, connect() is a no-op and the client stays unusable
        """
        self._url = url
        self._client: aioredis.Redis | None = None
        self._enabled = enabled

    @property
    def is_connected(self) -> bool:
        return self._enabled and self._client is not None

    async def connect(self) -> None:
        """Connect to Redis and verify the connection with a ping."""
        if not self._enabled:
            logger.info("Redis disabled - skipping connection")
            return
        if self._client is None:
            client = aioredis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
            )
            try:
                await client.ping()
            except Exception:
                await client.aclose()
                raise
            self._client = client
            logger.info("Redis connected successfully")

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message to a channel.

        Args:
            channel: Redis channel name
            message: Serialized message

        Returns:
            Number of subscribers that received the message
        """
        if not self.is_connected:
            raise ConnectionError("Redis is not connected")
        return await self._client.publish(channel, message)

    def pubsub(self) -> PubSub:
        """Create a new pub/sub handle bound to this connection pool."""
        if not self.is_connected:
            raise ConnectionError("Redis is not connected")
        return self._client.pubsub(ignore_subscribe_messages=True)
