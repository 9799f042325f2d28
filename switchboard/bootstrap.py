"""Service wiring.

All long-lived services are built once here and handed to whoever needs
them (the FastAPI app keeps them on ``app.state.services``).
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from switchboard.core.clock import Clock
from switchboard.core.context import set_participant_context
from switchboard.domain.services.call_coordinator import CallCoordinator, PeerFactory
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline
from switchboard.domain.services.retry_policy import RetryPolicy
from switchboard.infrastructure.connectivity import ConnectivityMonitor
from switchboard.infrastructure.media import NullPeerConnection
from switchboard.infrastructure.messaging.base import MessageTransport
from switchboard.infrastructure.messaging.http_transport import HttpMessageTransport
from switchboard.infrastructure.messaging.memory_transport import InMemoryMessageTransport
from switchboard.infrastructure.redis import RedisClient
from switchboard.infrastructure.signaling.base import SignalTransport
from switchboard.infrastructure.signaling.channel import SignalChannel
from switchboard.infrastructure.signaling.memory_transport import InMemorySignalTransport
from switchboard.infrastructure.signaling.redis_transport import RedisSignalTransport
from switchboard.infrastructure.signaling.typing_indicators import TypingChannel
from switchboard.persistence.database import create_engine, create_schema, create_session_factory
from switchboard.persistence.stores.call_history_store import CallHistoryStore
from switchboard.persistence.stores.conversation_store import ConversationStore
from switchboard.persistence.stores.retry_queue_store import RetryQueueStore
from switchboard.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the API and workers need, for one local participant."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    channel: SignalChannel
    connectivity: ConnectivityMonitor
    message_transport: MessageTransport
    conversation_store: ConversationStore
    call_history_store: CallHistoryStore
    retry_queue_store: RetryQueueStore
    coordinator: CallCoordinator
    pipeline: MessageDeliveryPipeline

    async def start(self) -> None:
        set_participant_context(self.settings.local_participant_id)
        if self.engine.dialect.name == "sqlite":
            await create_schema(self.engine)
        await self.channel.open()
        await self.coordinator.start()
        await self.pipeline.start()
        logger.info(f"Services started for {self.settings.local_participant_id}")

    async def stop(self) -> None:
        await self.pipeline.stop()
        await self.coordinator.stop()
        await self.channel.close()
        await self.message_transport.close()
        await self.engine.dispose()
        logger.info("Services stopped")


def build_signal_transport(settings: Settings) -> SignalTransport:
    if settings.signal_transport == "memory":
        return InMemorySignalTransport()
    if settings.signal_transport == "redis":
        return RedisSignalTransport(RedisClient(settings.redis_url, settings.redis_enabled))
    raise ValueError(f"Unknown signal transport: {settings.signal_transport}")


def build_message_transport(settings: Settings) -> MessageTransport:
    if settings.message_transport_url:
        return HttpMessageTransport(
            settings.message_transport_url,
            timeout=settings.message_transport_timeout_seconds,
        )
    logger.warning("No message_transport_url configured, messages stay in process")
    return InMemoryMessageTransport()


def build_services(
    settings: Settings,
    signal_transport: SignalTransport | None = None,
    message_transport: MessageTransport | None = None,
    peer_factory: PeerFactory | None = None,
    clock: Clock | None = None,
) -> Services:
    """Build the service graph. Nothing is connected until ``start()``."""
    clock = clock or Clock()
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    signal_transport = signal_transport or build_signal_transport(settings)
    channel = SignalChannel(signal_transport, topic_prefix=settings.signal_topic_prefix)
    typing = TypingChannel(signal_transport, topic_prefix=settings.typing_topic_prefix)
    connectivity = ConnectivityMonitor()
    message_transport = message_transport or build_message_transport(settings)

    conversation_store = ConversationStore(session_factory)
    call_history_store = CallHistoryStore(session_factory, page_size=settings.call_history_page_size)
    retry_queue_store = RetryQueueStore(session_factory)

    coordinator = CallCoordinator(
        participant_id=settings.local_participant_id,
        channel=channel,
        history_store=call_history_store,
        peer_factory=peer_factory or NullPeerConnection,
        clock=clock,
        no_answer_timeout=settings.call_no_answer_timeout_seconds,
        reconnect_timeout=settings.call_reconnect_timeout_seconds,
    )
    pipeline = MessageDeliveryPipeline(
        participant_id=settings.local_participant_id,
        conversation_store=conversation_store,
        retry_store=retry_queue_store,
        transport=message_transport,
        connectivity=connectivity,
        policy=RetryPolicy.from_settings(settings),
        clock=clock,
        flush_interval_ms=settings.flush_interval_ms,
        typing=typing,
    )

    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        channel=channel,
        connectivity=connectivity,
        message_transport=message_transport,
        conversation_store=conversation_store,
        call_history_store=call_history_store,
        retry_queue_store=retry_queue_store,
        coordinator=coordinator,
        pipeline=pipeline,
    )
