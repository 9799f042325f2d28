"""Pytest configuration and fixtures."""

import asyncio
import inspect
from datetime import datetime, timedelta

import pytest

from switchboard.core.clock import Clock
from switchboard.domain.models.message import Message
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline
from switchboard.domain.services.retry_policy import RetryPolicy
from switchboard.infrastructure.connectivity import ConnectivityMonitor
from switchboard.infrastructure.messaging.base import DeliveryReceipt
from switchboard.infrastructure.messaging.memory_transport import InMemoryMessageTransport
from switchboard.infrastructure.signaling.memory_transport import InMemorySignalTransport
from switchboard.persistence.database import create_engine, create_schema, create_session_factory
from switchboard.persistence.stores.call_history_store import CallHistoryStore
from switchboard.persistence.stores.conversation_store import ConversationStore
from switchboard.persistence.stores.retry_queue_store import RetryQueueStore


class FakeClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FlakyMessageTransport(InMemoryMessageTransport):
    """In-memory transport that raises queued errors before accepting messages."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: list[Exception] = []
        self.always_fail: Exception | None = None
        self.attempts = 0

    async def deliver(self, message: Message) -> DeliveryReceipt:
        self.attempts += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.failures:
            raise self.failures.pop(0)
        return await super().deliver(message)


async def _wait_for(predicate, timeout: float = 3.0, interval: float = 0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return result
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_for():
    """Poll a (sync or async) predicate until it is truthy."""
    return _wait_for


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    """Create a file-backed SQLite database with the full schema."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'switchboard-test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def conversation_store(session_factory):
    return ConversationStore(session_factory)


@pytest.fixture
def call_history_store(session_factory):
    return CallHistoryStore(session_factory, page_size=50)


@pytest.fixture
def retry_store(session_factory):
    return RetryQueueStore(session_factory)


@pytest.fixture
async def signal_transport():
    transport = InMemorySignalTransport()
    await transport.open()
    yield transport
    await transport.close()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor()


@pytest.fixture
def message_transport():
    return FlakyMessageTransport()


@pytest.fixture
def fast_policy():
    """Retry policy with millisecond delays and no jitter."""
    return RetryPolicy(
        base_delay_ms=5,
        backoff_factor=1.0,
        max_delay_ms=5,
        max_attempts=5,
        jitter_ratio=0,
    )


@pytest.fixture
async def make_pipeline(conversation_store, retry_store, message_transport, connectivity, fast_policy):
    """Build delivery pipelines for "alice" that are stopped at teardown."""
    pipelines: list[MessageDeliveryPipeline] = []

    def factory(**overrides) -> MessageDeliveryPipeline:
        options = {
            "participant_id": "alice",
            "conversation_store": conversation_store,
            "retry_store": retry_store,
            "transport": message_transport,
            "connectivity": connectivity,
            "policy": fast_policy,
            "flush_interval_ms": 0,
        }
        options.update(overrides)
        pipeline = MessageDeliveryPipeline(**options)
        pipelines.append(pipeline)
        return pipeline

    yield factory

    for pipeline in pipelines:
        await pipeline.stop()


@pytest.fixture
async def pipeline(make_pipeline):
    pipeline = make_pipeline()
    await pipeline.start()
    yield pipeline
    await pipeline.stop()
