"""Durable retry queue that survives restarts."""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.domain.models.message import RetryQueueEntry
from switchboard.persistence.models.retry_queue import RetryQueueRecord
from switchboard.persistence.repositories.retry_queue_repository import RetryQueueRepository


def entry_from_record(record: RetryQueueRecord) -> RetryQueueEntry:
    return RetryQueueEntry(
        id=record.id,
        kind=record.kind,
        conversation_id=record.conversation_id,
        payload=dict(record.payload),
        attempt_count=record.attempt_count,
        next_retry_at=record.next_retry_at,
        last_error=record.last_error,
        created_at=record.created_at,
    )


class RetryQueueStore:
    """Retry entries keyed by message ID."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, entry: RetryQueueEntry) -> None:
        async with self._session_factory() as session:
            await RetryQueueRepository(session).upsert(
                {
                    "id": entry.id,
                    "kind": entry.kind,
                    "conversation_id": entry.conversation_id,
                    "payload": entry.payload,
                    "attempt_count": entry.attempt_count,
                    "next_retry_at": entry.next_retry_at,
                    "last_error": entry.last_error,
                    "created_at": entry.created_at,
                },
                ["id"],
            )

    async def get(self, entry_id: str) -> RetryQueueEntry | None:
        async with self._session_factory() as session:
            record = await RetryQueueRepository(session).get_by_id(entry_id)
            return entry_from_record(record) if record else None

    async def remove(self, entry_id: str) -> bool:
        async with self._session_factory() as session:
            return await RetryQueueRepository(session).remove(entry_id)

    async def list_due(self, now: datetime) -> list[RetryQueueEntry]:
        """Entries due at ``now``, ordered by message creation time."""
        async with self._session_factory() as session:
            records = await RetryQueueRepository(session).list_due(now)
            return [entry_from_record(r) for r in records]

    async def list_all(self) -> list[RetryQueueEntry]:
        async with self._session_factory() as session:
            records = await RetryQueueRepository(session).list_all()
            return [entry_from_record(r) for r in records]
