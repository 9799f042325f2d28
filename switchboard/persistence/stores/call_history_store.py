"""Durable call history log."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.domain.models.call import CallHistoryEntry, CallHistoryStatus, CallType
from switchboard.persistence.models.call_history import CallHistoryRecord
from switchboard.persistence.repositories.call_history_repository import CallHistoryRepository

logger = logging.getLogger(__name__)


def entry_from_record(record: CallHistoryRecord) -> CallHistoryEntry:
    return CallHistoryEntry(
        id=record.id,
        call_id=record.call_id,
        owner_id=record.owner_id,
        caller_id=record.caller_id,
        callee_id=record.callee_id,
        call_type=CallType(record.call_type),
        final_status=CallHistoryStatus(record.final_status),
        duration=record.duration,
        started_at=record.started_at,
        ended_at=record.ended_at,
    )


class CallHistoryStore:
    """Append-only call log, one entry per call per participant."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_size: int = 50,
    ) -> None:
        self._session_factory = session_factory
        self.page_size = page_size

    async def append(self, entry: CallHistoryEntry) -> CallHistoryEntry:
        """Record a finished call.

        Appending a second entry for the same call and owner keeps the first.

        Returns:
            The stored entry
        """
        async with self._session_factory() as session:
            repo = CallHistoryRepository(session)
            inserted = await repo.insert_ignore(
                {
                    "id": entry.id,
                    "call_id": entry.call_id,
                    "owner_id": entry.owner_id,
                    "caller_id": entry.caller_id,
                    "callee_id": entry.callee_id,
                    "call_type": entry.call_type.value,
                    "final_status": entry.final_status.value,
                    "duration": entry.duration,
                    "started_at": entry.started_at,
                    "ended_at": entry.ended_at,
                },
                ["call_id", "owner_id"],
            )
            if inserted:
                logger.info(
                    f"Call {entry.call_id} logged as {entry.final_status.value} "
                    f"({entry.duration}s)",
                    extra={"call_id": entry.call_id},
                )
                return entry
            existing = await repo.get_by_call(entry.call_id, entry.owner_id)
            return entry_from_record(existing) if existing else entry

    async def get(self, call_id: str, owner_id: str) -> CallHistoryEntry | None:
        async with self._session_factory() as session:
            record = await CallHistoryRepository(session).get_by_call(call_id, owner_id)
            return entry_from_record(record) if record else None

    async def list_for_participant(
        self,
        owner_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CallHistoryEntry]:
        """Newest first, one page (``page_size`` entries) by default."""
        async with self._session_factory() as session:
            records = await CallHistoryRepository(session).list_for_owner(
                owner_id, limit=limit or self.page_size, offset=offset
            )
            return [entry_from_record(r) for r in records]

    async def delete(self, entry_id: str, owner_id: str) -> bool:
        async with self._session_factory() as session:
            return await CallHistoryRepository(session).delete_for_owner(entry_id, owner_id)
