"""Retry queue repository."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.retry_queue import RetryQueueRecord
from switchboard.persistence.repositories.base import BaseRepository


class RetryQueueRepository(BaseRepository[RetryQueueRecord]):
    """Repository for the durable retry queue."""

    def __init__(self, session: AsyncSession):
        super().__init__(RetryQueueRecord, session)

    async def list_due(self, now: datetime) -> list[RetryQueueRecord]:
        """Entries whose retry time has come, oldest message first."""
        stmt = (
            select(RetryQueueRecord)
            .where(RetryQueueRecord.next_retry_at <= now)
            .order_by(RetryQueueRecord.created_at, RetryQueueRecord.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self) -> list[RetryQueueRecord]:
        stmt = select(RetryQueueRecord).order_by(
            RetryQueueRecord.created_at, RetryQueueRecord.id
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def remove(self, entry_id: str) -> bool:
        stmt = delete(RetryQueueRecord).where(RetryQueueRecord.id == entry_id)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0
