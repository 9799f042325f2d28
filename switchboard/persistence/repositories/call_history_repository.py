"""Call history repository."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.call_history import CallHistoryRecord
from switchboard.persistence.repositories.base import BaseRepository


class CallHistoryRepository(BaseRepository[CallHistoryRecord]):
    """Repository for call history entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(CallHistoryRecord, session)

    async def get_by_call(self, call_id: str, owner_id: str) -> CallHistoryRecord | None:
        stmt = select(CallHistoryRecord).where(
            CallHistoryRecord.call_id == call_id,
            CallHistoryRecord.owner_id == owner_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_owner(
        self, owner_id: str, limit: int = 50, offset: int = 0
    ) -> list[CallHistoryRecord]:
        """History of one participant, newest call first."""
        stmt = (
            select(CallHistoryRecord)
            .where(CallHistoryRecord.owner_id == owner_id)
            .order_by(CallHistoryRecord.started_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_for_owner(self, entry_id: str, owner_id: str) -> bool:
        stmt = delete(CallHistoryRecord).where(
            CallHistoryRecord.id == entry_id,
            CallHistoryRecord.owner_id == owner_id,
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0
