"""Base repository with common query methods."""

from typing import Any, Generic, Iterable, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with id-keyed query methods."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def get_by_id(self, id: Any) -> ModelType | None:
        """Get entity by ID."""
        stmt = select(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete(self, id: Any) -> bool:
        """Delete entity by ID."""
        instance = await self.get_by_id(id)
        if instance is None:
            return False

        await self.session.delete(instance)
        await self.session.commit()
        return True

    def _insert(self, model=None):
        """Dialect-specific INSERT supporting ON CONFLICT clauses."""
        model = model or self.model
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Upsert is not supported on {dialect}")

    async def insert_ignore(
        self, values: dict[str, Any], conflict_columns: Iterable[str]
    ) -> bool:
        """Insert a row unless one with the same key already exists.

        Returns:
            True if a row was inserted
        """
        stmt = self._insert().values(**values).on_conflict_do_nothing(
            index_elements=list(conflict_columns)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def upsert(
        self,
        values: dict[str, Any],
        conflict_columns: Iterable[str],
        update_columns: Iterable[str] | None = None,
    ) -> None:
        """Atomic insert-or-update keyed by ``conflict_columns``."""
        conflict_columns = list(conflict_columns)
        if update_columns is None:
            update_columns = [key for key in values if key not in conflict_columns]
        insert_stmt = self._insert().values(**values)
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={column: insert_stmt.excluded[column] for column in update_columns},
        )
        await self.session.execute(stmt)
        await self.session.commit()
