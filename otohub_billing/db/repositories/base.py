# otohub_billing/db/repositories/base.py
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """Base repository with common query helpers.

    Repositories never commit: the caller's ``transaction()`` owns the
    unit of work. Reads always refresh identity-mapped objects so state
    checks run against what is stored, not what was loaded earlier.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    def _select(self, for_update: bool = False) -> Select:
        query = select(self.model).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        return query

    async def get(self, id: Any, for_update: bool = False) -> Optional[ModelType]:
        """Get by ID"""
        result = await self.session.execute(
            self._select(for_update).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[dict] = None,
    ) -> List[ModelType]:
        """Get multiple records"""
        query = self._select()

        if filters:
            for key, value in filters.items():
                if value is not None:
                    query = query.where(getattr(self.model, key) == value)

        query = query.offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, obj_in: dict) -> ModelType:
        """Create new record (flushed, not committed)"""
        db_obj = self.model(**obj_in)
        return await self.add(db_obj)

    async def add(self, db_obj: ModelType) -> ModelType:
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def delete(self, db_obj: ModelType) -> None:
        await self.session.delete(db_obj)
        await self.session.flush()
