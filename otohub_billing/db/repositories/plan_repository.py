# otohub_billing/db/repositories/plan_repository.py
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.db.models.plan import Plan
from otohub_billing.db.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan]):
    """Repository for the plan catalog"""

    def __init__(self, session: AsyncSession):
        super().__init__(Plan, session)

    async def get_by_tier(self, tier: str) -> Optional[Plan]:
        result = await self.session.execute(self._select().where(Plan.tier == tier))
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Plan]:
        result = await self.session.execute(self._select().order_by(Plan.sort_order, Plan.price))
        return list(result.scalars().all())
