# otohub_billing/db/repositories/payment_method_repository.py
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.db.models.payment_method import PaymentMethod
from otohub_billing.db.repositories.base import BaseRepository


class PaymentMethodRepository(BaseRepository[PaymentMethod]):
    def __init__(self, session: AsyncSession):
        super().__init__(PaymentMethod, session)

    async def list_methods(self, active_only: bool = False) -> List[PaymentMethod]:
        query = self._select()
        if active_only:
            query = query.where(PaymentMethod.is_active.is_(True))
        result = await self.session.execute(query.order_by(PaymentMethod.sort_order, PaymentMethod.provider))
        return list(result.scalars().all())
