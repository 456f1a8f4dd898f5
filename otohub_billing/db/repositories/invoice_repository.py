# otohub_billing/db/repositories/invoice_repository.py
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import InvoiceStatus, OPEN_INVOICE_STATUSES
from otohub_billing.db.models.invoice import Invoice
from otohub_billing.db.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for Invoice operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Invoice, session)

    async def get_for_tenant(self, invoice_id: str, tenant_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            self._select()
            .where(Invoice.id == invoice_id)
            .where(Invoice.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def list_invoices(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[InvoiceStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Invoice]:
        query = self._select()
        if tenant_id:
            query = query.where(Invoice.tenant_id == tenant_id)
        if status:
            query = query.where(Invoice.status == status)
        query = query.order_by(Invoice.created_at.desc(), Invoice.sequence.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def next_sequence(self, tenant_id: str) -> int:
        """Next per-tenant invoice sequence; caller must hold the tenant lock"""
        result = await self.session.execute(
            select(func.max(Invoice.sequence)).where(Invoice.tenant_id == tenant_id)
        )
        return (result.scalar() or 0) + 1

    async def find_open(
        self,
        tenant_id: str,
        statuses: Sequence[InvoiceStatus] = OPEN_INVOICE_STATUSES,
    ) -> Optional[Invoice]:
        """Most recent unpaid invoice of the tenant"""
        result = await self.session.execute(
            self._select()
            .where(Invoice.tenant_id == tenant_id)
            .where(Invoice.status.in_(list(statuses)))
            .order_by(Invoice.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_past_due(self, tenant_id: str, now: datetime) -> List[Invoice]:
        result = await self.session.execute(
            self._select()
            .where(Invoice.tenant_id == tenant_id)
            .where(Invoice.status == InvoiceStatus.PENDING)
            .where(Invoice.due_date < now)
        )
        return list(result.scalars().all())

    async def has_status(self, tenant_id: str, status: InvoiceStatus) -> bool:
        result = await self.session.execute(
            select(func.count(Invoice.id))
            .where(Invoice.tenant_id == tenant_id)
            .where(Invoice.status == status)
        )
        return (result.scalar() or 0) > 0

    async def count_by_status(self) -> Dict[InvoiceStatus, int]:
        result = await self.session.execute(
            select(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status)
        )
        return {InvoiceStatus(status): count for status, count in result.all()}

    async def list_paid_between(self, start: datetime, end: datetime) -> List[Tuple[datetime, int]]:
        """(paid_at, amount) of every invoice paid in [start, end)"""
        result = await self.session.execute(
            select(Invoice.paid_at, Invoice.amount)
            .where(Invoice.status == InvoiceStatus.PAID)
            .where(Invoice.paid_at >= start)
            .where(Invoice.paid_at < end)
            .order_by(Invoice.paid_at)
        )
        return [(paid_at, amount) for paid_at, amount in result.all()]
