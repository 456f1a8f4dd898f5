# otohub_billing/db/repositories/approval_repository.py
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import ApprovalStatus
from otohub_billing.db.models.approval import ApprovalRequest
from otohub_billing.db.repositories.base import BaseRepository


class ApprovalRepository(BaseRepository[ApprovalRequest]):
    """Repository for approval requests"""

    def __init__(self, session: AsyncSession):
        super().__init__(ApprovalRequest, session)

    async def list_requests(
        self,
        status: Optional[ApprovalStatus] = None,
        tenant_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ApprovalRequest]:
        query = self._select()
        if status:
            query = query.where(ApprovalRequest.status == status)
        if tenant_id:
            query = query.where(ApprovalRequest.tenant_id == tenant_id)
        query = query.order_by(ApprovalRequest.requested_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
