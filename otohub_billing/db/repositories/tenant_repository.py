# otohub_billing/db/repositories/tenant_repository.py
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import BillingPeriod, ResourceType, SubscriptionStatus
from otohub_billing.db.models.resources import Branch, Customer, Vehicle
from otohub_billing.db.models.tenant import Tenant, TenantStatusHistory
from otohub_billing.db.models.user import User
from otohub_billing.db.repositories.base import BaseRepository


class TenantRepository(BaseRepository[Tenant]):
    """Repository for Tenant operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Tenant, session)

    async def get_by_id(self, tenant_id: str, for_update: bool = False) -> Optional[Tenant]:
        """Get tenant by ID"""
        return await self.get(tenant_id, for_update=for_update)

    async def list_schedulable_ids(self) -> List[str]:
        """Tenants the lifecycle scheduler still has to evaluate"""
        result = await self.session.execute(
            select(Tenant.id)
            .where(Tenant.subscription_status != SubscriptionStatus.CANCELLED)
            .where(Tenant.purged_at.is_(None))
            .order_by(Tenant.created_at)
        )
        return list(result.scalars().all())

    async def count_resource(self, tenant_id: str, resource_type: ResourceType) -> int:
        """Live count of one quota-limited resource"""
        if resource_type == ResourceType.VEHICLES:
            query = select(func.count(Vehicle.id)).where(
                Vehicle.tenant_id == tenant_id, Vehicle.deleted_at.is_(None)
            )
        elif resource_type == ResourceType.CUSTOMERS:
            query = select(func.count(Customer.id)).where(
                Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None)
            )
        elif resource_type == ResourceType.USERS:
            query = select(func.count(User.id)).where(User.tenant_id == tenant_id)
        elif resource_type == ResourceType.BRANCHES:
            query = select(func.count(Branch.id)).where(Branch.tenant_id == tenant_id)
        else:
            raise ValueError(f"Unknown resource type: {resource_type}")

        result = await self.session.execute(query)
        return result.scalar() or 0

    async def get_usage_stats(self, tenant_id: str) -> Dict[ResourceType, int]:
        """Live usage for every quota-limited resource"""
        return {
            resource_type: await self.count_resource(tenant_id, resource_type)
            for resource_type in ResourceType
        }

    async def purge_resources(self, tenant_id: str) -> Dict[str, int]:
        """Hard-delete the tenant's operational data; invoices are kept"""
        removed = {}
        for model in (Vehicle, Customer, Branch, User):
            result = await self.session.execute(
                delete(model).where(model.tenant_id == tenant_id)
            )
            removed[model.__tablename__] = result.rowcount or 0
        return removed

    async def add_history(self, entry: TenantStatusHistory) -> TenantStatusHistory:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_history(self, tenant_id: str) -> List[TenantStatusHistory]:
        result = await self.session.execute(
            select(TenantStatusHistory)
            .where(TenantStatusHistory.tenant_id == tenant_id)
            .order_by(TenantStatusHistory.occurred_at, TenantStatusHistory.created_at)
        )
        return list(result.scalars().all())

    # ==================== REPORTING ====================

    async def count_by_status(self) -> Dict[SubscriptionStatus, int]:
        result = await self.session.execute(
            select(Tenant.subscription_status, func.count(Tenant.id))
            .group_by(Tenant.subscription_status)
        )
        return {SubscriptionStatus(status): count for status, count in result.all()}

    async def count_by_plan(self) -> Dict[str, int]:
        """Live tenants per plan tier; cancelled tenants are left out"""
        result = await self.session.execute(
            select(Tenant.plan_tier, func.count(Tenant.id))
            .where(Tenant.subscription_status != SubscriptionStatus.CANCELLED)
            .group_by(Tenant.plan_tier)
        )
        return {tier: count for tier, count in result.all()}

    async def count_active_by_plan_period(self) -> List[Tuple[str, Optional[BillingPeriod], int]]:
        """ACTIVE tenants grouped by plan tier and billing period"""
        result = await self.session.execute(
            select(Tenant.plan_tier, Tenant.billing_period, func.count(Tenant.id))
            .where(Tenant.subscription_status == SubscriptionStatus.ACTIVE)
            .group_by(Tenant.plan_tier, Tenant.billing_period)
        )
        return [(tier, period, count) for tier, period, count in result.all()]
