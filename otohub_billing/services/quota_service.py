# otohub_billing/services/quota_service.py
"""
Quota enforcement for tenant resources.

``check_quota`` must run in the same transaction as the insert it guards:
it locks the tenant row and recounts live usage, so two concurrent
creations against one tenant can never both pass at the boundary.
"""
import logging
from typing import Any, Dict, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import ResourceType, UNLIMITED
from otohub_billing.core.exceptions import NotFoundError, QuotaExceededError, ValidationError
from otohub_billing.db.database import transaction
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.plan_catalog import PlanCatalog, PlanLimits

logger = logging.getLogger(__name__)

ResourceModel = TypeVar("ResourceModel")


class QuotaService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.tenants = TenantRepository(session)
        self.catalog = PlanCatalog(session)

    async def check_quota(
        self,
        tenant_id: str,
        resource_type: ResourceType,
        proposed_count: int = 1,
    ) -> PlanLimits:
        """Raise QuotaExceededError if creating `proposed_count` more resources breaches the plan"""
        resource_type = ResourceType(resource_type)
        if proposed_count < 1:
            raise ValidationError("proposed_count must be at least 1")

        tenant = await self.tenants.get_by_id(tenant_id, for_update=True)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        limits = await self.catalog.get_limits(tenant.plan_tier)
        limit = limits.limit_for(resource_type)
        if limit == UNLIMITED:
            return limits

        used = await self.tenants.count_resource(tenant_id, resource_type)
        if used + proposed_count > limit:
            logger.warning(
                "Quota exceeded for %s: %d used + %d requested > %d (plan %s)",
                resource_type.value,
                used,
                proposed_count,
                limit,
                tenant.plan_tier,
                extra={"tenant_id": tenant_id},
            )
            raise QuotaExceededError(
                f"Limit reached for {resource_type.value} ({used}/{limit}) on plan {tenant.plan_tier}",
                details={
                    "resource_type": resource_type.value,
                    "used": used,
                    "limit": limit,
                    "current_plan": tenant.plan_tier,
                    "upgrade_url": "/billing/plans",
                },
            )
        return limits

    async def create_resource(
        self,
        tenant_id: str,
        resource_type: ResourceType,
        instance: ResourceModel,
    ) -> ResourceModel:
        """Check the quota and insert `instance` as one atomic unit"""
        async with transaction(self.session):
            await self.check_quota(tenant_id, resource_type, 1)
            self.session.add(instance)
            await self.session.flush()
        return instance

    async def get_usage(self, tenant_id: str) -> Dict[str, Dict[str, Any]]:
        """Used / limit / remaining for every resource type"""
        tenant = await self.tenants.get_by_id(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        limits = await self.catalog.get_limits(tenant.plan_tier)
        usage = await self.tenants.get_usage_stats(tenant_id)

        report = {}
        for resource_type, used in usage.items():
            limit = limits.limit_for(resource_type)
            report[resource_type.value] = {
                "used": used,
                "limit": limit,
                "remaining": None if limit == UNLIMITED else max(0, limit - used),
            }
        return report
