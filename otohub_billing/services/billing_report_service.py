# otohub_billing/services/billing_report_service.py
"""
Superadmin billing reports.

Read-only aggregates over tenants and invoices. MRR counts ACTIVE tenants
at their plan's monthly-equivalent price; yearly subscribers contribute a
twelfth of the discounted yearly price.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import BillingPeriod, InvoiceStatus, SubscriptionStatus
from otohub_billing.core.exceptions import ValidationError
from otohub_billing.db.base import utcnow
from otohub_billing.db.repositories.invoice_repository import InvoiceRepository
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.plan_catalog import PlanCatalog, calculate_price

logger = logging.getLogger(__name__)

MAX_REVENUE_MONTHS = 24


def _month_index(moment: datetime) -> int:
    return moment.year * 12 + moment.month - 1


def _month_start(index: int) -> datetime:
    return datetime(index // 12, index % 12 + 1, 1)


class BillingReportService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.tenants = TenantRepository(session)
        self.invoices = InvoiceRepository(session)
        self.catalog = PlanCatalog(session)

    async def get_billing_stats(self) -> Dict[str, Any]:
        """Tenant counts per status, open invoice counts and MRR"""
        by_status = await self.tenants.count_by_status()
        invoices = await self.invoices.count_by_status()
        plans = {plan.tier: plan for plan in await self.catalog.list_plans()}

        mrr = 0
        active_paid = 0
        for tier, period, count in await self.tenants.count_active_by_plan_period():
            plan = plans.get(tier)
            if plan is None:
                logger.warning("ACTIVE tenants on unknown plan %s left out of MRR", tier)
                continue
            if plan.price <= 0:
                continue
            if period == BillingPeriod.YEARLY:
                monthly = round(calculate_price(plan, BillingPeriod.YEARLY) / 12)
            else:
                monthly = plan.price
            mrr += monthly * count
            active_paid += count

        return {
            "total_tenants": sum(by_status.values()),
            "tenants_by_status": {status.value: by_status.get(status, 0) for status in SubscriptionStatus},
            "active_paid": active_paid,
            "trial_tenants": by_status.get(SubscriptionStatus.TRIAL, 0),
            "suspended_tenants": by_status.get(SubscriptionStatus.SUSPENDED, 0),
            "pending_invoices": invoices.get(InvoiceStatus.PENDING, 0),
            "invoices_awaiting_verification": invoices.get(InvoiceStatus.VERIFYING, 0),
            "overdue_invoices": invoices.get(InvoiceStatus.OVERDUE, 0),
            "mrr": mrr,
        }

    async def get_plan_distribution(self) -> List[Dict[str, Any]]:
        """Live tenants per plan, every catalog plan listed even when empty"""
        counts = await self.tenants.count_by_plan()
        distribution = []
        for plan in await self.catalog.list_plans():
            distribution.append({"plan": plan.tier, "name": plan.name, "count": counts.pop(plan.tier, 0)})
        # Tiers removed from the catalog but still referenced by tenants
        for tier, count in sorted(counts.items()):
            distribution.append({"plan": tier, "name": None, "count": count})
        return distribution

    async def get_monthly_revenue(self, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Paid invoice totals per calendar month, oldest first, ending with the current month"""
        if months < 1 or months > MAX_REVENUE_MONTHS:
            raise ValidationError(f"months must be between 1 and {MAX_REVENUE_MONTHS}")
        now = now or utcnow()

        last = _month_index(now)
        first = last - months + 1
        buckets = {
            index: {"year": index // 12, "month": index % 12 + 1, "revenue": 0, "invoices": 0}
            for index in range(first, last + 1)
        }

        for paid_at, amount in await self.invoices.list_paid_between(_month_start(first), _month_start(last + 1)):
            bucket = buckets[_month_index(paid_at)]
            bucket["revenue"] += amount
            bucket["invoices"] += 1

        return [buckets[index] for index in range(first, last + 1)]
