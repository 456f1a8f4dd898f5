# otohub_billing/services/plan_catalog.py
"""Plan catalog: tiers, pricing and quota limits."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.audit_log import AuditEventType, AuditLogger
from otohub_billing.core.constants import (
    BillingPeriod,
    DEFAULT_PLANS,
    ResourceType,
    UNLIMITED,
)
from otohub_billing.core.exceptions import PlanNotFoundError, ValidationError
from otohub_billing.db.database import transaction
from otohub_billing.db.models.plan import Plan
from otohub_billing.db.repositories.plan_repository import PlanRepository

logger = logging.getLogger(__name__)

EDITABLE_PLAN_FIELDS = (
    "name",
    "description",
    "price",
    "yearly_discount_percent",
    "max_vehicles",
    "max_users",
    "max_customers",
    "max_branches",
    "sort_order",
)

QUOTA_FIELDS = ("max_vehicles", "max_users", "max_customers", "max_branches")


@dataclass(frozen=True)
class PlanLimits:
    """Quota snapshot of a plan, resolved once per transaction."""

    tier: str
    max_vehicles: int
    max_users: int
    max_customers: int
    max_branches: int

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanLimits":
        return cls(
            tier=plan.tier,
            max_vehicles=plan.max_vehicles,
            max_users=plan.max_users,
            max_customers=plan.max_customers,
            max_branches=plan.max_branches,
        )

    def limit_for(self, resource_type: ResourceType) -> int:
        return getattr(self, f"max_{ResourceType(resource_type).value}")

    def is_unlimited(self, resource_type: ResourceType) -> bool:
        return self.limit_for(resource_type) == UNLIMITED


def calculate_price(plan: Plan, period: BillingPeriod) -> int:
    """Invoice amount in whole Rupiah for one billing period"""
    if BillingPeriod(period) == BillingPeriod.YEARLY:
        yearly_total = plan.price * 12
        discount = round(yearly_total * plan.yearly_discount_percent / 100)
        return yearly_total - discount
    return plan.price


class PlanCatalog:
    """Reads and edits the plan catalog"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.plans = PlanRepository(session)

    async def get_plan(self, tier: Optional[str]) -> Plan:
        """Resolve a tier, failing closed when the plan does not exist"""
        plan = await self.plans.get_by_tier(tier) if tier else None
        if plan is None:
            logger.error("Plan lookup failed for tier %s", tier)
            raise PlanNotFoundError(f"Plan '{tier}' not found")
        return plan

    async def get_limits(self, tier: Optional[str]) -> PlanLimits:
        return PlanLimits.from_plan(await self.get_plan(tier))

    async def list_plans(self) -> List[Plan]:
        return await self.plans.list_all()

    async def update_plan(self, tier: str, changes: Dict[str, Any], actor_id: str) -> Plan:
        """Superadmin edit of pricing and quotas"""
        unknown = set(changes) - set(EDITABLE_PLAN_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown plan fields: {', '.join(sorted(unknown))}")
        _validate_plan_values(changes)

        async with transaction(self.session):
            plan = await self.get_plan(tier)
            before = {field: getattr(plan, field) for field in changes}
            for field, value in changes.items():
                setattr(plan, field, value)
            await self.session.flush()

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.PLAN_UPDATED,
                actor_id=actor_id,
                resource_type="plan",
                resource_id=tier,
                details={"before": before, "after": changes},
            )

        logger.info("Plan %s updated by %s", tier, actor_id, extra={"user_id": actor_id})
        return plan

    async def seed_default_plans(self) -> List[Plan]:
        """Insert the default tiers that are missing; existing plans are left untouched"""
        created = []
        async with transaction(self.session):
            for tier, values in DEFAULT_PLANS.items():
                if await self.plans.get_by_tier(tier.value) is None:
                    created.append(await self.plans.create({"tier": tier.value, **values}))
        if created:
            logger.info("Seeded %d plan(s)", len(created))
        return created


def _validate_plan_values(changes: Dict[str, Any]) -> None:
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Plan name cannot be empty")
    if "price" in changes and (changes["price"] is None or changes["price"] < 0):
        raise ValidationError("Price must be zero or positive")
    if "yearly_discount_percent" in changes:
        discount = changes["yearly_discount_percent"]
        if discount is None or not 0 <= discount <= 100:
            raise ValidationError("Yearly discount must be between 0 and 100")
    for field in QUOTA_FIELDS:
        if field in changes and (changes[field] is None or changes[field] < UNLIMITED):
            raise ValidationError(f"{field} must be -1 (unlimited) or a non-negative count")
