"""
Tests for the plan catalog and the quota enforcer

1. Pricing (monthly / yearly discount)
2. Superadmin plan edits
3. Quota checks, fail-closed plan resolution, concurrent creations
"""
import asyncio
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import BillingPeriod, PlanTier, ResourceType
from otohub_billing.core.exceptions import PlanNotFoundError, QuotaExceededError, ValidationError
from otohub_billing.db.base import utcnow
from otohub_billing.db.models.resources import Branch, Customer, Vehicle
from otohub_billing.db.models.tenant import Tenant
from otohub_billing.services.plan_catalog import PlanCatalog, calculate_price
from otohub_billing.services.quota_service import QuotaService


async def _set_plan(db_session: AsyncSession, tenant: Tenant, tier: str) -> None:
    tenant.plan_tier = tier
    await db_session.commit()


async def _add_vehicles(db_session: AsyncSession, tenant: Tenant, count: int, deleted: bool = False) -> None:
    db_session.add_all([
        Vehicle(tenant_id=tenant.id, name=f"Unit {i}", deleted_at=utcnow() if deleted else None)
        for i in range(count)
    ])
    await db_session.commit()


@pytest.mark.asyncio
class TestPlanCatalog:
    """Test suite for tiers and pricing"""

    # ==================== Pricing Tests ====================

    async def test_seeded_tiers_in_order(self, db_session: AsyncSession):
        plans = await PlanCatalog(db_session).list_plans()

        assert [p.tier for p in plans] == ["FREE", "BASIC", "PRO", "UNLIMITED"]

    async def test_monthly_and_yearly_price(self, db_session: AsyncSession):
        """
        Test: BASIC is 299.000/month with 10% yearly discount

        Expected: yearly = 299.000 x 12 - 10% = 3.229.200
        """
        plan = await PlanCatalog(db_session).get_plan("BASIC")

        assert calculate_price(plan, BillingPeriod.MONTHLY) == 299000
        assert calculate_price(plan, BillingPeriod.YEARLY) == 3229200

    async def test_unknown_tier_raises(self, db_session: AsyncSession):
        with pytest.raises(PlanNotFoundError):
            await PlanCatalog(db_session).get_plan("PLATINUM")

    async def test_seed_is_idempotent(self, db_session: AsyncSession):
        created = await PlanCatalog(db_session).seed_default_plans()

        assert created == []

    # ==================== Superadmin Edit Tests ====================

    async def test_update_plan_changes_limits(self, db_session: AsyncSession):
        catalog = PlanCatalog(db_session)

        await catalog.update_plan("PRO", {"max_vehicles": 250, "price": 650000}, actor_id="admin-1")
        limits = await catalog.get_limits("PRO")

        assert limits.max_vehicles == 250
        assert (await catalog.get_plan("PRO")).price == 650000

    @pytest.mark.parametrize("changes", [
        {"price": -1},
        {"yearly_discount_percent": 101},
        {"max_users": -2},
        {"name": "  "},
        {"tier": "GOLD"},
    ])
    async def test_update_plan_rejects_invalid_values(self, db_session: AsyncSession, changes):
        with pytest.raises(ValidationError):
            await PlanCatalog(db_session).update_plan("BASIC", changes, actor_id="admin-1")


@pytest.mark.asyncio
class TestQuotaEnforcer:
    """Test suite for live-count quota enforcement"""

    async def test_allows_below_limit(self, db_session: AsyncSession, test_tenant: Tenant):
        await _add_vehicles(db_session, test_tenant, 4)

        limits = await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.VEHICLES)

        assert limits.max_vehicles == 5

    async def test_blocks_at_limit_with_details(self, db_session: AsyncSession, test_tenant: Tenant):
        """
        Test: FREE tier allows 5 vehicles

        Expected: 6th vehicle rejected with used / limit / plan in the error
        """
        await _add_vehicles(db_session, test_tenant, 5)

        with pytest.raises(QuotaExceededError) as exc_info:
            await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.VEHICLES)

        details = exc_info.value.to_dict()
        assert details["used"] == 5
        assert details["limit"] == 5
        assert details["current_plan"] == PlanTier.FREE.value

    async def test_proposed_count_is_added(self, db_session: AsyncSession, test_tenant: Tenant):
        await _add_vehicles(db_session, test_tenant, 3)

        with pytest.raises(QuotaExceededError):
            await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.VEHICLES, proposed_count=3)

    async def test_soft_deleted_resources_do_not_count(self, db_session: AsyncSession, test_tenant: Tenant):
        await _add_vehicles(db_session, test_tenant, 10, deleted=True)

        await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.VEHICLES, proposed_count=5)

    async def test_unlimited_always_passes(self, db_session: AsyncSession, test_tenant: Tenant):
        await _set_plan(db_session, test_tenant, PlanTier.UNLIMITED.value)
        db_session.add_all([Branch(tenant_id=test_tenant.id, name=f"Cabang {i}") for i in range(20)])
        await db_session.commit()

        await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.BRANCHES, proposed_count=100)

    async def test_unknown_plan_fails_closed(self, db_session: AsyncSession, test_tenant: Tenant):
        await _set_plan(db_session, test_tenant, "LEGACY")

        with pytest.raises(PlanNotFoundError):
            await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.CUSTOMERS)

    async def test_plan_edit_applies_to_next_check(self, db_session: AsyncSession, test_tenant: Tenant):
        await _add_vehicles(db_session, test_tenant, 5)
        await PlanCatalog(db_session).update_plan("FREE", {"max_vehicles": 6}, actor_id="admin-1")

        await QuotaService(db_session).check_quota(test_tenant.id, ResourceType.VEHICLES)

    async def test_create_resource_inserts(self, db_session: AsyncSession, test_tenant: Tenant):
        service = QuotaService(db_session)

        await service.create_resource(test_tenant.id, ResourceType.CUSTOMERS, Customer(tenant_id=test_tenant.id, name="Budi"))
        usage = await service.get_usage(test_tenant.id)

        assert usage["customers"] == {"used": 1, "limit": 20, "remaining": 19}
        assert usage["vehicles"]["remaining"] == 5

    # ==================== Concurrency Tests ====================

    async def test_concurrent_creations_at_boundary(self, db_session: AsyncSession, session_factory, test_tenant: Tenant):
        """
        Test: BASIC allows 50 vehicles, 49 exist, 5 concurrent creations

        Expected: exactly 1 succeeds, 4 fail with QuotaExceededError, 50 vehicles stored
        """
        await _set_plan(db_session, test_tenant, PlanTier.BASIC.value)
        await _add_vehicles(db_session, test_tenant, 49)

        async def attempt(i: int):
            async with session_factory() as session:
                return await QuotaService(session).create_resource(
                    test_tenant.id,
                    ResourceType.VEHICLES,
                    Vehicle(tenant_id=test_tenant.id, name=f"Concurrent {i}"),
                )

        results = await asyncio.gather(*(attempt(i) for i in range(5)), return_exceptions=True)

        successes = [r for r in results if isinstance(r, Vehicle)]
        failures = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(successes) == 1
        assert len(failures) == 4

        usage = await QuotaService(db_session).get_usage(test_tenant.id)
        assert usage["vehicles"]["used"] == 50
