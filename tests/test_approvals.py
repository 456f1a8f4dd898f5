"""
Tests for the approval queue

1. Typed payload validation at request time
2. Approve executes the action, reject leaves state untouched
3. Decisions are final and applied at most once
4. Handler failures roll the decision back
"""
import asyncio
import pytest
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import NOW
from otohub_billing.core.constants import (
    ApprovalStatus,
    ApprovalType,
    InvoiceStatus,
    SubscriptionStatus,
)
from otohub_billing.core.exceptions import (
    AlreadyProcessedError,
    ApprovalExecutionError,
    NotFoundError,
    PlanNotFoundError,
    ValidationError,
)
from otohub_billing.db.models.tenant import Tenant
from otohub_billing.services.approval_service import (
    ApprovalService,
    BillingExtendPayload,
    PlanChangePayload,
    parse_payload,
)
from otohub_billing.services.invoice_service import InvoiceService
from otohub_billing.services.subscription_service import SubscriptionService


def test_payload_is_parsed_per_type():
    action = parse_payload(ApprovalType.PLAN_CHANGE, {"newTier": "PRO"})

    assert isinstance(action, PlanChangePayload)
    assert action.new_tier == "PRO"


def test_payload_type_comes_from_request_type():
    action = parse_payload(ApprovalType.BILLING_EXTEND, {"type": "PLAN_CHANGE", "months": 2})

    assert isinstance(action, BillingExtendPayload)


@pytest.mark.asyncio
class TestApprovalQueue:
    """Test suite for privileged action approvals"""

    @pytest.fixture
    def service(self, db_session: AsyncSession, policy) -> ApprovalService:
        return ApprovalService(db_session, policy)

    # ==================== Payload Tests ====================

    @pytest.mark.parametrize("approval_type,payload", [
        (ApprovalType.BILLING_EXTEND, {"months": 0}),
        (ApprovalType.BILLING_EXTEND, {}),
        (ApprovalType.PLAN_CHANGE, {"newTier": ""}),
        (ApprovalType.INVOICE_ACTION, {"invoiceId": "inv-1", "action": "REFUND"}),
        (ApprovalType.TENANT_SUSPEND, {}),
    ])
    async def test_invalid_payload_rejected(self, service: ApprovalService, test_tenant: Tenant, approval_type, payload):
        with pytest.raises(ValidationError) as exc_info:
            await service.request_approval(approval_type, test_tenant.id, payload, requested_by="staff-1")

        assert exc_info.value.details["errors"]

    async def test_unknown_type_rejected(self, service: ApprovalService, test_tenant: Tenant):
        with pytest.raises(ValidationError):
            await service.request_approval("REFUND", test_tenant.id, {}, requested_by="staff-1")

    async def test_unknown_tier_rejected(self, service: ApprovalService, test_tenant: Tenant):
        with pytest.raises(PlanNotFoundError):
            await service.request_approval(
                ApprovalType.PLAN_CHANGE, test_tenant.id, {"newTier": "PLATINUM"}, requested_by="staff-1"
            )

    async def test_unknown_tenant_rejected(self, service: ApprovalService):
        with pytest.raises(NotFoundError):
            await service.request_approval(
                ApprovalType.BILLING_EXTEND, "missing-tenant", {"months": 1}, requested_by="staff-1"
            )

    # ==================== Decision Tests ====================

    async def test_reject_leaves_plan_unchanged(self, service: ApprovalService, test_tenant: Tenant):
        """
        Test: PLAN_CHANGE to PRO requested, then rejected

        Expected: request REJECTED, tenant still on FREE
        """
        request = await service.request_approval(
            ApprovalType.PLAN_CHANGE, test_tenant.id, {"newTier": "PRO"}, requested_by="staff-1", now=NOW
        )

        decided = await service.decide(request.id, False, "admin-1", note="Pay the invoice instead", now=NOW)

        tenant = await SubscriptionService(service.session).get_tenant(test_tenant.id)
        assert decided.status == ApprovalStatus.REJECTED
        assert decided.processed_by == "admin-1"
        assert decided.note == "Pay the invoice instead"
        assert tenant.plan_tier == "FREE"

    async def test_approve_changes_plan(self, service: ApprovalService, test_tenant: Tenant):
        request = await service.request_approval(
            ApprovalType.PLAN_CHANGE, test_tenant.id, {"newTier": "PRO"}, requested_by="staff-1", now=NOW
        )

        decided = await service.decide(request.id, True, "admin-1", now=NOW)

        tenant = await SubscriptionService(service.session).get_tenant(test_tenant.id)
        assert decided.status == ApprovalStatus.APPROVED
        assert decided.processed_at == NOW
        assert tenant.plan_tier == "PRO"

    async def test_decision_is_final(self, service: ApprovalService, test_tenant: Tenant):
        tenant_id = test_tenant.id
        request = await service.request_approval(
            ApprovalType.PLAN_CHANGE, tenant_id, {"newTier": "PRO"}, requested_by="staff-1", now=NOW
        )
        await service.decide(request.id, False, "admin-1", now=NOW)

        with pytest.raises(AlreadyProcessedError):
            await service.decide(request.id, True, "admin-2", now=NOW)

        tenant = await SubscriptionService(service.session).get_tenant(tenant_id)
        assert tenant.plan_tier == "FREE"

    async def test_billing_extend_activates_tenant(self, service: ApprovalService, test_tenant: Tenant):
        request = await service.request_approval(
            ApprovalType.BILLING_EXTEND, test_tenant.id, {"months": 2}, requested_by="staff-1", now=NOW
        )

        await service.decide(request.id, True, "admin-1", now=NOW)

        tenant = await SubscriptionService(service.session).get_tenant(test_tenant.id)
        assert tenant.subscription_status == SubscriptionStatus.ACTIVE
        assert tenant.subscription_ends_at == NOW + timedelta(days=60)

    async def test_invoice_action_marks_paid(self, db_session: AsyncSession, service: ApprovalService, test_tenant: Tenant):
        invoice = await InvoiceService(db_session).subscribe(test_tenant.id, "BASIC", now=NOW)
        request = await service.request_approval(
            ApprovalType.INVOICE_ACTION,
            test_tenant.id,
            {"invoiceId": invoice.id, "action": "MARK_PAID"},
            requested_by="staff-1",
            now=NOW,
        )

        await service.decide(request.id, True, "admin-1", now=NOW)

        paid = await InvoiceService(db_session).get_invoice(invoice.id)
        tenant = await SubscriptionService(db_session).get_tenant(test_tenant.id)
        assert paid.status == InvoiceStatus.PAID
        assert tenant.subscription_status == SubscriptionStatus.ACTIVE
        assert tenant.plan_tier == "BASIC"

    async def test_tenant_suspend(self, service: ApprovalService, test_tenant: Tenant):
        request = await service.request_approval(
            ApprovalType.TENANT_SUSPEND, test_tenant.id, {"reason": "Chargeback"}, requested_by="staff-1", now=NOW
        )

        await service.decide(request.id, True, "admin-1", now=NOW)

        tenant = await SubscriptionService(service.session).get_tenant(test_tenant.id)
        assert tenant.subscription_status == SubscriptionStatus.SUSPENDED
        assert tenant.scheduled_deletion_at == NOW + timedelta(days=30)

    async def test_list_filters_by_status(self, service: ApprovalService, test_tenant: Tenant):
        first = await service.request_approval(
            ApprovalType.BILLING_EXTEND, test_tenant.id, {"months": 1}, requested_by="staff-1", now=NOW
        )
        await service.request_approval(
            ApprovalType.PLAN_CHANGE, test_tenant.id, {"newTier": "BASIC"}, requested_by="staff-1", now=NOW
        )
        await service.decide(first.id, False, "admin-1", now=NOW)

        pending = await service.list_requests(status=ApprovalStatus.PENDING)

        assert [r.type for r in pending] == [ApprovalType.PLAN_CHANGE]

    # ==================== Failure Tests ====================

    async def test_failed_handler_keeps_request_pending(self, service: ApprovalService, test_tenant: Tenant):
        """
        Test: INVOICE_ACTION for an invoice that does not exist is approved

        Expected: ApprovalExecutionError, request still PENDING, nothing applied
        """
        request = await service.request_approval(
            ApprovalType.INVOICE_ACTION,
            test_tenant.id,
            {"invoiceId": "missing-invoice"},
            requested_by="staff-1",
            now=NOW,
        )
        request_id = request.id

        with pytest.raises(ApprovalExecutionError):
            await service.decide(request_id, True, "admin-1", now=NOW)

        reloaded = await service.get_request(request_id)
        assert reloaded.status == ApprovalStatus.PENDING
        assert reloaded.processed_by is None

    async def test_invoice_action_is_tenant_scoped(
        self,
        db_session: AsyncSession,
        service: ApprovalService,
        test_tenant: Tenant,
    ):
        other = await SubscriptionService(db_session).create_tenant("Dealer Lain", now=NOW)
        foreign_invoice = await InvoiceService(db_session).subscribe(other.id, "BASIC", now=NOW)
        foreign_invoice_id = foreign_invoice.id
        request = await service.request_approval(
            ApprovalType.INVOICE_ACTION,
            test_tenant.id,
            {"invoiceId": foreign_invoice.id},
            requested_by="staff-1",
            now=NOW,
        )

        with pytest.raises(ApprovalExecutionError):
            await service.decide(request.id, True, "admin-1", now=NOW)

        untouched = await InvoiceService(db_session).get_invoice(foreign_invoice_id)
        assert untouched.status == InvoiceStatus.PENDING

    # ==================== Concurrency Tests ====================

    async def test_concurrent_approvals_apply_once(
        self,
        db_session: AsyncSession,
        session_factory,
        service: ApprovalService,
        test_tenant: Tenant,
    ):
        """
        Test: two superadmins approve the same BILLING_EXTEND (1 month) at once

        Expected: one succeeds, one AlreadyProcessedError, subscription extended exactly once
        """
        request = await service.request_approval(
            ApprovalType.BILLING_EXTEND, test_tenant.id, {"months": 1}, requested_by="staff-1", now=NOW
        )

        async def approve(admin_id: str):
            async with session_factory() as session:
                return await ApprovalService(session).decide(request.id, True, admin_id, now=NOW)

        results = await asyncio.gather(approve("admin-1"), approve("admin-2"), return_exceptions=True)

        assert len([r for r in results if isinstance(r, AlreadyProcessedError)]) == 1
        assert len([r for r in results if not isinstance(r, Exception)]) == 1

        tenant = await SubscriptionService(db_session).get_tenant(test_tenant.id)
        assert tenant.subscription_ends_at == NOW + timedelta(days=30)
