"""
Integration tests for the invoice ledger and payment proof workflow

Tests the complete workflow:
1. Subscribe creates (or re-targets) a single open invoice
2. Proof upload moves the invoice to VERIFYING
3. Superadmin verification settles it and activates the tenant
4. Double verification is rejected
"""
import asyncio
import pytest
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import NOW
from otohub_billing.core.constants import (
    BillingPeriod,
    InvoiceKind,
    InvoiceStatus,
    SubscriptionStatus,
)
from otohub_billing.core.exceptions import (
    InvalidInvoiceStateError,
    InvalidTransitionError,
    NotFoundError,
    PlanNotFoundError,
    ValidationError,
)
from otohub_billing.db.models.invoice import Invoice
from otohub_billing.db.models.tenant import Tenant
from otohub_billing.services.invoice_service import INVOICE_TRANSITIONS, InvoiceService
from otohub_billing.services.proof_storage import LocalProofStorage, ProofStorage
from otohub_billing.services.subscription_service import SubscriptionService

PROOF_URL = "/uploads/payment-proofs/transfer-1.jpg"


@pytest.mark.asyncio
class TestInvoiceLedger:
    """Test suite for invoice creation and numbering"""

    @pytest.fixture
    def invoice_service(self, db_session: AsyncSession, policy):
        return InvoiceService(db_session, policy)

    # ==================== Subscribe Tests ====================

    async def test_subscribe_creates_pending_invoice(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        """
        Test: Tenant subscribes to BASIC monthly

        Expected: PENDING invoice INV-2026-0001 for 299.000 due in 7 days
        """
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", BillingPeriod.MONTHLY, now=NOW)

        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.invoice_number == "INV-2026-0001"
        assert invoice.amount == 299000
        assert invoice.kind == InvoiceKind.SUBSCRIBE
        assert invoice.due_date == NOW + timedelta(days=7)

    async def test_yearly_subscription_applies_discount(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "PRO", BillingPeriod.YEARLY, now=NOW)

        # 599.000 x 12 = 7.188.000, minus 15%
        assert invoice.amount == 6109800

    async def test_subscribe_again_retargets_open_invoice(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        first = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        second = await invoice_service.subscribe(test_tenant.id, "PRO", now=NOW + timedelta(days=1))

        invoices = await invoice_service.list_invoices(test_tenant.id)
        assert len(invoices) == 1
        assert second.id == first.id
        assert second.invoice_number == "INV-2026-0001"
        assert second.plan_tier == "PRO"
        assert second.amount == 599000
        assert second.status == InvoiceStatus.PENDING
        assert second.due_date == NOW + timedelta(days=7)

    async def test_subscribe_while_verifying_is_rejected(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        await invoice_service.upload_proof(invoice.id, test_tenant.id, PROOF_URL, now=NOW)

        with pytest.raises(InvalidInvoiceStateError):
            await invoice_service.subscribe(test_tenant.id, "PRO", now=NOW)

    async def test_free_plan_cannot_be_invoiced(self, invoice_service: InvoiceService, test_tenant: Tenant):
        with pytest.raises(ValidationError):
            await invoice_service.subscribe(test_tenant.id, "FREE", now=NOW)

    async def test_unknown_plan(self, invoice_service: InvoiceService, test_tenant: Tenant):
        with pytest.raises(PlanNotFoundError):
            await invoice_service.subscribe(test_tenant.id, "GOLD", now=NOW)

    async def test_cancelled_tenant_cannot_subscribe(
        self,
        db_session: AsyncSession,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        await SubscriptionService(db_session).cancel(test_tenant.id, "owner-1", now=NOW)

        with pytest.raises(InvalidTransitionError):
            await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)

    async def test_sequence_continues_after_payment(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        first = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        await invoice_service.upload_proof(first.id, test_tenant.id, PROOF_URL, now=NOW)
        await invoice_service.verify(first.id, True, "admin-1", now=NOW)

        upgrade = await invoice_service.subscribe(test_tenant.id, "PRO", now=NOW + timedelta(days=2))

        assert upgrade.id != first.id
        assert upgrade.invoice_number == "INV-2026-0002"

    async def test_downgrade_during_paid_period_needs_approval(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "PRO", now=NOW)
        await invoice_service.upload_proof(invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        await invoice_service.verify(invoice.id, True, "admin-1", now=NOW)

        with pytest.raises(ValidationError):
            await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW + timedelta(days=1))

    # ==================== Overdue Tests ====================

    async def test_mark_overdue_only_after_due_date(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)

        assert await invoice_service.mark_overdue(test_tenant.id, NOW + timedelta(days=6)) == []

        overdue = await invoice_service.mark_overdue(test_tenant.id, NOW + timedelta(days=8))
        assert [i.id for i in overdue] == [invoice.id]
        assert (await invoice_service.get_invoice(invoice.id)).status == InvoiceStatus.OVERDUE

    async def test_late_proof_still_accepted(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        await invoice_service.mark_overdue(test_tenant.id, NOW + timedelta(days=8))

        updated = await invoice_service.upload_proof(invoice.id, test_tenant.id, PROOF_URL, now=NOW + timedelta(days=9))

        assert updated.status == InvoiceStatus.VERIFYING

    async def test_subscribe_on_overdue_invoice_keeps_it_overdue(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        """
        Test: BASIC invoice goes OVERDUE, tenant subscribes to PRO a day later

        Expected: same invoice, still OVERDUE, original due date, PRO amount
        """
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        await invoice_service.mark_overdue(test_tenant.id, NOW + timedelta(days=8))

        again = await invoice_service.subscribe(test_tenant.id, "PRO", now=NOW + timedelta(days=9))

        assert again.id == invoice.id
        assert again.status == InvoiceStatus.OVERDUE
        assert again.due_date == NOW + timedelta(days=7)
        assert again.plan_tier == "PRO"
        assert again.amount == 599000

    async def test_rejected_invoice_returns_to_pending_on_subscribe(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
    ):
        invoice = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)
        await invoice_service.upload_proof(invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        await invoice_service.verify(invoice.id, False, "admin-1", now=NOW)

        again = await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW + timedelta(days=2))

        assert again.status == InvoiceStatus.PENDING
        assert again.due_date == NOW + timedelta(days=7)
        assert again.payment_proof_url is None


def test_only_rejected_invoices_move_back_to_pending():
    for source, targets in INVOICE_TRANSITIONS.items():
        if InvoiceStatus.PENDING in targets:
            assert source in (InvoiceStatus.PENDING, InvoiceStatus.REJECTED)
    assert INVOICE_TRANSITIONS[InvoiceStatus.PAID] == frozenset()


@pytest.mark.asyncio
class TestInvoiceStatusOrder:
    """Invoice status never moves backwards, whatever operation runs"""

    # Edges an invoice may take; REJECTED -> PENDING is the only step back
    ALLOWED_EDGES = {
        (InvoiceStatus.PENDING, InvoiceStatus.VERIFYING),
        (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE),
        (InvoiceStatus.OVERDUE, InvoiceStatus.VERIFYING),
        (InvoiceStatus.VERIFYING, InvoiceStatus.PAID),
        (InvoiceStatus.VERIFYING, InvoiceStatus.REJECTED),
        (InvoiceStatus.REJECTED, InvoiceStatus.PENDING),
        (InvoiceStatus.REJECTED, InvoiceStatus.VERIFYING),
    }

    async def test_every_operation_moves_forward(self, db_session: AsyncSession, policy, test_tenant: Tenant):
        """
        Test: one invoice driven through every ledger operation, including the
        ones that must fail (subscribe while VERIFYING, verify twice, upload on PAID)

        Expected: each observed status change is an allowed edge
        """
        service = InvoiceService(db_session, policy)
        tenant_id = test_tenant.id
        invoice_id = (await service.subscribe(tenant_id, "BASIC", now=NOW)).id
        seen = [InvoiceStatus.PENDING]

        async def step(operation):
            try:
                await operation()
            except (InvalidInvoiceStateError, ValidationError):
                pass
            seen.append(InvoiceStatus((await service.get_invoice(invoice_id)).status))

        await step(lambda: service.subscribe(tenant_id, "PRO", now=NOW + timedelta(days=1)))
        await step(lambda: service.mark_overdue(tenant_id, NOW + timedelta(days=8)))
        await step(lambda: service.subscribe(tenant_id, "BASIC", now=NOW + timedelta(days=9)))
        await step(lambda: service.mark_overdue(tenant_id, NOW + timedelta(days=10)))
        await step(lambda: service.upload_proof(invoice_id, tenant_id, PROOF_URL, now=NOW + timedelta(days=10)))
        await step(lambda: service.subscribe(tenant_id, "PRO", now=NOW + timedelta(days=10)))
        await step(lambda: service.upload_proof(invoice_id, tenant_id, "/uploads/second.jpg", now=NOW + timedelta(days=10)))
        await step(lambda: service.verify(invoice_id, False, "admin-1", now=NOW + timedelta(days=11)))
        await step(lambda: service.verify(invoice_id, True, "admin-1", now=NOW + timedelta(days=11)))
        await step(lambda: service.subscribe(tenant_id, "BASIC", now=NOW + timedelta(days=12)))
        await step(lambda: service.mark_overdue(tenant_id, NOW + timedelta(days=30)))
        await step(lambda: service.upload_proof(invoice_id, tenant_id, PROOF_URL, now=NOW + timedelta(days=30)))
        await step(lambda: service.verify(invoice_id, True, "admin-1", now=NOW + timedelta(days=30)))
        await step(lambda: service.verify(invoice_id, True, "admin-2", now=NOW + timedelta(days=30)))
        await step(lambda: service.upload_proof(invoice_id, tenant_id, PROOF_URL, now=NOW + timedelta(days=31)))
        await step(lambda: service.force_mark_paid(invoice_id, "admin-1", now=NOW + timedelta(days=31)))

        edges = [(a, b) for a, b in zip(seen, seen[1:]) if a != b]
        assert set(edges) <= self.ALLOWED_EDGES
        assert seen[-1] == InvoiceStatus.PAID
        assert InvoiceStatus.OVERDUE in seen and InvoiceStatus.REJECTED in seen


@pytest.mark.asyncio
class TestPaymentProofWorkflow:
    """Test suite for proof upload and superadmin verification"""

    @pytest.fixture
    def invoice_service(self, db_session: AsyncSession, policy):
        return InvoiceService(db_session, policy)

    @pytest.fixture
    async def pending_invoice(self, invoice_service: InvoiceService, test_tenant: Tenant) -> Invoice:
        return await invoice_service.subscribe(test_tenant.id, "BASIC", now=NOW)

    async def test_paid_before_trial_end_activates_tenant(
        self,
        db_session: AsyncSession,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        """
        Test: TRIAL tenant uploads proof, superadmin verifies

        Expected: invoice PAID, tenant ACTIVE on BASIC for 30 days
        """
        verifying = await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        assert verifying.status == InvoiceStatus.VERIFYING

        paid = await invoice_service.verify(pending_invoice.id, True, "admin-1", now=NOW + timedelta(hours=2))
        tenant = await SubscriptionService(db_session).get_tenant(test_tenant.id)

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_at == NOW + timedelta(hours=2)
        assert paid.verified_by == "admin-1"
        assert tenant.subscription_status == SubscriptionStatus.ACTIVE
        assert tenant.plan_tier == "BASIC"
        assert tenant.subscription_ends_at == NOW + timedelta(hours=2, days=30)

    async def test_reupload_replaces_proof(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        again = await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, "/uploads/second.png", now=NOW)

        assert again.id == pending_invoice.id
        assert again.status == InvoiceStatus.VERIFYING
        assert again.payment_proof_url == "/uploads/second.png"
        assert len(await invoice_service.list_invoices(test_tenant.id)) == 1

    async def test_reject_then_retry_keeps_invoice_number(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        """
        Test: proof rejected, tenant uploads a new one, superadmin verifies

        Expected: one invoice with the same number from start to finish
        """
        number = pending_invoice.invoice_number

        await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        rejected = await invoice_service.verify(pending_invoice.id, False, "admin-1", note="Blurry receipt", now=NOW)
        assert rejected.status == InvoiceStatus.REJECTED
        assert rejected.rejection_note == "Blurry receipt"
        assert rejected.invoice_number == number

        retried = await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, "/uploads/clear.jpg", now=NOW)
        assert retried.status == InvoiceStatus.VERIFYING

        paid = await invoice_service.verify(pending_invoice.id, True, "admin-1", now=NOW)
        invoices = await invoice_service.list_invoices(test_tenant.id)

        assert paid.status == InvoiceStatus.PAID
        assert [i.invoice_number for i in invoices] == [number]

    async def test_verify_outside_verifying_fails(
        self,
        invoice_service: InvoiceService,
        pending_invoice: Invoice,
    ):
        with pytest.raises(InvalidInvoiceStateError):
            await invoice_service.verify(pending_invoice.id, True, "admin-1", now=NOW)

    async def test_upload_on_paid_invoice_fails(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        await invoice_service.verify(pending_invoice.id, True, "admin-1", now=NOW)

        with pytest.raises(InvalidInvoiceStateError):
            await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)

    async def test_second_verify_fails(
        self,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)
        await invoice_service.verify(pending_invoice.id, True, "admin-1", now=NOW)

        with pytest.raises(InvalidInvoiceStateError):
            await invoice_service.verify(pending_invoice.id, False, "admin-2", now=NOW)

    async def test_concurrent_verify_single_outcome(
        self,
        db_session: AsyncSession,
        session_factory,
        invoice_service: InvoiceService,
        test_tenant: Tenant,
        pending_invoice: Invoice,
    ):
        """
        Test: two superadmins verify the same invoice at the same time

        Expected: exactly one PAID outcome and one InvalidInvoiceStateError
        """
        await invoice_service.upload_proof(pending_invoice.id, test_tenant.id, PROOF_URL, now=NOW)

        async def verify(actor_id: str):
            async with session_factory() as session:
                return await InvoiceService(session).verify(pending_invoice.id, True, actor_id, now=NOW)

        results = await asyncio.gather(verify("admin-1"), verify("admin-2"), return_exceptions=True)

        paid = [r for r in results if isinstance(r, Invoice)]
        errors = [r for r in results if isinstance(r, InvalidInvoiceStateError)]
        assert len(paid) == 1
        assert len(errors) == 1

        history = await SubscriptionService(db_session).tenants.get_history(test_tenant.id)
        assert [(h.old_status, h.new_status) for h in history] == [
            (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)
        ]

    async def test_other_tenant_cannot_upload(
        self,
        db_session: AsyncSession,
        invoice_service: InvoiceService,
        pending_invoice: Invoice,
    ):
        other = await SubscriptionService(db_session).create_tenant("Other Dealer", now=NOW)

        with pytest.raises(NotFoundError):
            await invoice_service.upload_proof(pending_invoice.id, other.id, PROOF_URL, now=NOW)


def test_proof_storage_requires_save():
    class NoSave(ProofStorage):
        pass

    with pytest.raises(TypeError):
        ProofStorage()
    with pytest.raises(TypeError):
        NoSave()
    assert isinstance(LocalProofStorage(upload_dir="unused"), ProofStorage)
