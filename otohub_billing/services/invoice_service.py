# otohub_billing/services/invoice_service.py
"""
Invoice ledger and payment proof workflow.

    PENDING ──proof──> VERIFYING ──verify──> PAID
    VERIFYING ──reject──> REJECTED ──proof──> VERIFYING
    PENDING ──due date passed──> OVERDUE ──proof──> VERIFYING

Status only moves forward; REJECTED -> PENDING is the single retry edge.
Re-targeting an unpaid invoice on subscribe changes its plan and amount
but keeps its number and due date. Invoices are never deleted.
"""
import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.audit_log import AuditEventType, AuditLogger
from otohub_billing.core.config import BillingPolicy
from otohub_billing.core.constants import (
    BillingPeriod,
    InvoiceKind,
    InvoiceStatus,
    PLAN_TIER_ORDER,
    SubscriptionStatus,
    TransitionTrigger,
)
from otohub_billing.core.exceptions import (
    ConflictError,
    InvalidInvoiceStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from otohub_billing.db.base import utcnow
from otohub_billing.db.database import transaction
from otohub_billing.db.models.invoice import Invoice
from otohub_billing.db.models.tenant import Tenant
from otohub_billing.db.repositories.invoice_repository import InvoiceRepository
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.plan_catalog import PlanCatalog, calculate_price
from otohub_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

I = InvoiceStatus

INVOICE_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    I.PENDING: frozenset({I.VERIFYING, I.OVERDUE, I.PENDING}),
    I.OVERDUE: frozenset({I.VERIFYING}),
    I.REJECTED: frozenset({I.VERIFYING, I.PENDING}),
    I.VERIFYING: frozenset({I.PAID, I.REJECTED}),
    I.PAID: frozenset(),
}

# States a proof upload is accepted from
UPLOADABLE_STATUSES = (I.PENDING, I.OVERDUE, I.REJECTED)

# States an approved INVOICE_ACTION may settle
FORCE_PAYABLE_STATUSES = (I.PENDING, I.OVERDUE, I.REJECTED, I.VERIFYING)


def format_invoice_number(sequence: int, now: datetime) -> str:
    return f"INV-{now.year}-{sequence:04d}"


class InvoiceService:
    def __init__(self, session: AsyncSession, policy: Optional[BillingPolicy] = None):
        self.session = session
        self.policy = policy or BillingPolicy.from_settings()
        self.invoices = InvoiceRepository(session)
        self.tenants = TenantRepository(session)
        self.catalog = PlanCatalog(session)
        self.subscriptions = SubscriptionService(session, self.policy)

    def _move(self, invoice: Invoice, to_status: InvoiceStatus, actor_id: Optional[str]) -> None:
        from_status = InvoiceStatus(invoice.status)
        if to_status not in INVOICE_TRANSITIONS[from_status]:
            logger.warning(
                "Rejected invoice transition %s -> %s (actor=%s)",
                from_status.value,
                to_status.value,
                actor_id,
                extra={"tenant_id": invoice.tenant_id, "invoice_id": invoice.id, "user_id": actor_id},
            )
            raise InvalidInvoiceStateError(
                f"Invoice {invoice.invoice_number} is {from_status.value}, cannot move to {to_status.value}",
                details={"status": from_status.value},
            )
        invoice.status = to_status
        logger.info(
            "Invoice %s %s -> %s (actor=%s)",
            invoice.invoice_number,
            from_status.value,
            to_status.value,
            actor_id,
            extra={"tenant_id": invoice.tenant_id, "invoice_id": invoice.id, "user_id": actor_id},
        )

    async def _locked_tenant(self, tenant_id: str) -> Tenant:
        tenant = await self.tenants.get_by_id(tenant_id, for_update=True)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    async def _get(self, invoice_id: str, tenant_id: Optional[str] = None) -> Invoice:
        if tenant_id:
            invoice = await self.invoices.get_for_tenant(invoice_id, tenant_id)
        else:
            invoice = await self.invoices.get(invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    # ==================== LEDGER ====================

    async def create_invoice(
        self,
        tenant_id: str,
        plan_tier: str,
        period: BillingPeriod = BillingPeriod.MONTHLY,
        kind: InvoiceKind = InvoiceKind.SUBSCRIBE,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
    ) -> Invoice:
        """Issue a new invoice with the next per-tenant number"""
        now = now or utcnow()
        period = BillingPeriod(period)

        async with transaction(self.session):
            tenant = await self._locked_tenant(tenant_id)
            plan = await self.catalog.get_plan(plan_tier)
            amount = calculate_price(plan, period)
            if amount <= 0:
                raise ValidationError(f"Plan {plan.tier} is free and cannot be invoiced")

            sequence = await self.invoices.next_sequence(tenant.id)
            invoice = await self.invoices.create({
                "tenant_id": tenant.id,
                "sequence": sequence,
                "invoice_number": format_invoice_number(sequence, now),
                "kind": InvoiceKind(kind),
                "plan_tier": plan.tier,
                "billing_period": period,
                "amount": amount,
                "status": InvoiceStatus.PENDING,
                "due_date": due_date or now + self.policy.invoice_due,
            })

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.INVOICE_CREATED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="invoice",
                resource_id=invoice.id,
                details={
                    "invoice_number": invoice.invoice_number,
                    "kind": invoice.kind.value,
                    "plan_tier": plan.tier,
                    "billing_period": period.value,
                    "amount": amount,
                },
            )

        logger.info(
            "Invoice %s issued for %s/%s: %d",
            invoice.invoice_number,
            plan.tier,
            period.value,
            amount,
            extra={"tenant_id": tenant_id, "invoice_id": invoice.id},
        )
        return invoice

    async def subscribe(
        self,
        tenant_id: str,
        plan_tier: str,
        period: BillingPeriod = BillingPeriod.MONTHLY,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Create the tenant's subscription invoice, or re-target its open one"""
        if not plan_tier:
            raise ValidationError("planId is required")
        now = now or utcnow()
        period = BillingPeriod(period)

        async with transaction(self.session):
            tenant = await self._locked_tenant(tenant_id)
            if tenant.subscription_status == SubscriptionStatus.CANCELLED:
                logger.warning(
                    "Subscribe rejected for cancelled tenant (actor=%s)",
                    actor_id,
                    extra={"tenant_id": tenant_id, "user_id": actor_id},
                )
                raise InvalidTransitionError("Tenant subscription is cancelled")

            plan = await self.catalog.get_plan(plan_tier)
            if calculate_price(plan, period) <= 0:
                raise ValidationError(f"Plan {plan.tier} is free and cannot be subscribed to")
            self._guard_downgrade(tenant, plan.tier, now)

            invoice = await self.invoices.find_open(tenant.id)
            if invoice is None:
                return await self.create_invoice(
                    tenant.id, plan.tier, period, InvoiceKind.SUBSCRIBE, actor_id=actor_id, now=now
                )

            if invoice.status == InvoiceStatus.VERIFYING:
                raise InvalidInvoiceStateError(
                    f"Invoice {invoice.invoice_number} is awaiting verification",
                    details={"status": invoice.status.value, "invoice_id": invoice.id},
                )

            previous = {"plan_tier": invoice.plan_tier, "amount": invoice.amount, "status": invoice.status.value}
            # OVERDUE stays OVERDUE; the due date never moves without a payment
            if invoice.status != InvoiceStatus.OVERDUE:
                self._move(invoice, InvoiceStatus.PENDING, actor_id)
            invoice.kind = InvoiceKind.SUBSCRIBE
            invoice.plan_tier = plan.tier
            invoice.billing_period = period
            invoice.amount = calculate_price(plan, period)
            invoice.payment_proof_url = None
            invoice.proof_uploaded_at = None
            await self.session.flush()

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.INVOICE_RETARGETED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="invoice",
                resource_id=invoice.id,
                details={"before": previous, "plan_tier": plan.tier, "amount": invoice.amount},
            )
        return invoice

    def _guard_downgrade(self, tenant: Tenant, new_tier: str, now: datetime) -> None:
        paid_up = (
            tenant.subscription_status == SubscriptionStatus.ACTIVE
            and tenant.subscription_ends_at is not None
            and tenant.subscription_ends_at > now
        )
        if not paid_up or tenant.plan_tier not in PLAN_TIER_ORDER or new_tier not in PLAN_TIER_ORDER:
            return
        if PLAN_TIER_ORDER.index(new_tier) < PLAN_TIER_ORDER.index(tenant.plan_tier):
            raise ValidationError(
                "Downgrades during a paid period require a PLAN_CHANGE approval",
                details={"current_plan": tenant.plan_tier, "requested_plan": new_tier},
            )

    # ==================== PAYMENT PROOF ====================

    async def upload_proof(
        self,
        invoice_id: str,
        tenant_id: str,
        proof_url: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Attach a proof URL; a second upload before verification replaces the first"""
        if not proof_url:
            raise ValidationError("Payment proof is required")
        now = now or utcnow()

        try:
            async with transaction(self.session):
                invoice = await self._get(invoice_id, tenant_id)
                if invoice.status != InvoiceStatus.VERIFYING:
                    if invoice.status not in UPLOADABLE_STATUSES:
                        logger.warning(
                            "Proof upload rejected on %s invoice (actor=%s)",
                            invoice.status.value,
                            actor_id,
                            extra={"tenant_id": tenant_id, "invoice_id": invoice_id, "user_id": actor_id},
                        )
                        raise InvalidInvoiceStateError(
                            f"Invoice {invoice.invoice_number} is {invoice.status.value}",
                            details={"status": invoice.status.value},
                        )
                    self._move(invoice, InvoiceStatus.VERIFYING, actor_id)

                invoice.payment_proof_url = proof_url
                invoice.proof_uploaded_at = now
                await self.session.flush()

                await AuditLogger(self.session).log_event(
                    event_type=AuditEventType.INVOICE_PROOF_UPLOADED,
                    actor_id=actor_id,
                    tenant_id=tenant_id,
                    resource_type="invoice",
                    resource_id=invoice.id,
                    details={"proof_url": proof_url},
                )
        except ConflictError as exc:
            raise InvalidInvoiceStateError("Invoice changed while uploading proof, reload and retry") from exc
        return invoice

    async def verify(
        self,
        invoice_id: str,
        approve: bool,
        verified_by: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Superadmin decision on a VERIFYING invoice"""
        now = now or utcnow()

        try:
            async with transaction(self.session):
                invoice = await self._get(invoice_id)
                if invoice.status != InvoiceStatus.VERIFYING:
                    logger.warning(
                        "Verify rejected on %s invoice %s (actor=%s)",
                        invoice.status.value,
                        invoice.invoice_number,
                        verified_by,
                        extra={"tenant_id": invoice.tenant_id, "invoice_id": invoice_id, "user_id": verified_by},
                    )
                    raise InvalidInvoiceStateError(
                        f"Invoice {invoice.invoice_number} is {invoice.status.value}, not VERIFYING",
                        details={"status": invoice.status.value},
                    )

                invoice.verified_by = verified_by
                invoice.verified_at = now
                if approve:
                    tenant = await self._locked_tenant(invoice.tenant_id)
                    await self._settle(invoice, tenant, verified_by, TransitionTrigger.BILLING, now)
                    event_type = AuditEventType.INVOICE_VERIFIED
                else:
                    self._move(invoice, InvoiceStatus.REJECTED, verified_by)
                    invoice.rejection_note = note
                    event_type = AuditEventType.INVOICE_REJECTED
                await self.session.flush()

                await AuditLogger(self.session).log_event(
                    event_type=event_type,
                    actor_id=verified_by,
                    tenant_id=invoice.tenant_id,
                    resource_type="invoice",
                    resource_id=invoice.id,
                    details={"invoice_number": invoice.invoice_number, "note": note},
                )
        except ConflictError as exc:
            raise InvalidInvoiceStateError(f"Invoice {invoice_id} was already processed") from exc
        return invoice

    async def force_mark_paid(self, invoice_id: str, actor_id: str, now: Optional[datetime] = None) -> Invoice:
        """Settle an unpaid invoice without proof (approved INVOICE_ACTION)"""
        now = now or utcnow()

        async with transaction(self.session):
            invoice = await self._get(invoice_id)
            if invoice.status not in FORCE_PAYABLE_STATUSES:
                raise InvalidInvoiceStateError(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value}",
                    details={"status": invoice.status.value},
                )
            tenant = await self._locked_tenant(invoice.tenant_id)
            invoice.verified_by = actor_id
            invoice.verified_at = now
            await self._settle(invoice, tenant, actor_id, TransitionTrigger.SUPERADMIN, now, force=True)
            await self.session.flush()

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.INVOICE_FORCE_PAID,
                actor_id=actor_id,
                tenant_id=invoice.tenant_id,
                resource_type="invoice",
                resource_id=invoice.id,
                details={"invoice_number": invoice.invoice_number},
            )
        return invoice

    async def _settle(
        self,
        invoice: Invoice,
        tenant: Tenant,
        actor_id: str,
        trigger: TransitionTrigger,
        now: datetime,
        force: bool = False,
    ) -> None:
        """Mark PAID, move the tenant onto the invoice's plan and activate it"""
        if force:
            invoice.status = InvoiceStatus.PAID
        else:
            self._move(invoice, InvoiceStatus.PAID, actor_id)

        length = (
            self.policy.yearly_period
            if invoice.billing_period == BillingPeriod.YEARLY
            else self.policy.monthly_period
        )
        start = now
        if (
            invoice.kind == InvoiceKind.RENEWAL
            and tenant.subscription_ends_at is not None
            and tenant.subscription_ends_at > now
        ):
            start = tenant.subscription_ends_at

        invoice.paid_at = now
        invoice.period_start = start
        invoice.period_end = start + length

        tenant.plan_tier = invoice.plan_tier
        tenant.billing_period = invoice.billing_period
        tenant.subscription_ends_at = invoice.period_end

        await self.subscriptions.activate(
            tenant, trigger=trigger, actor_id=actor_id, reference_id=invoice.id, now=now
        )

    # ==================== SCHEDULER HOOKS ====================

    async def mark_overdue(self, tenant_id: str, now: Optional[datetime] = None) -> List[Invoice]:
        """PENDING invoices past their due date become OVERDUE"""
        now = now or utcnow()
        async with transaction(self.session):
            overdue = await self.invoices.list_past_due(tenant_id, now)
            for invoice in overdue:
                self._move(invoice, InvoiceStatus.OVERDUE, None)
            await self.session.flush()
        return overdue

    async def issue_renewal(self, tenant: Tenant, now: Optional[datetime] = None) -> Optional[Invoice]:
        """Renewal invoice for an ACTIVE tenant whose paid period is about to end"""
        now = now or utcnow()
        if tenant.subscription_status != SubscriptionStatus.ACTIVE or tenant.subscription_ends_at is None:
            return None
        if tenant.subscription_ends_at - now > self.policy.renewal_lead:
            return None

        async with transaction(self.session):
            if await self.invoices.find_open(tenant.id) is not None:
                return None
            plan = await self.catalog.get_plan(tenant.plan_tier)
            period = BillingPeriod(tenant.billing_period or BillingPeriod.MONTHLY)
            if calculate_price(plan, period) <= 0:
                return None

            due_date = tenant.subscription_ends_at
            if due_date <= now:
                due_date = now + self.policy.invoice_due
            return await self.create_invoice(
                tenant.id, plan.tier, period, InvoiceKind.RENEWAL, now=now, due_date=due_date
            )

    # ==================== READ ====================

    async def list_invoices(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[InvoiceStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Invoice]:
        return await self.invoices.list_invoices(tenant_id=tenant_id, status=status, skip=skip, limit=limit)

    async def get_invoice(self, invoice_id: str, tenant_id: Optional[str] = None) -> Invoice:
        return await self._get(invoice_id, tenant_id)
