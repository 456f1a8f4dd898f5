# otohub_billing/api/v1/billing.py
"""Tenant-facing billing endpoints"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.api.dependencies import Actor, get_proof_storage, require_role
from otohub_billing.core.constants import (
    ApprovalStatus,
    BillingPeriod,
    InvoiceStatus,
    TransitionTrigger,
    UserRole,
)
from otohub_billing.db.database import get_db, transaction
from otohub_billing.schemas.approval import ApprovalCreate, ApprovalRequest as ApprovalSchema
from otohub_billing.schemas.invoice import Invoice as InvoiceSchema, SubscribeRequest
from otohub_billing.schemas.payment_method import PaymentMethod as PaymentMethodSchema
from otohub_billing.schemas.plan import Plan as PlanSchema
from otohub_billing.schemas.tenant import BillingProfile, Tenant as TenantSchema, TenantCancel
from otohub_billing.services.approval_service import ApprovalService
from otohub_billing.services.invoice_service import InvoiceService
from otohub_billing.services.payment_method_service import PaymentMethodService
from otohub_billing.services.plan_catalog import PlanCatalog, calculate_price
from otohub_billing.services.proof_storage import ProofStorage
from otohub_billing.services.subscription_service import SubscriptionService

router = APIRouter()


def plan_to_schema(plan) -> PlanSchema:
    return PlanSchema.model_validate(plan).model_copy(
        update={"yearly_price": calculate_price(plan, BillingPeriod.YEARLY)}
    )


@router.get("/plans", response_model=List[PlanSchema])
async def list_plans(
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    """Plan catalog with monthly and yearly prices"""
    plans = await PlanCatalog(db).list_plans()
    return [plan_to_schema(plan) for plan in plans]


@router.get("/profile", response_model=BillingProfile)
async def get_profile(
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    """Current tenant, plan and live usage"""
    profile = await SubscriptionService(db).get_profile(actor.tenant_id)
    return BillingProfile(
        tenant=TenantSchema.model_validate(profile.tenant),
        plan=plan_to_schema(profile.plan),
        usage=profile.usage,
        days_remaining=profile.days_remaining,
        open_invoice=InvoiceSchema.model_validate(profile.open_invoice) if profile.open_invoice else None,
        access_level=profile.access_level,
    )


@router.get("/invoices", response_model=List[InvoiceSchema])
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    skip: int = 0,
    limit: int = 50,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    return await InvoiceService(db).list_invoices(actor.tenant_id, status=status, skip=skip, limit=limit)


@router.get("/invoices/{invoice_id}", response_model=InvoiceSchema)
async def get_invoice(
    invoice_id: str,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    return await InvoiceService(db).get_invoice(invoice_id, actor.tenant_id)


@router.post("/subscribe", response_model=InvoiceSchema, status_code=201)
async def subscribe(
    request: SubscribeRequest,
    actor: Actor = Depends(require_role(UserRole.OWNER)),
    db: AsyncSession = Depends(get_db)
):
    """Create (or re-target) the invoice for the requested plan"""
    return await InvoiceService(db).subscribe(
        actor.tenant_id,
        request.plan_id,
        request.billing_period,
        actor_id=actor.user_id,
    )


@router.post("/invoices/{invoice_id}/payment-proof", response_model=InvoiceSchema)
async def upload_payment_proof(
    invoice_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    storage: ProofStorage = Depends(get_proof_storage),
):
    """Upload proof of transfer; the invoice moves to VERIFYING"""
    service = InvoiceService(db)
    # Ownership check commits before the file write; no transaction spans the I/O
    async with transaction(db):
        await service.get_invoice(invoice_id, actor.tenant_id)

    content = await file.read()
    proof_url = await storage.save(actor.tenant_id, invoice_id, content, file.content_type, file.filename)

    return await service.upload_proof(invoice_id, actor.tenant_id, proof_url, actor_id=actor.user_id)


@router.post("/cancel", response_model=TenantSchema)
async def cancel_subscription(
    request: TenantCancel,
    actor: Actor = Depends(require_role(UserRole.OWNER)),
    db: AsyncSession = Depends(get_db)
):
    return await SubscriptionService(db).cancel(
        actor.tenant_id,
        actor.user_id,
        reason=request.reason,
        trigger=TransitionTrigger.TENANT,
    )


@router.get("/payment-methods", response_model=List[PaymentMethodSchema])
async def list_payment_methods(
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentMethodService(db).list_methods(active_only=True)


@router.post("/approvals", response_model=ApprovalSchema, status_code=201)
async def request_approval(
    request: ApprovalCreate,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    """Ask a superadmin to apply a privileged action"""
    return await ApprovalService(db).request_approval(
        request.type,
        actor.tenant_id,
        request.payload,
        requested_by=actor.user_id,
    )


@router.get("/approvals", response_model=List[ApprovalSchema])
async def list_my_approvals(
    status: Optional[ApprovalStatus] = None,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db)
):
    return await ApprovalService(db).list_requests(status=status, tenant_id=actor.tenant_id)
