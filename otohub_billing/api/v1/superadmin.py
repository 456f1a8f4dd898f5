# otohub_billing/api/v1/superadmin.py
"""Platform superadmin endpoints"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otohub_billing.api.dependencies import Actor, require_superadmin
from otohub_billing.api.v1.billing import plan_to_schema
from otohub_billing.core.constants import ApprovalStatus, InvoiceStatus, TransitionTrigger
from otohub_billing.db.database import get_db, get_session_factory
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.schemas.approval import ApprovalDecision, ApprovalRequest as ApprovalSchema
from otohub_billing.schemas.invoice import Invoice as InvoiceSchema, InvoiceVerify, VerifyAction
from otohub_billing.schemas.payment_method import (
    PaymentMethod as PaymentMethodSchema,
    PaymentMethodCreate,
    PaymentMethodUpdate,
)
from otohub_billing.schemas.plan import Plan as PlanSchema, PlanUpdate
from otohub_billing.schemas.report import BillingStats, MonthlyRevenue, PlanDistributionEntry
from otohub_billing.schemas.tenant import (
    PurgeResult,
    SchedulerReport,
    StatusHistory,
    Tenant as TenantSchema,
    TenantAction,
    TenantCreate,
    TenantDetail,
    TenantPurge,
    TenantUpdate,
)
from otohub_billing.services.approval_service import ApprovalService
from otohub_billing.services.billing_report_service import MAX_REVENUE_MONTHS, BillingReportService
from otohub_billing.services.invoice_service import InvoiceService
from otohub_billing.services.lifecycle_scheduler import LifecycleScheduler
from otohub_billing.services.payment_method_service import PaymentMethodService
from otohub_billing.services.plan_catalog import PlanCatalog
from otohub_billing.services.subscription_service import SubscriptionService

router = APIRouter()


# ==================== INVOICES ====================

@router.get("/invoices", response_model=List[InvoiceSchema])
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    tenant_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await InvoiceService(db).list_invoices(tenant_id, status=status, skip=skip, limit=limit)


@router.patch("/invoices/{invoice_id}/verify", response_model=InvoiceSchema)
async def verify_invoice(
    invoice_id: str,
    request: InvoiceVerify,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Approve or reject an uploaded payment proof"""
    return await InvoiceService(db).verify(
        invoice_id,
        approve=request.action == VerifyAction.VERIFY,
        verified_by=actor.user_id,
        note=request.note,
    )


# ==================== APPROVALS ====================

@router.get("/approvals", response_model=List[ApprovalSchema])
async def list_approvals(
    status: Optional[ApprovalStatus] = None,
    tenant_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await ApprovalService(db).list_requests(status=status, tenant_id=tenant_id, skip=skip, limit=limit)


@router.patch("/approvals/{request_id}", response_model=ApprovalSchema)
async def decide_approval(
    request_id: str,
    decision: ApprovalDecision,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await ApprovalService(db).decide(
        request_id,
        approve=decision.status == ApprovalStatus.APPROVED,
        decided_by=actor.user_id,
        note=decision.note,
    )


# ==================== PLANS ====================

@router.get("/plans", response_model=List[PlanSchema])
async def list_plans(
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return [plan_to_schema(plan) for plan in await PlanCatalog(db).list_plans()]


@router.patch("/plans/{tier}", response_model=PlanSchema)
async def update_plan(
    tier: str,
    changes: PlanUpdate,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Edit pricing and quotas of a tier"""
    plan = await PlanCatalog(db).update_plan(
        tier.upper(),
        changes.model_dump(exclude_unset=True),
        actor_id=actor.user_id,
    )
    return plan_to_schema(plan)


# ==================== TENANTS ====================

@router.post("/tenants", response_model=TenantSchema, status_code=201)
async def create_tenant(
    request: TenantCreate,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await SubscriptionService(db).create_tenant(request.name, actor_id=actor.user_id)


@router.get("/tenants/{tenant_id}", response_model=TenantDetail)
async def get_tenant(
    tenant_id: str,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    tenant = await SubscriptionService(db).get_tenant(tenant_id)
    history = await TenantRepository(db).get_history(tenant_id)
    return TenantDetail(
        **TenantSchema.model_validate(tenant).model_dump(),
        history=[StatusHistory.model_validate(entry) for entry in history],
    )


@router.patch("/tenants/{tenant_id}", response_model=TenantSchema)
async def update_tenant(
    tenant_id: str,
    request: TenantUpdate,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Manual suspend / reinstate / cancel"""
    service = SubscriptionService(db)
    if request.action == TenantAction.SUSPEND:
        return await service.suspend(tenant_id, actor.user_id, reason=request.reason)
    if request.action == TenantAction.REINSTATE:
        return await service.reinstate(tenant_id, actor.user_id, reason=request.reason)
    return await service.cancel(
        tenant_id, actor.user_id, reason=request.reason, trigger=TransitionTrigger.SUPERADMIN
    )


@router.post("/tenants/{tenant_id}/purge", response_model=PurgeResult)
async def purge_tenant(
    tenant_id: str,
    request: TenantPurge,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Irreversible; only for SUSPENDED tenants past their deletion date"""
    removed = await SubscriptionService(db).purge_tenant(tenant_id, actor.user_id, confirm=request.confirm)
    return PurgeResult(tenant_id=tenant_id, removed=removed)


# ==================== REPORTS ====================

@router.get("/billing/stats", response_model=BillingStats)
async def get_billing_stats(
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Tenant counts, open invoices and MRR"""
    return await BillingReportService(db).get_billing_stats()


@router.get("/analytics/plan-distribution", response_model=List[PlanDistributionEntry])
async def get_plan_distribution(
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await BillingReportService(db).get_plan_distribution()


@router.get("/analytics/revenue", response_model=List[MonthlyRevenue])
async def get_monthly_revenue(
    months: int = Query(6, ge=1, le=MAX_REVENUE_MONTHS),
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    """Paid invoice revenue per calendar month, current month last"""
    return await BillingReportService(db).get_monthly_revenue(months)


# ==================== SCHEDULER ====================

@router.post("/scheduler/run", response_model=SchedulerReport)
async def run_scheduler(
    actor: Actor = Depends(require_superadmin),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Run one lifecycle tick now"""
    report = await LifecycleScheduler(session_factory).run_tick()
    return SchedulerReport(**report.to_dict())


# ==================== PAYMENT METHODS ====================

@router.get("/payment-methods", response_model=List[PaymentMethodSchema])
async def list_payment_methods(
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentMethodService(db).list_methods()


@router.post("/payment-methods", response_model=PaymentMethodSchema, status_code=201)
async def create_payment_method(
    request: PaymentMethodCreate,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentMethodService(db).create_method(request.model_dump(), actor_id=actor.user_id)


@router.patch("/payment-methods/{method_id}", response_model=PaymentMethodSchema)
async def update_payment_method(
    method_id: str,
    request: PaymentMethodUpdate,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentMethodService(db).update_method(
        method_id, request.model_dump(exclude_unset=True), actor_id=actor.user_id
    )


@router.delete("/payment-methods/{method_id}", status_code=204)
async def delete_payment_method(
    method_id: str,
    actor: Actor = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db)
):
    await PaymentMethodService(db).delete_method(method_id, actor_id=actor.user_id)
    return Response(status_code=204)
