# otohub_billing/schemas/tenant.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from otohub_billing.core.constants import AccessLevel, BillingPeriod, SubscriptionStatus, TransitionTrigger
from otohub_billing.schemas.invoice import Invoice
from otohub_billing.schemas.plan import Plan


class TenantAction(str, Enum):
    SUSPEND = "SUSPEND"
    REINSTATE = "REINSTATE"
    CANCEL = "CANCEL"


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TenantUpdate(BaseModel):
    action: TenantAction
    reason: Optional[str] = Field(None, max_length=500)


class TenantPurge(BaseModel):
    confirm: bool = False


class TenantCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class Tenant(BaseModel):
    id: str
    name: str
    plan_tier: str
    subscription_status: SubscriptionStatus
    billing_period: Optional[BillingPeriod] = None
    trial_ends_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None
    past_due_since: Optional[datetime] = None
    suspended_at: Optional[datetime] = None
    scheduled_deletion_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    purged_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StatusHistory(BaseModel):
    old_status: SubscriptionStatus
    new_status: SubscriptionStatus
    triggered_by: TransitionTrigger
    actor_id: Optional[str] = None
    reason: Optional[str] = None
    reference_id: Optional[str] = None
    occurred_at: datetime

    class Config:
        from_attributes = True


class TenantDetail(Tenant):
    history: List[StatusHistory] = []


class UsageEntry(BaseModel):
    used: int
    limit: int
    remaining: Optional[int] = None


class BillingProfile(BaseModel):
    tenant: Tenant
    plan: Plan
    usage: Dict[str, UsageEntry]
    days_remaining: Optional[int] = None
    open_invoice: Optional[Invoice] = None
    access_level: AccessLevel = AccessLevel.FULL

    class Config:
        from_attributes = True


class PurgeResult(BaseModel):
    tenant_id: str
    removed: Dict[str, int]


class SchedulerReport(BaseModel):
    started_at: datetime
    evaluated: int
    transitions: List[Dict[str, str]]
    invoices_overdue: int
    renewals_issued: int
    purge_due: List[str]
    failed: List[str]
    timed_out: List[str]

    class Config:
        from_attributes = True


class Message(BaseModel):
    message: str
    details: Optional[Dict[str, Any]] = None
