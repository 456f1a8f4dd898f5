# otohub_billing/schemas/invoice.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from otohub_billing.core.constants import BillingPeriod, InvoiceKind, InvoiceStatus


class VerifyAction(str, Enum):
    VERIFY = "VERIFY"
    REJECT = "REJECT"


class SubscribeRequest(BaseModel):
    plan_id: str = Field(..., alias="planId", min_length=1)
    billing_period: BillingPeriod = Field(BillingPeriod.MONTHLY, alias="billingPeriod")

    class Config:
        populate_by_name = True


class InvoiceVerify(BaseModel):
    action: VerifyAction
    note: Optional[str] = Field(None, max_length=1000)


class Invoice(BaseModel):
    id: str
    tenant_id: str
    invoice_number: str
    kind: InvoiceKind
    plan_tier: str
    billing_period: BillingPeriod
    amount: int
    status: InvoiceStatus
    due_date: datetime
    payment_proof_url: Optional[str] = None
    proof_uploaded_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    rejection_note: Optional[str] = None
    paid_at: Optional[datetime] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
