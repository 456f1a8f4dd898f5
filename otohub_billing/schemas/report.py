# otohub_billing/schemas/report.py
from pydantic import BaseModel
from typing import Dict, Optional


class BillingStats(BaseModel):
    total_tenants: int
    tenants_by_status: Dict[str, int]
    active_paid: int
    trial_tenants: int
    suspended_tenants: int
    pending_invoices: int
    invoices_awaiting_verification: int
    overdue_invoices: int
    mrr: int


class PlanDistributionEntry(BaseModel):
    plan: str
    name: Optional[str] = None
    count: int


class MonthlyRevenue(BaseModel):
    year: int
    month: int
    revenue: int
    invoices: int
