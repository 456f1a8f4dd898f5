# otohub_billing/core/constants.py
from enum import Enum
from typing import Dict, Any, List


class PlanTier(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"
    UNLIMITED = "UNLIMITED"


# Upgrade order, lowest first
PLAN_TIER_ORDER: List[str] = [
    PlanTier.FREE.value,
    PlanTier.BASIC.value,
    PlanTier.PRO.value,
    PlanTier.UNLIMITED.value,
]


class BillingPeriod(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class SubscriptionStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class AccessLevel(str, Enum):
    FULL = "FULL"
    READ_ONLY = "READ_ONLY"
    BILLING_ONLY = "BILLING_ONLY"
    BLOCK = "BLOCK"


# Route prefixes a tenant can always reach so it can still pay
BILLING_PATHS = ("/billing", "/invoice")


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    VERIFYING = "VERIFYING"
    PAID = "PAID"
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"


# Invoices a tenant still has to settle
OPEN_INVOICE_STATUSES = (
    InvoiceStatus.PENDING,
    InvoiceStatus.VERIFYING,
    InvoiceStatus.REJECTED,
    InvoiceStatus.OVERDUE,
)


class InvoiceKind(str, Enum):
    SUBSCRIBE = "SUBSCRIBE"
    RENEWAL = "RENEWAL"


class ApprovalType(str, Enum):
    PLAN_CHANGE = "PLAN_CHANGE"
    BILLING_EXTEND = "BILLING_EXTEND"
    INVOICE_ACTION = "INVOICE_ACTION"
    TENANT_SUSPEND = "TENANT_SUSPEND"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ResourceType(str, Enum):
    VEHICLES = "vehicles"
    USERS = "users"
    CUSTOMERS = "customers"
    BRANCHES = "branches"


class UserRole(str, Enum):
    STAFF = "STAFF"
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    SUPERADMIN = "SUPERADMIN"


# Tenant-side roles, lowest authority first
TENANT_ROLE_HIERARCHY: List[str] = [
    UserRole.STAFF.value,
    UserRole.ADMIN.value,
    UserRole.OWNER.value,
]


class TransitionTrigger(str, Enum):
    SYSTEM = "SYSTEM"
    BILLING = "BILLING"
    TENANT = "TENANT"
    SUPERADMIN = "SUPERADMIN"
    PURGE = "PURGE"


UNLIMITED = -1

# Plan catalog seed data (IDR, monthly price)
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    PlanTier.FREE: {
        "name": "Demo",
        "description": "Free 14-day trial to explore all features",
        "price": 0,
        "yearly_discount_percent": 0,
        "max_vehicles": 5,
        "max_users": 1,
        "max_customers": 20,
        "max_branches": 1,
        "sort_order": 0,
    },
    PlanTier.BASIC: {
        "name": "Basic",
        "description": "Perfect for small dealerships just getting started",
        "price": 299000,
        "yearly_discount_percent": 10,
        "max_vehicles": 50,
        "max_users": 3,
        "max_customers": 200,
        "max_branches": 1,
        "sort_order": 1,
    },
    PlanTier.PRO: {
        "name": "Pro",
        "description": "Best for growing dealerships with multiple staff",
        "price": 599000,
        "yearly_discount_percent": 15,
        "max_vehicles": 200,
        "max_users": 10,
        "max_customers": 1000,
        "max_branches": 3,
        "sort_order": 2,
    },
    PlanTier.UNLIMITED: {
        "name": "Unlimited",
        "description": "For dealer groups running several branches",
        "price": 1499000,
        "yearly_discount_percent": 20,
        "max_vehicles": UNLIMITED,
        "max_users": UNLIMITED,
        "max_customers": UNLIMITED,
        "max_branches": UNLIMITED,
        "sort_order": 3,
    },
}
