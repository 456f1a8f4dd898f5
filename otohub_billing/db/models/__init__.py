from otohub_billing.db.models.tenant import Tenant, TenantStatusHistory
from otohub_billing.db.models.plan import Plan
from otohub_billing.db.models.invoice import Invoice
from otohub_billing.db.models.approval import ApprovalRequest
from otohub_billing.db.models.payment_method import PaymentMethod
from otohub_billing.db.models.audit_log import AuditLog
from otohub_billing.db.models.user import User
from otohub_billing.db.models.resources import Branch, Vehicle, Customer

__all__ = [
    "Tenant",
    "TenantStatusHistory",
    "Plan",
    "Invoice",
    "ApprovalRequest",
    "PaymentMethod",
    "AuditLog",
    "User",
    "Branch",
    "Vehicle",
    "Customer",
]
