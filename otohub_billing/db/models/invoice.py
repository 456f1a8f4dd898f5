# otohub_billing/db/models/invoice.py
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Enum,
    ForeignKey,
    Text,
    UniqueConstraint,
)

from otohub_billing.core.constants import BillingPeriod, InvoiceKind, InvoiceStatus
from otohub_billing.db.base import BaseModel, new_id


class Invoice(BaseModel):
    """
    Billable record for one subscription period.

    Financial record: rows are never deleted. Status moves forward only,
    except REJECTED -> PENDING when the tenant re-targets the invoice.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence", name="invoices_tenant_sequence_key"),
        UniqueConstraint("tenant_id", "invoice_number", name="invoices_tenant_number_key"),
    )

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)

    sequence = Column(Integer, nullable=False)
    invoice_number = Column(String(40), nullable=False)
    kind = Column(Enum(InvoiceKind, native_enum=False, length=20), nullable=False)

    # What is being bought
    plan_tier = Column(String(20), nullable=False)
    billing_period = Column(Enum(BillingPeriod, native_enum=False, length=10), nullable=False)
    amount = Column(Integer, nullable=False)

    status = Column(
        Enum(InvoiceStatus, native_enum=False, length=20, create_constraint=True),
        default=InvoiceStatus.PENDING,
        nullable=False,
        index=True,
    )
    due_date = Column(DateTime, nullable=False)

    # Payment proof workflow
    payment_proof_url = Column(String(500), nullable=True)
    proof_uploaded_at = Column(DateTime, nullable=True)
    verified_by = Column(String(100), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    rejection_note = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Billing period covered once paid
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
