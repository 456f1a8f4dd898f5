# otohub_billing/db/models/approval.py
from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, Text

from otohub_billing.core.constants import ApprovalStatus, ApprovalType
from otohub_billing.db.base import BaseModel, new_id, utcnow


class ApprovalRequest(BaseModel):
    """Privileged action requested by staff, applied only after superadmin approval"""
    __tablename__ = "approval_requests"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    type = Column(Enum(ApprovalType, native_enum=False, length=30), nullable=False)
    status = Column(
        Enum(ApprovalStatus, native_enum=False, length=20, create_constraint=True),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Raw JSON of the typed payload, kept for audit
    payload = Column(Text, nullable=False)

    requested_by = Column(String(100), nullable=False)
    requested_at = Column(DateTime, default=utcnow, nullable=False)
    processed_by = Column(String(100), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    note = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
