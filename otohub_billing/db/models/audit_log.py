# otohub_billing/db/models/audit_log.py
from sqlalchemy import Column, String, JSON

from otohub_billing.db.base import BaseModel, new_id


class AuditLog(BaseModel):
    """Audit log for privileged billing actions"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), nullable=True, index=True)
    actor_id = Column(String(100), nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)  # invoice.verified, approval.approved, ...
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(100), nullable=True)

    # Additional details
    details = Column(JSON, default=dict)
