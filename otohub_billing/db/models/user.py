# otohub_billing/db/models/user.py
from sqlalchemy import Column, String, ForeignKey

from otohub_billing.core.constants import UserRole
from otohub_billing.db.base import BaseModel, new_id


class User(BaseModel):
    """Tenant staff account, counted against the plan's user quota"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.STAFF.value, nullable=False)
