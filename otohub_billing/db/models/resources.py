# otohub_billing/db/models/resources.py
"""
Tenant-owned resources counted by the quota enforcer.

The CRUD for these lives in other subsystems; only the columns the quota
recount needs are mapped here.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey

from otohub_billing.db.base import BaseModel, new_id


class Branch(BaseModel):
    __tablename__ = "branches"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Vehicle(BaseModel):
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    deleted_at = Column(DateTime, nullable=True)


class Customer(BaseModel):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    deleted_at = Column(DateTime, nullable=True)
