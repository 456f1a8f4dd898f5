# otohub_billing/db/models/payment_method.py
from sqlalchemy import Column, String, Integer, Boolean, Text

from otohub_billing.db.base import BaseModel, new_id


class PaymentMethod(BaseModel):
    """Platform bank / e-wallet account shown to tenants for manual transfer"""
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    provider = Column(String(100), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_number = Column(String(100), nullable=False)
    instructions = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
