# otohub_billing/db/models/plan.py
from sqlalchemy import Column, String, Integer, Text, CheckConstraint

from otohub_billing.db.base import BaseModel


class Plan(BaseModel):
    """Subscription tier with price and resource quotas (-1 = unlimited)"""
    __tablename__ = "plans"
    __table_args__ = (
        CheckConstraint("price >= 0", name="plans_price_check"),
        CheckConstraint(
            "yearly_discount_percent >= 0 AND yearly_discount_percent <= 100",
            name="plans_yearly_discount_check",
        ),
    )

    tier = Column(String(20), primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing (IDR, monthly)
    price = Column(Integer, nullable=False, default=0)
    yearly_discount_percent = Column(Integer, nullable=False, default=0)

    # Quotas
    max_vehicles = Column(Integer, nullable=False, default=0)
    max_users = Column(Integer, nullable=False, default=0)
    max_customers = Column(Integer, nullable=False, default=0)
    max_branches = Column(Integer, nullable=False, default=0)

    sort_order = Column(Integer, nullable=False, default=0)
