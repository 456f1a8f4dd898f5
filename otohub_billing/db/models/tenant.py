# otohub_billing/db/models/tenant.py
from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, Text

from otohub_billing.core.constants import (
    BillingPeriod,
    PlanTier,
    SubscriptionStatus,
    TransitionTrigger,
)
from otohub_billing.db.base import BaseModel, new_id, utcnow


class Tenant(BaseModel):
    """A dealership account: the unit of subscription and quota isolation"""
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    name = Column(String(255), nullable=False)

    # Subscription
    plan_tier = Column(String(20), default=PlanTier.FREE.value, nullable=False, index=True)
    subscription_status = Column(
        Enum(SubscriptionStatus, native_enum=False, length=20, create_constraint=True),
        default=SubscriptionStatus.TRIAL,
        nullable=False,
        index=True,
    )
    billing_period = Column(Enum(BillingPeriod, native_enum=False, length=10), nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)

    # Dunning / retention
    past_due_since = Column(DateTime, nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    scheduled_deletion_at = Column(DateTime, nullable=True, index=True)
    cancelled_at = Column(DateTime, nullable=True)
    purged_at = Column(DateTime, nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class TenantStatusHistory(BaseModel):
    """One row per applied subscription status transition"""
    __tablename__ = "tenant_status_history"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    old_status = Column(Enum(SubscriptionStatus, native_enum=False, length=20), nullable=False)
    new_status = Column(Enum(SubscriptionStatus, native_enum=False, length=20), nullable=False)
    triggered_by = Column(Enum(TransitionTrigger, native_enum=False, length=20), nullable=False)
    actor_id = Column(String(100), nullable=True)
    reason = Column(Text, nullable=True)
    reference_id = Column(String(36), nullable=True)
    occurred_at = Column(DateTime, default=utcnow, nullable=False)
