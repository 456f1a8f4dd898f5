# otohub_billing/services/subscription_service.py
"""
Tenant subscription state machine.

    TRIAL ──paid──> ACTIVE <──paid / reinstate── PAST_DUE, SUSPENDED
    TRIAL ──trial expired──> PAST_DUE
    ACTIVE ──invoice overdue──> PAST_DUE ──grace expired──> SUSPENDED
    TRIAL / ACTIVE / PAST_DUE ──cancel──> CANCELLED (terminal)
    TRIAL / ACTIVE / PAST_DUE ──manual suspension──> SUSPENDED
    SUSPENDED ──confirmed purge──> CANCELLED

Same-state requests are no-ops so at-least-once scheduler runs stay safe.
Each edge lists the triggers allowed to take it.

The status also decides what the rest of the product lets a tenant do:
PAST_DUE tenants can only read, SUSPENDED ones only reach billing, and
CANCELLED ones are blocked.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.audit_log import AuditEventType, AuditLogger
from otohub_billing.core.config import BillingPolicy
from otohub_billing.core.constants import (
    AccessLevel,
    PlanTier,
    SubscriptionStatus,
    TransitionTrigger,
)
from otohub_billing.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from otohub_billing.db.base import utcnow
from otohub_billing.db.database import transaction
from otohub_billing.db.models.tenant import Tenant, TenantStatusHistory
from otohub_billing.db.repositories.invoice_repository import InvoiceRepository
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.plan_catalog import PlanCatalog
from otohub_billing.services.quota_service import QuotaService

logger = logging.getLogger(__name__)

S = SubscriptionStatus
T = TransitionTrigger

TRANSITIONS: Dict[Tuple[SubscriptionStatus, SubscriptionStatus], FrozenSet[TransitionTrigger]] = {
    (S.TRIAL, S.ACTIVE): frozenset({T.BILLING, T.SUPERADMIN}),
    (S.TRIAL, S.PAST_DUE): frozenset({T.SYSTEM}),
    (S.ACTIVE, S.PAST_DUE): frozenset({T.SYSTEM}),
    (S.PAST_DUE, S.ACTIVE): frozenset({T.BILLING, T.SUPERADMIN}),
    (S.PAST_DUE, S.SUSPENDED): frozenset({T.SYSTEM, T.SUPERADMIN}),
    (S.SUSPENDED, S.ACTIVE): frozenset({T.BILLING, T.SUPERADMIN}),
    (S.TRIAL, S.SUSPENDED): frozenset({T.SUPERADMIN}),
    (S.ACTIVE, S.SUSPENDED): frozenset({T.SUPERADMIN}),
    (S.TRIAL, S.CANCELLED): frozenset({T.TENANT, T.SUPERADMIN}),
    (S.ACTIVE, S.CANCELLED): frozenset({T.TENANT, T.SUPERADMIN}),
    (S.PAST_DUE, S.CANCELLED): frozenset({T.TENANT, T.SUPERADMIN}),
    (S.SUSPENDED, S.CANCELLED): frozenset({T.PURGE}),
}

ACCESS_LEVELS: Dict[SubscriptionStatus, AccessLevel] = {
    S.TRIAL: AccessLevel.FULL,
    S.ACTIVE: AccessLevel.FULL,
    S.PAST_DUE: AccessLevel.READ_ONLY,
    S.SUSPENDED: AccessLevel.BILLING_ONLY,
    S.CANCELLED: AccessLevel.BLOCK,
}


def is_allowed(from_status: SubscriptionStatus, to_status: SubscriptionStatus,
               trigger: Optional[TransitionTrigger] = None) -> bool:
    triggers = TRANSITIONS.get((SubscriptionStatus(from_status), SubscriptionStatus(to_status)))
    if triggers is None:
        return False
    return trigger is None or TransitionTrigger(trigger) in triggers


def resolve_access(status: SubscriptionStatus) -> AccessLevel:
    return ACCESS_LEVELS.get(SubscriptionStatus(status), AccessLevel.BLOCK)


@dataclass
class TenantProfile:
    tenant: Tenant
    plan: Any
    usage: Dict[str, Dict[str, Any]]
    days_remaining: Optional[int]
    open_invoice: Any
    access_level: AccessLevel


class SubscriptionService:
    """Owns every write to Tenant.subscription_status"""

    def __init__(self, session: AsyncSession, policy: Optional[BillingPolicy] = None):
        self.session = session
        self.policy = policy or BillingPolicy.from_settings()
        self.tenants = TenantRepository(session)
        self.catalog = PlanCatalog(session)

    async def _get_tenant(self, tenant_id: str, for_update: bool = True) -> Tenant:
        tenant = await self.tenants.get_by_id(tenant_id, for_update=for_update)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    # ==================== LIFECYCLE ====================

    async def create_tenant(self, name: str, actor_id: Optional[str] = None,
                            now: Optional[datetime] = None) -> Tenant:
        """New dealership starts in TRIAL on the free tier"""
        if not name or not name.strip():
            raise ValidationError("Tenant name is required")
        now = now or utcnow()

        async with transaction(self.session):
            await self.catalog.get_plan(PlanTier.FREE.value)
            tenant = await self.tenants.create({
                "name": name.strip(),
                "plan_tier": PlanTier.FREE.value,
                "subscription_status": SubscriptionStatus.TRIAL,
                "trial_ends_at": now + self.policy.trial_length,
            })
            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.TENANT_CREATED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="tenant",
                resource_id=tenant.id,
                details={"trial_ends_at": tenant.trial_ends_at.isoformat()},
            )

        logger.info("Tenant %s created in TRIAL", tenant.id, extra={"tenant_id": tenant.id})
        return tenant

    async def transition(
        self,
        tenant_id: str,
        to_status: SubscriptionStatus,
        *,
        trigger: TransitionTrigger,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        reference_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tenant:
        async with transaction(self.session):
            tenant = await self._get_tenant(tenant_id)
            await self.apply_transition(
                tenant,
                to_status,
                trigger=trigger,
                actor_id=actor_id,
                reason=reason,
                reference_id=reference_id,
                now=now,
            )
        return tenant

    async def apply_transition(
        self,
        tenant: Tenant,
        to_status: SubscriptionStatus,
        *,
        trigger: TransitionTrigger,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        reference_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Move an already locked tenant; returns False when it was already there"""
        from_status = SubscriptionStatus(tenant.subscription_status)
        to_status = SubscriptionStatus(to_status)
        now = now or utcnow()

        if from_status == to_status:
            return False

        if not is_allowed(from_status, to_status, trigger):
            logger.warning(
                "Rejected transition %s -> %s (trigger=%s, actor=%s)",
                from_status.value,
                to_status.value,
                TransitionTrigger(trigger).value,
                actor_id,
                extra={"tenant_id": tenant.id, "user_id": actor_id},
            )
            raise InvalidTransitionError(
                f"Illegal subscription transition {from_status.value} -> {to_status.value}",
                details={"from": from_status.value, "to": to_status.value},
            )

        tenant.subscription_status = to_status
        if to_status == S.ACTIVE:
            tenant.past_due_since = None
            tenant.suspended_at = None
            tenant.scheduled_deletion_at = None
        elif to_status == S.PAST_DUE:
            tenant.past_due_since = now
        elif to_status == S.SUSPENDED:
            tenant.suspended_at = now
            tenant.scheduled_deletion_at = now + self.policy.retention_window
        elif to_status == S.CANCELLED:
            tenant.cancelled_at = now
            tenant.scheduled_deletion_at = None

        await self.tenants.add_history(TenantStatusHistory(
            tenant_id=tenant.id,
            old_status=from_status,
            new_status=to_status,
            triggered_by=trigger,
            actor_id=actor_id,
            reason=reason,
            reference_id=reference_id,
            occurred_at=now,
        ))

        logger.info(
            "Subscription transition %s -> %s (trigger=%s, actor=%s)",
            from_status.value,
            to_status.value,
            TransitionTrigger(trigger).value,
            actor_id,
            extra={"tenant_id": tenant.id, "user_id": actor_id},
        )
        return True

    async def activate(self, tenant: Tenant, *, trigger: TransitionTrigger = T.BILLING,
                       actor_id: Optional[str] = None, reference_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> bool:
        return await self.apply_transition(
            tenant, S.ACTIVE, trigger=trigger, actor_id=actor_id,
            reason="Invoice paid", reference_id=reference_id, now=now,
        )

    async def mark_past_due(self, tenant: Tenant, *, reason: str,
                            reference_id: Optional[str] = None,
                            now: Optional[datetime] = None) -> bool:
        return await self.apply_transition(
            tenant, S.PAST_DUE, trigger=T.SYSTEM, reason=reason,
            reference_id=reference_id, now=now,
        )

    # ==================== MANUAL ACTIONS ====================

    async def suspend(self, tenant_id: str, actor_id: str, reason: Optional[str] = None,
                      now: Optional[datetime] = None) -> Tenant:
        return await self._manual_transition(tenant_id, S.SUSPENDED, T.SUPERADMIN, actor_id, reason, now)

    async def reinstate(self, tenant_id: str, actor_id: str, reason: Optional[str] = None,
                        now: Optional[datetime] = None) -> Tenant:
        return await self._manual_transition(tenant_id, S.ACTIVE, T.SUPERADMIN, actor_id, reason, now)

    async def cancel(self, tenant_id: str, actor_id: str, reason: Optional[str] = None,
                     trigger: TransitionTrigger = T.TENANT, now: Optional[datetime] = None) -> Tenant:
        return await self._manual_transition(tenant_id, S.CANCELLED, trigger, actor_id, reason, now)

    async def _manual_transition(self, tenant_id, to_status, trigger, actor_id, reason, now) -> Tenant:
        async with transaction(self.session):
            tenant = await self._get_tenant(tenant_id)
            from_status = SubscriptionStatus(tenant.subscription_status)
            changed = await self.apply_transition(
                tenant, to_status, trigger=trigger, actor_id=actor_id, reason=reason, now=now
            )
            if changed:
                await AuditLogger(self.session).log_event(
                    event_type=AuditEventType.TENANT_STATUS_CHANGED,
                    actor_id=actor_id,
                    tenant_id=tenant.id,
                    resource_type="tenant",
                    resource_id=tenant.id,
                    details={"from": from_status.value, "to": to_status.value, "reason": reason},
                )
        return tenant

    async def change_plan(self, tenant_id: str, new_tier: str, actor_id: str) -> Tenant:
        """Apply a plan change without an invoice (approved staff request)"""
        async with transaction(self.session):
            tenant = await self._get_tenant(tenant_id)
            self._ensure_not_cancelled(tenant, actor_id)
            plan = await self.catalog.get_plan(new_tier)
            old_tier = tenant.plan_tier
            tenant.plan_tier = plan.tier
            await self.session.flush()

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.TENANT_PLAN_CHANGED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="tenant",
                resource_id=tenant.id,
                details={"from": old_tier, "to": plan.tier},
            )
        logger.info("Plan changed %s -> %s", old_tier, plan.tier, extra={"tenant_id": tenant_id})
        return tenant

    async def extend_subscription(self, tenant_id: str, months: int, actor_id: str,
                                  now: Optional[datetime] = None) -> Tenant:
        """Push subscription_ends_at forward and make sure the tenant is ACTIVE"""
        if months < 1:
            raise ValidationError("months must be at least 1")
        now = now or utcnow()

        async with transaction(self.session):
            tenant = await self._get_tenant(tenant_id)
            self._ensure_not_cancelled(tenant, actor_id)
            old_end = tenant.subscription_ends_at
            start = old_end if old_end and old_end > now else now
            tenant.subscription_ends_at = start + self.policy.monthly_period * months

            await self.apply_transition(
                tenant,
                S.ACTIVE,
                trigger=T.SUPERADMIN,
                actor_id=actor_id,
                reason=f"Subscription extended by {months} month(s)",
                now=now,
            )
            await self.session.flush()
            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.TENANT_SUBSCRIPTION_EXTENDED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="tenant",
                resource_id=tenant.id,
                details={
                    "months": months,
                    "old_end": old_end.isoformat() if old_end else None,
                    "new_end": tenant.subscription_ends_at.isoformat(),
                },
            )
        return tenant

    async def purge_tenant(self, tenant_id: str, actor_id: str, confirm: bool = False,
                           now: Optional[datetime] = None) -> Dict[str, int]:
        """Irreversibly delete a suspended tenant's operational data once its deletion date passed"""
        if not confirm:
            raise ValidationError("Tenant purge must be explicitly confirmed")
        now = now or utcnow()

        async with transaction(self.session):
            tenant = await self._get_tenant(tenant_id)
            if tenant.subscription_status != S.SUSPENDED:
                raise InvalidTransitionError(
                    f"Only SUSPENDED tenants can be purged (tenant is {tenant.subscription_status.value})"
                )
            if tenant.scheduled_deletion_at is None or tenant.scheduled_deletion_at > now:
                raise ValidationError(
                    "Tenant is not due for deletion yet",
                    details={"scheduled_deletion_at": tenant.scheduled_deletion_at.isoformat()
                             if tenant.scheduled_deletion_at else None},
                )

            removed = await self.tenants.purge_resources(tenant.id)
            await self.apply_transition(
                tenant, S.CANCELLED, trigger=T.PURGE, actor_id=actor_id,
                reason="Retention window expired", now=now,
            )
            tenant.purged_at = now
            await self.session.flush()

            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.TENANT_PURGED,
                actor_id=actor_id,
                tenant_id=tenant.id,
                resource_type="tenant",
                resource_id=tenant.id,
                details={"removed": removed},
            )

        logger.warning("Tenant purged by %s: %s", actor_id, removed, extra={"tenant_id": tenant_id})
        return removed

    # ==================== READ ====================

    async def get_tenant(self, tenant_id: str) -> Tenant:
        return await self._get_tenant(tenant_id, for_update=False)

    async def get_access(self, tenant_id: str) -> Tuple[SubscriptionStatus, AccessLevel]:
        tenant = await self._get_tenant(tenant_id, for_update=False)
        status = SubscriptionStatus(tenant.subscription_status)
        return status, resolve_access(status)

    async def get_profile(self, tenant_id: str, now: Optional[datetime] = None) -> TenantProfile:
        now = now or utcnow()
        tenant = await self._get_tenant(tenant_id, for_update=False)
        plan = await self.catalog.get_plan(tenant.plan_tier)
        usage = await QuotaService(self.session).get_usage(tenant_id)
        open_invoice = await InvoiceRepository(self.session).find_open(tenant_id)

        ends_at = tenant.trial_ends_at if tenant.subscription_status == S.TRIAL else tenant.subscription_ends_at
        days_remaining = None
        if ends_at:
            days_remaining = max(0, (ends_at - now).days)

        return TenantProfile(
            tenant=tenant,
            plan=plan,
            usage=usage,
            days_remaining=days_remaining,
            open_invoice=open_invoice,
            access_level=resolve_access(tenant.subscription_status),
        )

    def _ensure_not_cancelled(self, tenant: Tenant, actor_id: Optional[str]) -> None:
        if tenant.subscription_status == S.CANCELLED:
            logger.warning(
                "Rejected change on cancelled tenant (actor=%s)",
                actor_id,
                extra={"tenant_id": tenant.id, "user_id": actor_id},
            )
            raise InvalidTransitionError("Tenant subscription is cancelled")
