# otohub_billing/services/lifecycle_scheduler.py
"""
Lifecycle scheduler.

One tick evaluates every live tenant in its own session and transaction
with the tenant row locked. Transitions are no-ops when already applied,
so overlapping ticks from several workers never double-apply anything.
A failing or slow tenant is logged and skipped; the next tick retries it.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from otohub_billing.core.config import BillingPolicy, settings
from otohub_billing.core.constants import InvoiceStatus, SubscriptionStatus, TransitionTrigger
from otohub_billing.db.base import utcnow
from otohub_billing.db.database import transaction
from otohub_billing.db.repositories.invoice_repository import InvoiceRepository
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.invoice_service import InvoiceService
from otohub_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

# Open invoices that still give an ACTIVE tenant time to pay
AWAITING_PAYMENT = (InvoiceStatus.PENDING, InvoiceStatus.VERIFYING)


@dataclass
class TickReport:
    started_at: datetime
    evaluated: int = 0
    transitions: List[Dict[str, str]] = field(default_factory=list)
    invoices_overdue: int = 0
    renewals_issued: int = 0
    purge_due: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)

    def merge(self, other: "TickReport") -> None:
        self.transitions.extend(other.transitions)
        self.invoices_overdue += other.invoices_overdue
        self.renewals_issued += other.renewals_issued
        self.purge_due.extend(other.purge_due)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class LifecycleScheduler:
    """Explicit batch operation; the Celery beat task and the superadmin endpoint both call run_tick"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        policy: Optional[BillingPolicy] = None,
        tenant_timeout: float = settings.SCHEDULER_TENANT_TIMEOUT_SECONDS,
    ):
        self.session_factory = session_factory
        self.policy = policy or BillingPolicy.from_settings()
        self.tenant_timeout = tenant_timeout

    async def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        now = now or utcnow()
        report = TickReport(started_at=now)

        async with self.session_factory() as session:
            tenant_ids = await TenantRepository(session).list_schedulable_ids()

        for tenant_id in tenant_ids:
            try:
                outcome = await asyncio.wait_for(self.evaluate_tenant(tenant_id, now), self.tenant_timeout)
                report.merge(outcome)
                report.evaluated += 1
            except asyncio.TimeoutError:
                report.timed_out.append(tenant_id)
                logger.error(
                    "Scheduler timed out after %.1fs, tenant retried next tick",
                    self.tenant_timeout,
                    extra={"tenant_id": tenant_id},
                )
            except Exception:
                report.failed.append(tenant_id)
                logger.exception("Scheduler evaluation failed", extra={"tenant_id": tenant_id})

        logger.info(
            "Scheduler tick done: %d evaluated, %d transitions, %d failed, %d timed out",
            report.evaluated,
            len(report.transitions),
            len(report.failed),
            len(report.timed_out),
        )
        return report

    async def evaluate_tenant(self, tenant_id: str, now: datetime) -> TickReport:
        """Apply every due time-based step for one tenant; the result counts only once committed"""
        report = TickReport(started_at=now)
        async with self.session_factory() as session:
            async with transaction(session):
                tenant = await TenantRepository(session).get_by_id(tenant_id, for_update=True)
                if tenant is None or tenant.purged_at is not None:
                    return report
                if tenant.subscription_status == SubscriptionStatus.CANCELLED:
                    return report

                invoices = InvoiceService(session, self.policy)
                subscriptions = SubscriptionService(session, self.policy)
                invoice_repo = InvoiceRepository(session)

                def record(changed: bool, from_status: SubscriptionStatus) -> None:
                    if changed:
                        report.transitions.append({
                            "tenant_id": tenant.id,
                            "from": from_status.value,
                            "to": tenant.subscription_status.value,
                        })

                overdue = await invoices.mark_overdue(tenant.id, now)
                report.invoices_overdue += len(overdue)

                if await invoices.issue_renewal(tenant, now) is not None:
                    report.renewals_issued += 1

                status = SubscriptionStatus(tenant.subscription_status)

                # Trial expiry
                if (
                    status == SubscriptionStatus.TRIAL
                    and tenant.trial_ends_at is not None
                    and tenant.trial_ends_at <= now
                    and not await invoice_repo.has_status(tenant.id, InvoiceStatus.PAID)
                ):
                    record(await subscriptions.mark_past_due(tenant, reason="Trial expired", now=now), status)

                # Current invoice overdue, or paid period over with nothing left to pay
                elif status == SubscriptionStatus.ACTIVE:
                    late = await invoice_repo.find_open(tenant.id, statuses=(InvoiceStatus.OVERDUE,))
                    if late is not None:
                        record(
                            await subscriptions.mark_past_due(
                                tenant,
                                reason=f"Invoice {late.invoice_number} overdue",
                                reference_id=late.id,
                                now=now,
                            ),
                            status,
                        )
                    elif (
                        (tenant.subscription_ends_at is None or tenant.subscription_ends_at <= now)
                        and await invoice_repo.find_open(tenant.id, statuses=AWAITING_PAYMENT) is None
                    ):
                        record(
                            await subscriptions.mark_past_due(
                                tenant,
                                reason="Paid period ended without a payable invoice",
                                now=now,
                            ),
                            status,
                        )

                # Grace period expiry
                elif (
                    status == SubscriptionStatus.PAST_DUE
                    and tenant.past_due_since is not None
                    and tenant.past_due_since + self.policy.grace_period <= now
                ):
                    record(
                        await subscriptions.apply_transition(
                            tenant,
                            SubscriptionStatus.SUSPENDED,
                            trigger=TransitionTrigger.SYSTEM,
                            reason="Grace period expired",
                            now=now,
                        ),
                        status,
                    )

                # Retention expiry: reported only, purge is a confirmed superadmin action
                elif (
                    status == SubscriptionStatus.SUSPENDED
                    and tenant.scheduled_deletion_at is not None
                    and tenant.scheduled_deletion_at <= now
                ):
                    report.purge_due.append(tenant.id)
                    logger.warning(
                        "Tenant past scheduled deletion %s, awaiting confirmed purge",
                        tenant.scheduled_deletion_at.isoformat(),
                        extra={"tenant_id": tenant.id},
                    )
        return report
