# otohub_billing/core/audit_log.py
"""
Audit trail for privileged billing actions.

Entries are written in the caller's session so they commit or roll back
together with the action they describe.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.db.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditEventType(str, Enum):
    INVOICE_CREATED = "invoice.created"
    INVOICE_RETARGETED = "invoice.retargeted"
    INVOICE_PROOF_UPLOADED = "invoice.proof_uploaded"
    INVOICE_VERIFIED = "invoice.verified"
    INVOICE_REJECTED = "invoice.rejected"
    INVOICE_FORCE_PAID = "invoice.force_paid"
    APPROVAL_REQUESTED = "approval.requested"
    APPROVAL_APPROVED = "approval.approved"
    APPROVAL_REJECTED = "approval.rejected"
    PLAN_UPDATED = "plan.updated"
    TENANT_CREATED = "tenant.created"
    TENANT_PLAN_CHANGED = "tenant.plan_changed"
    TENANT_SUBSCRIPTION_EXTENDED = "tenant.subscription_extended"
    TENANT_STATUS_CHANGED = "tenant.status_changed"
    TENANT_PURGED = "tenant.purged"
    PAYMENT_METHOD_CHANGED = "payment_method.changed"


class AuditLogger:
    """Writes AuditLog rows inside the current unit of work."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        *,
        event_type: AuditEventType,
        actor_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=event_type.value,
            actor_id=actor_id,
            tenant_id=tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        self.session.add(entry)
        await self.session.flush()

        logger.info(
            "Audit event %s on %s %s",
            event_type.value,
            resource_type,
            resource_id,
            extra={"tenant_id": tenant_id, "user_id": actor_id},
        )
        return entry
