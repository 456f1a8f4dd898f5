# otohub_billing/services/approval_service.py
"""
Approval queue for privileged actions requested by tenant staff.

Payloads are typed per approval type and stored as raw JSON for audit. On
approval the handler runs inside the same transaction that marks the
request APPROVED, so the action is applied at most once.
"""
import json
import logging
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.audit_log import AuditEventType, AuditLogger
from otohub_billing.core.config import BillingPolicy
from otohub_billing.core.constants import ApprovalStatus, ApprovalType
from otohub_billing.core.exceptions import (
    AlreadyProcessedError,
    ApprovalExecutionError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from otohub_billing.db.base import utcnow
from otohub_billing.db.database import transaction
from otohub_billing.db.models.approval import ApprovalRequest
from otohub_billing.db.repositories.approval_repository import ApprovalRepository
from otohub_billing.db.repositories.tenant_repository import TenantRepository
from otohub_billing.services.invoice_service import InvoiceService
from otohub_billing.services.plan_catalog import PlanCatalog
from otohub_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class PlanChangePayload(BaseModel):
    type: Literal["PLAN_CHANGE"] = "PLAN_CHANGE"
    new_tier: str = Field(..., alias="newTier", min_length=1)

    class Config:
        populate_by_name = True


class BillingExtendPayload(BaseModel):
    type: Literal["BILLING_EXTEND"] = "BILLING_EXTEND"
    months: int = Field(..., ge=1, le=24)


class InvoiceActionPayload(BaseModel):
    type: Literal["INVOICE_ACTION"] = "INVOICE_ACTION"
    invoice_id: str = Field(..., alias="invoiceId", min_length=1)
    action: Literal["MARK_PAID"] = "MARK_PAID"

    class Config:
        populate_by_name = True


class TenantSuspendPayload(BaseModel):
    type: Literal["TENANT_SUSPEND"] = "TENANT_SUSPEND"
    reason: str = Field(..., min_length=1, max_length=500)


ApprovalPayload = Annotated[
    Union[PlanChangePayload, BillingExtendPayload, InvoiceActionPayload, TenantSuspendPayload],
    Field(discriminator="type"),
]

_payload_adapter = TypeAdapter(ApprovalPayload)


def parse_payload(approval_type: ApprovalType, payload: Dict[str, Any]):
    """Validate a raw payload against the model for its approval type"""
    data = dict(payload or {})
    data["type"] = ApprovalType(approval_type).value
    try:
        return _payload_adapter.validate_python(data)
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        raise ValidationError(
            f"Invalid {data['type']} payload",
            details={"errors": errors},
        ) from exc


class ApprovalService:
    def __init__(self, session: AsyncSession, policy: Optional[BillingPolicy] = None):
        self.session = session
        self.policy = policy or BillingPolicy.from_settings()
        self.requests = ApprovalRepository(session)
        self.tenants = TenantRepository(session)

    async def request_approval(
        self,
        approval_type: ApprovalType,
        tenant_id: str,
        payload: Dict[str, Any],
        requested_by: str,
        now: Optional[datetime] = None,
    ) -> ApprovalRequest:
        try:
            approval_type = ApprovalType(approval_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown approval type: {approval_type}") from exc
        action = parse_payload(approval_type, payload)
        now = now or utcnow()

        async with transaction(self.session):
            if await self.tenants.get_by_id(tenant_id) is None:
                raise NotFoundError(f"Tenant {tenant_id} not found")
            if isinstance(action, PlanChangePayload):
                await PlanCatalog(self.session).get_plan(action.new_tier)

            request = await self.requests.create({
                "tenant_id": tenant_id,
                "type": approval_type,
                "status": ApprovalStatus.PENDING,
                "payload": action.model_dump_json(),
                "requested_by": requested_by,
                "requested_at": now,
            })
            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.APPROVAL_REQUESTED,
                actor_id=requested_by,
                tenant_id=tenant_id,
                resource_type="approval",
                resource_id=request.id,
                details={"type": approval_type.value, "payload": action.model_dump()},
            )

        logger.info(
            "Approval %s requested by %s",
            approval_type.value,
            requested_by,
            extra={"tenant_id": tenant_id, "user_id": requested_by, "approval_id": request.id},
        )
        return request

    async def list_requests(
        self,
        status: Optional[ApprovalStatus] = None,
        tenant_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ApprovalRequest]:
        return await self.requests.list_requests(status=status, tenant_id=tenant_id, skip=skip, limit=limit)

    async def get_request(self, request_id: str) -> ApprovalRequest:
        request = await self.requests.get(request_id)
        if not request:
            raise NotFoundError(f"Approval request {request_id} not found")
        return request

    async def decide(
        self,
        request_id: str,
        approve: bool,
        decided_by: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ApprovalRequest:
        """Approve (and execute) or reject a PENDING request, exactly once"""
        now = now or utcnow()

        try:
            async with transaction(self.session):
                request = await self.get_request(request_id)
                if request.status != ApprovalStatus.PENDING:
                    logger.warning(
                        "Approval %s already %s, decision by %s ignored",
                        request.id,
                        request.status.value,
                        decided_by,
                        extra={"tenant_id": request.tenant_id, "user_id": decided_by, "approval_id": request.id},
                    )
                    raise AlreadyProcessedError(
                        f"Approval request {request.id} was already {request.status.value}",
                        details={"status": request.status.value},
                    )

                request.status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
                request.processed_by = decided_by
                request.processed_at = now
                request.note = note
                await self.session.flush()

                if approve:
                    await self._execute(request, decided_by, now)

                await AuditLogger(self.session).log_event(
                    event_type=AuditEventType.APPROVAL_APPROVED if approve else AuditEventType.APPROVAL_REJECTED,
                    actor_id=decided_by,
                    tenant_id=request.tenant_id,
                    resource_type="approval",
                    resource_id=request.id,
                    details={"type": request.type.value, "note": note},
                )
        except ConflictError as exc:
            raise AlreadyProcessedError(f"Approval request {request_id} was already processed") from exc

        logger.info(
            "Approval %s %s by %s",
            request.type.value,
            request.status.value,
            decided_by,
            extra={"tenant_id": request.tenant_id, "user_id": decided_by, "approval_id": request.id},
        )
        return request

    async def _execute(self, request: ApprovalRequest, actor_id: str, now: datetime) -> None:
        action = parse_payload(request.type, json.loads(request.payload))
        try:
            await self._apply(request.tenant_id, action, actor_id, now)
        except Exception as exc:
            logger.exception(
                "Approved %s could not be applied",
                request.type.value,
                extra={"tenant_id": request.tenant_id, "user_id": actor_id, "approval_id": request.id},
            )
            raise ApprovalExecutionError(
                f"Approved {request.type.value} could not be applied: {exc}",
                details={"approval_id": request.id},
            ) from exc

    async def _apply(self, tenant_id: str, action, actor_id: str, now: datetime) -> None:
        subscriptions = SubscriptionService(self.session, self.policy)

        if isinstance(action, PlanChangePayload):
            await subscriptions.change_plan(tenant_id, action.new_tier, actor_id)
        elif isinstance(action, BillingExtendPayload):
            await subscriptions.extend_subscription(tenant_id, action.months, actor_id, now=now)
        elif isinstance(action, InvoiceActionPayload):
            invoices = InvoiceService(self.session, self.policy)
            await invoices.get_invoice(action.invoice_id, tenant_id)
            await invoices.force_mark_paid(action.invoice_id, actor_id, now=now)
        elif isinstance(action, TenantSuspendPayload):
            await subscriptions.suspend(tenant_id, actor_id, reason=action.reason, now=now)
        else:
            raise TypeError(f"No handler for {type(action).__name__}")
