# otohub_billing/services/payment_method_service.py
import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.audit_log import AuditEventType, AuditLogger
from otohub_billing.core.exceptions import NotFoundError, ValidationError
from otohub_billing.db.database import transaction
from otohub_billing.db.models.payment_method import PaymentMethod
from otohub_billing.db.repositories.payment_method_repository import PaymentMethodRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("provider", "account_name", "account_number", "instructions", "is_active", "sort_order")
REQUIRED_FIELDS = ("provider", "account_name", "account_number")


class PaymentMethodService:
    """Platform bank / e-wallet accounts shown to tenants for manual transfer"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.methods = PaymentMethodRepository(session)

    async def list_methods(self, active_only: bool = False) -> List[PaymentMethod]:
        return await self.methods.list_methods(active_only=active_only)

    async def get_method(self, method_id: str) -> PaymentMethod:
        method = await self.methods.get(method_id)
        if not method:
            raise NotFoundError(f"Payment method {method_id} not found")
        return method

    async def create_method(self, data: Dict[str, Any], actor_id: str) -> PaymentMethod:
        _validate(data, creating=True)
        async with transaction(self.session):
            method = await self.methods.create({k: v for k, v in data.items() if k in EDITABLE_FIELDS})
            await self._audit(method, "created", actor_id)
        return method

    async def update_method(self, method_id: str, changes: Dict[str, Any], actor_id: str) -> PaymentMethod:
        _validate(changes, creating=False)
        async with transaction(self.session):
            method = await self.get_method(method_id)
            for field, value in changes.items():
                setattr(method, field, value)
            await self.session.flush()
            await self._audit(method, "updated", actor_id)
        return method

    async def delete_method(self, method_id: str, actor_id: str) -> None:
        async with transaction(self.session):
            method = await self.get_method(method_id)
            await self._audit(method, "deleted", actor_id)
            await self.methods.delete(method)

    async def _audit(self, method: PaymentMethod, change: str, actor_id: str) -> None:
        await AuditLogger(self.session).log_event(
            event_type=AuditEventType.PAYMENT_METHOD_CHANGED,
            actor_id=actor_id,
            resource_type="payment_method",
            resource_id=method.id,
            details={"change": change, "provider": method.provider},
        )


def _validate(data: Dict[str, Any], creating: bool) -> None:
    unknown = set(data) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown payment method fields: {', '.join(sorted(unknown))}")
    for field in REQUIRED_FIELDS:
        if (creating or field in data) and not (data.get(field) or "").strip():
            raise ValidationError(f"{field} is required")
