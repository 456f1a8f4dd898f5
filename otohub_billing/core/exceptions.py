# otohub_billing/core/exceptions.py
"""
Billing error taxonomy.

Every error carries the HTTP status it is surfaced with and a stable
machine-readable code. The API layer renders them through a single
exception handler registered in ``otohub_billing.main``.
"""
from typing import Any, Dict, Optional


class BillingError(Exception):
    status_code: int = 400
    error_code: str = "billing_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.error_code, "message": self.message}
        if self.details:
            payload.update(self.details)
        return payload


class ValidationError(BillingError):
    status_code = 400
    error_code = "validation_error"


class NotFoundError(BillingError):
    status_code = 404
    error_code = "not_found"


class PlanNotFoundError(NotFoundError):
    error_code = "plan_not_found"


class QuotaExceededError(BillingError):
    status_code = 403
    error_code = "quota_exceeded"


class InvalidTransitionError(BillingError):
    status_code = 409
    error_code = "invalid_transition"


class InvalidInvoiceStateError(BillingError):
    status_code = 409
    error_code = "invalid_invoice_state"


class AlreadyProcessedError(BillingError):
    status_code = 409
    error_code = "already_processed"


class ConflictError(BillingError):
    status_code = 409
    error_code = "conflict"


class ApprovalExecutionError(BillingError):
    status_code = 500
    error_code = "approval_execution_failed"


class SubscriptionAccessError(BillingError):
    status_code = 403
    error_code = "subscription_access_denied"
