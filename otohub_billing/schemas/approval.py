# otohub_billing/schemas/approval.py
import json
from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from datetime import datetime

from otohub_billing.core.constants import ApprovalStatus, ApprovalType


class ApprovalCreate(BaseModel):
    type: ApprovalType
    payload: Dict[str, Any] = {}


class ApprovalDecision(BaseModel):
    status: ApprovalStatus
    note: Optional[str] = Field(None, max_length=1000)

    @validator("status")
    def must_be_final(cls, v):
        if v == ApprovalStatus.PENDING:
            raise ValueError("status must be APPROVED or REJECTED")
        return v


class ApprovalRequest(BaseModel):
    id: str
    tenant_id: str
    type: ApprovalType
    status: ApprovalStatus
    payload: Dict[str, Any]
    requested_by: str
    requested_at: datetime
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    note: Optional[str] = None

    @validator("payload", pre=True)
    def parse_stored_payload(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v

    class Config:
        from_attributes = True
