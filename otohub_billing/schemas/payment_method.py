# otohub_billing/schemas/payment_method.py
from pydantic import BaseModel, Field
from typing import Optional


class PaymentMethodBase(BaseModel):
    provider: str = Field(..., min_length=1, max_length=100)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_number: str = Field(..., min_length=1, max_length=100)
    instructions: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class PaymentMethodCreate(PaymentMethodBase):
    pass


class PaymentMethodUpdate(BaseModel):
    provider: Optional[str] = Field(None, min_length=1, max_length=100)
    account_name: Optional[str] = Field(None, min_length=1, max_length=255)
    account_number: Optional[str] = Field(None, min_length=1, max_length=100)
    instructions: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PaymentMethod(PaymentMethodBase):
    id: str

    class Config:
        from_attributes = True
