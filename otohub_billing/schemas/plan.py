# otohub_billing/schemas/plan.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class PlanBase(BaseModel):
    name: str
    description: Optional[str] = None
    price: int
    yearly_discount_percent: int
    max_vehicles: int
    max_users: int
    max_customers: int
    max_branches: int
    sort_order: int


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    yearly_discount_percent: Optional[int] = Field(None, ge=0, le=100)
    max_vehicles: Optional[int] = Field(None, ge=-1)
    max_users: Optional[int] = Field(None, ge=-1)
    max_customers: Optional[int] = Field(None, ge=-1)
    max_branches: Optional[int] = Field(None, ge=-1)
    sort_order: Optional[int] = None


class Plan(PlanBase):
    tier: str
    yearly_price: Optional[int] = None
    updated_at: datetime

    class Config:
        from_attributes = True
