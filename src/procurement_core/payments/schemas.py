"""Pydantic schemas for payment endpoints."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from procurement_core.common.schemas import PaginatedResponse
from procurement_core.payments.models import PaymentStatus


class PaymentCreate(BaseModel):
    supplier_id: str
    contract_id: Optional[str] = None
    amount: int = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    description: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    supplier_id: Optional[str] = None
    contract_id: Optional[str] = None
    amount: Optional[int] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    status: Optional[PaymentStatus] = None
    notes: Optional[str] = None


class MarkPaidRequest(BaseModel):
    payment_date: Optional[date] = None


class PaymentResponse(BaseModel):
    id: str
    supplier_id: str
    contract_id: Optional[str] = None
    amount: int
    currency: str
    description: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    requested_by_id: Optional[str] = None
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentListResponse(PaginatedResponse):
    items: list[PaymentResponse]
