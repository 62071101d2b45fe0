"""Pydantic schemas for contract endpoints."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from procurement_core.common.schemas import PaginatedResponse
from procurement_core.contracts.models import ContractStatus


class ContractCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    supplier_id: str
    contract_number: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: date
    end_date: date
    value: int = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    terms: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None


class ContractUpdate(BaseModel):
    title: Optional[str] = None
    supplier_id: Optional[str] = None
    contract_number: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    value: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[ContractStatus] = None
    terms: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None


class ContractResponse(BaseModel):
    id: str
    title: str
    supplier_id: str
    contract_number: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    value: int
    currency: str
    status: str
    terms: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    created_by_id: Optional[str] = None
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    days_remaining: Optional[int] = None

    model_config = {"from_attributes": True}


class ContractListResponse(PaginatedResponse):
    items: list[ContractResponse]
