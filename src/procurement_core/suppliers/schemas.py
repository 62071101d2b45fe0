"""Pydantic schemas for supplier and category endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from procurement_core.common.schemas import PaginatedResponse
from procurement_core.suppliers.models import SupplierStatus


class SupplierFields(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    legal_name: str = Field(..., min_length=1, max_length=255)
    tax_id: str = Field(..., min_length=1, max_length=50)
    registration_number: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = None
    country: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    phone_number: str = Field(..., min_length=1, max_length=50)
    website: Optional[str] = None
    bank_account_info: dict[str, Any] = {}
    contact_person_name: Optional[str] = None
    contact_person_email: Optional[EmailStr] = None
    contact_person_phone: Optional[str] = None


class SupplierCreate(SupplierFields):
    notes: Optional[str] = None
    category_ids: list[str] = []


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    legal_name: Optional[str] = None
    tax_id: Optional[str] = None
    registration_number: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    phone_number: Optional[str] = None
    website: Optional[str] = None
    status: Optional[SupplierStatus] = None
    notes: Optional[str] = None
    bank_account_info: Optional[dict[str, Any]] = None
    contact_person_name: Optional[str] = None
    contact_person_email: Optional[EmailStr] = None
    contact_person_phone: Optional[str] = None
    category_ids: Optional[list[str]] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class SupplierRating(BaseModel):
    financial_stability: Optional[int] = Field(None, ge=1, le=5)
    quality_rating: Optional[int] = Field(None, ge=1, le=5)
    delivery_rating: Optional[int] = Field(None, ge=1, le=5)
    communication_rating: Optional[int] = Field(None, ge=1, le=5)
    overall_rating: Optional[int] = Field(None, ge=1, le=5)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class SupplierResponse(BaseModel):
    id: str
    name: str
    legal_name: str
    tax_id: str
    registration_number: str
    email: str
    address: str
    city: str
    state: Optional[str] = None
    country: str
    postal_code: str
    phone_number: str
    website: Optional[str] = None
    status: str
    notes: Optional[str] = None
    financial_stability: Optional[int] = None
    quality_rating: Optional[int] = None
    delivery_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    overall_rating: Optional[int] = None
    contact_person_name: Optional[str] = None
    contact_person_email: Optional[str] = None
    contact_person_phone: Optional[str] = None
    created_by_id: Optional[str] = None
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    categories: list[CategoryResponse] = []

    model_config = {"from_attributes": True}


class SupplierListResponse(PaginatedResponse):
    items: list[SupplierResponse]
