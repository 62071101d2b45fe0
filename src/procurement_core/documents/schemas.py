"""Pydantic schemas for document endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from procurement_core.common.schemas import PaginatedResponse


class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_size: int = Field(..., ge=0)
    file_path: str = Field(..., min_length=1, max_length=1024)
    description: Optional[str] = None
    supplier_id: Optional[str] = None
    contract_id: Optional[str] = None
    payment_id: Optional[str] = None


class DocumentResponse(BaseModel):
    id: str
    name: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    description: Optional[str] = None
    supplier_id: Optional[str] = None
    contract_id: Optional[str] = None
    payment_id: Optional[str] = None
    uploaded_by_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class DocumentListResponse(PaginatedResponse):
    items: list[DocumentResponse]
