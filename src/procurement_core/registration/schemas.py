"""Pydantic schemas for public supplier registration."""

from typing import Optional

from pydantic import BaseModel

from procurement_core.suppliers.schemas import SupplierFields, SupplierResponse


class SupplierRegistration(SupplierFields):
    category_ids: list[str] = []


class RegistrationResponse(BaseModel):
    success: bool
    message: str
    supplier: Optional[SupplierResponse] = None
