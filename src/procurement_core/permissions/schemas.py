"""Pydantic schemas for permission administration."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from procurement_core.common.schemas import PaginatedResponse
from procurement_core.common.security import Role


class PermissionCreate(BaseModel):
    role: Role
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_granted: bool = True


class PermissionUpdate(BaseModel):
    description: Optional[str] = None
    is_granted: Optional[bool] = None


class PermissionResponse(BaseModel):
    id: str
    role: str
    resource: str
    action: str
    description: Optional[str] = None
    is_granted: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PermissionListResponse(PaginatedResponse):
    items: list[PermissionResponse]
