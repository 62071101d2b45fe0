"""Pydantic schemas for system settings."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from procurement_core.common.schemas import PaginatedResponse
from procurement_core.settings.models import SettingDataType


class SystemSettingCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: str
    description: Optional[str] = None
    data_type: SettingDataType = SettingDataType.STRING
    is_public: bool = False


class SystemSettingUpdate(BaseModel):
    value: Optional[str] = None
    description: Optional[str] = None
    data_type: Optional[SettingDataType] = None
    is_public: Optional[bool] = None


class SystemSettingResponse(BaseModel):
    id: str
    key: str
    value: str
    description: Optional[str] = None
    data_type: str
    is_public: bool
    updated_by_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SystemSettingListResponse(PaginatedResponse):
    items: list[SystemSettingResponse]


class InitializeSystemResponse(BaseModel):
    created: list[str]
