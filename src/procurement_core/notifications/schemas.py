"""Pydantic schemas for the notification inbox."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from procurement_core.common.schemas import PaginatedResponse


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    is_read: bool
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(PaginatedResponse):
    items: list[NotificationResponse]


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int
