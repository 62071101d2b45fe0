"""Pydantic schemas for audit log responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from procurement_core.common.schemas import PaginatedResponse


class AuditLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(PaginatedResponse):
    items: list[AuditLogResponse]
