"""Shared Pydantic schemas for Procurement-Core."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "procurement-core"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: dict[str, Any] = Field(default_factory=dict)


class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    limit: int
    has_more: bool
