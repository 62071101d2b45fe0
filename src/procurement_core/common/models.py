"""Declarative base and shared column mixins."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


def json_safe(value: Any) -> Any:
    """Convert a column value into something ``json.dumps`` accepts."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    return value


def to_snapshot(instance: Any) -> dict[str, Any]:
    """Column-by-column dict of a model instance, JSON-safe.

    Captures scalar columns only (no relationships). Keys are attribute names,
    so ``metadata_``-style aliases keep their Python spelling.
    """
    mapper = sa_inspect(instance).mapper
    return {
        attr.key: json_safe(getattr(instance, attr.key))
        for attr in mapper.column_attrs
    }
