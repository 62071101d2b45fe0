"""SQLAlchemy model for per-user notifications."""

import enum

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from procurement_core.common.models import Base, TimestampMixin, generate_uuid


class NotificationType(str, enum.Enum):
    SUPPLIER_CREATED = "SUPPLIER_CREATED"
    SUPPLIER_APPROVED = "SUPPLIER_APPROVED"
    SUPPLIER_REJECTED = "SUPPLIER_REJECTED"
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_APPROVED = "CONTRACT_APPROVED"
    CONTRACT_REJECTED = "CONTRACT_REJECTED"
    CONTRACT_EXPIRING = "CONTRACT_EXPIRING"
    PAYMENT_REQUESTED = "PAYMENT_REQUESTED"
    PAYMENT_APPROVED = "PAYMENT_APPROVED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"


class NotificationModel(Base, TimestampMixin):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
