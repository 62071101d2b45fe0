"""Notification dispatcher: per-user rows, with role fan-out."""

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.common.exceptions import NotFoundError
from procurement_core.common.models import json_safe
from procurement_core.common.security import Role
from procurement_core.notifications.models import NotificationModel, NotificationType
from procurement_core.users.models import UserModel

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Creates and manages notifications.

    Unlike audit recording, dispatch does not swallow persistence errors:
    a failed insert propagates to the caller.
    """

    async def notify(
        self,
        session: AsyncSession,
        *,
        type: NotificationType | str,
        title: str,
        message: str,
        user_id: str | None = None,
        role: Role | str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> bool:
        """Notify one user, or every active user holding ``role``.

        Role fan-out snapshots the role's membership at dispatch time.
        Returns False only when neither target is given.
        """
        if not user_id and not role:
            logger.warning("Notification %r dropped: no user or role target", title)
            return False

        if user_id:
            recipients = [user_id]
        else:
            result = await session.execute(
                select(UserModel.id).where(
                    UserModel.role == json_safe(role),
                    UserModel.is_active.is_(True),
                )
            )
            recipients = list(result.scalars().all())

        for recipient in recipients:
            session.add(NotificationModel(
                user_id=recipient,
                type=json_safe(type),
                title=title,
                message=message,
                entity_type=entity_type,
                entity_id=entity_id,
            ))
        await session.flush()
        logger.debug("Notification %s sent to %d user(s)", json_safe(type), len(recipients))
        return True

    # ── Inbox ──

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        is_read: bool | None = None,
    ) -> dict[str, Any]:
        conditions = [NotificationModel.user_id == user_id]
        if is_read is not None:
            conditions.append(NotificationModel.is_read.is_(is_read))

        total = (await session.execute(
            select(func.count()).select_from(NotificationModel).where(*conditions)
        )).scalar_one()

        offset = (page - 1) * limit
        result = await session.execute(
            select(NotificationModel)
            .where(*conditions)
            .order_by(NotificationModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        items = list(result.scalars().all())
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }

    async def unread_count(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(NotificationModel).where(
                NotificationModel.user_id == user_id,
                NotificationModel.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_as_read(
        self, session: AsyncSession, notification_id: str, user_id: str,
    ) -> NotificationModel:
        notification = await session.get(NotificationModel, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found", entity_id=notification_id)
        notification.is_read = True
        await session.flush()
        return notification

    async def mark_all_as_read(self, session: AsyncSession, user_id: str) -> int:
        """Mark every unread notification read. Safe to repeat."""
        result = await session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()
        return result.rowcount or 0

    async def delete_notification(
        self, session: AsyncSession, notification_id: str, user_id: str,
    ) -> None:
        notification = await session.get(NotificationModel, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found", entity_id=notification_id)
        await session.delete(notification)
        await session.flush()
