import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.core.exceptions import NotFoundError
from farmbid.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass
class PendingNotification:
    """A notification queued by a transition, written after it commits."""

    user_id: UUID
    title: str
    message: str
    type: str
    details: dict[str, Any] = field(default_factory=dict)


def format_amount(amount: float) -> str:
    return f"{amount:,.2f}"


async def deliver_notifications(
    db: AsyncSession, notifications: list[PendingNotification]
) -> int:
    """
    Persist queued notifications in their own transaction.

    Best-effort: the transition that queued them has already committed, so a
    failure here is logged and swallowed rather than propagated.
    """
    if not notifications:
        return 0

    try:
        for pending in notifications:
            db.add(
                Notification(
                    user_id=pending.user_id,
                    title=pending.title,
                    message=pending.message,
                    type=pending.type,
                    details={
                        key: str(value) if isinstance(value, UUID) else value
                        for key, value in pending.details.items()
                    },
                )
            )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"Failed to deliver {len(notifications)} notification(s): {e}")
        return 0

    return len(notifications)


async def list_notifications(
    db: AsyncSession, user_id: UUID, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def mark_notification_read(
    db: AsyncSession, user_id: UUID, notification_id: UUID
) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")

    if not notification.read:
        notification.read = True
        await db.commit()
    return notification
