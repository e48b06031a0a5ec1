# farmbid/api/notification.py
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.api.auth import get_current_user
from farmbid.core.database import get_async_db
from farmbid.models.user import User
from farmbid.schemas.notification import NotificationResponse
from farmbid.services import notification_service

router = APIRouter()


@router.get("/notifications", response_model=List[NotificationResponse])
async def get_notifications(
    unread_only: bool = False,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await notification_service.list_notifications(
        db, current_user.id, unread_only=unread_only
    )


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await notification_service.mark_notification_read(
        db, current_user.id, notification_id
    )
