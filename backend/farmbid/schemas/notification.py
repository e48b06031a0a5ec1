# farmbid/schemas/notification.py
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict
from uuid import UUID
from datetime import datetime


class NotificationResponse(BaseModel):
    id: UUID
    title: str
    message: str
    type: str
    read: bool
    details: Dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
