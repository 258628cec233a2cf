# genova/schemas/notification.py
from datetime import datetime
from typing import Any, Dict, Optional

from .base import StandardizedModel


class NotificationResponse(StandardizedModel):
    id: str
    title: str
    message: str
    type: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: Optional[datetime] = None
