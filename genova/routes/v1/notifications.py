# genova/routes/v1/notifications.py
"""
Notification routes - API v1

Endpoints:
    GET / - Latest notifications of the current user
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_current_active_user, get_notification_service
from ...models.user import User
from ...schemas.base import ApiResponse
from ...schemas.notification import NotificationResponse
from ...services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications-v1"])


@router.get("", response_model=ApiResponse[List[NotificationResponse]])
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    service: NotificationService = Depends(get_notification_service),
) -> ApiResponse[List[NotificationResponse]]:
    notifications = await asyncio.to_thread(service.list_for_user, current_user.id, limit)
    return ApiResponse(data=[NotificationResponse.model_validate(n) for n in notifications])
