# genova/services/notification_service.py
"""
In-app notifications.

Services never write Notification rows inline with their primary write.
They call ``request`` which appends ``notification.requested`` events to
the outbox; the outbox worker persists the rows through ``create_*``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.timezone_utils import Clock
from ..events import EventPublisher, NotificationRequested
from ..models.notification import Notification
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class NotificationType:
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_CONFIRMED = "SESSION_CONFIRMED"
    SESSION_UPDATED = "SESSION_UPDATED"
    SESSION_RESCHEDULED = "SESSION_RESCHEDULED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    SESSION_STARTED = "SESSION_STARTED"
    SESSION_AUTO_COMPLETED = "SESSION_AUTO_COMPLETED"
    TUTOR_ASSIGNED = "TUTOR_ASSIGNED"
    CHECK_IN_REMINDER = "CHECK_IN_REMINDER"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    BADGE_EARNED = "badge_earned"


class NotificationService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_notification_repository(db)
        self.publisher = publisher or EventPublisher(
            RepositoryFactory.create_event_outbox_repository(db)
        )

    def request(
        self,
        user_ids: Iterable[Optional[str]],
        title: str,
        message: str,
        type: str,
        data: Optional[Dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
    ) -> int:
        """
        Queue one notification per distinct user; returns how many were queued.

        With ``dedupe_key`` a user is notified at most once per key, so
        overlapping sweep windows do not double-notify.
        """
        recipients = list(dict.fromkeys(uid for uid in user_ids if uid))
        for user_id in recipients:
            event = NotificationRequested(
                user_id=user_id, title=title, message=message, type=type, data=dict(data or {})
            )
            key = None
            if dedupe_key:
                key = f"{NotificationRequested.event_type}:{dedupe_key}:{user_id}"
            self.publisher.publish(event, idempotency_key=key)
        return len(recipients)

    def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = self.repository.create(
            user_id=user_id, title=title, message=message, type=type, data=data or {}
        )
        logger.debug("Created %s notification for %s", type, user_id)
        return notification

    def create_bulk_notifications(self, rows: Iterable[Dict[str, Any]]) -> List[Notification]:
        return self.repository.bulk_create(rows)

    @BaseService.measure_operation("list_notifications")
    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        return self.repository.list_for_user(user_id, limit=limit)
