# genova/services/outbox_dispatcher.py
"""
Outbox event consumers.

Maps each ``event_type`` to the side effect it triggers. Handlers only
flush; the caller commits the handler's writes together with the
outbox row's delivery status.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.timezone_utils import Clock, utc_now
from ..events import AttendanceCheckedIn, NotificationRequested, SessionCompleted
from ..models.event_outbox import EventOutbox
from ..monitoring.prometheus_metrics import PrometheusMetrics
from ..repositories import RepositoryFactory
from .badge_service import BadgeService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


class UnknownEventTypeError(Exception):
    """Raised for an outbox row nobody consumes."""


class OutboxDispatcher:
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock: Clock = clock or utc_now
        self.repository = RepositoryFactory.create_event_outbox_repository(db)
        self.notification_service = NotificationService(db, clock)
        self.badge_service = BadgeService(db, clock, self.notification_service)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            AttendanceCheckedIn.event_type: self._on_attendance_checked_in,
            SessionCompleted.event_type: self._on_session_completed,
            NotificationRequested.event_type: self._on_notification_requested,
        }

    # Handlers

    def _on_attendance_checked_in(self, payload: Dict[str, Any]) -> None:
        self.badge_service.check_attendance_badge(payload["student_id"])

    def _on_session_completed(self, payload: Dict[str, Any]) -> None:
        tutor_id = payload.get("tutor_id")
        if not tutor_id:
            return
        self.badge_service.check_mentor_badge(tutor_id)
        self.badge_service.check_pedagogue_badge(tutor_id)

    def _on_notification_requested(self, payload: Dict[str, Any]) -> None:
        self.notification_service.create_notification(
            user_id=payload["user_id"],
            title=payload["title"],
            message=payload["message"],
            type=payload["type"],
            data=payload.get("data") or {},
        )

    # Delivery

    def deliver(self, event: EventOutbox) -> None:
        """Run the consumer for ``event``; raises on failure."""
        handler = self._handlers.get(event.event_type)
        if handler is None:
            raise UnknownEventTypeError(f"No consumer for event type {event.event_type}")
        handler(dict(event.payload or {}))

    def deliver_one(self, event: EventOutbox) -> bool:
        """
        Deliver ``event`` inside a savepoint and record the outcome.

        Returns True when the event was sent. A failing consumer rolls back
        its own writes only and the row is rescheduled with backoff, or
        marked FAILED once attempts are exhausted.
        """
        attempt_number = int(event.attempt_count or 0) + 1
        PrometheusMetrics.record_outbox_attempt(event.event_type)
        try:
            with self.db.begin_nested():
                self.deliver(event)
        except Exception as exc:
            terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS
            self.repository.mark_failed(
                event.id,
                attempt_count=attempt_number,
                backoff_seconds=next_backoff(attempt_number),
                error=str(exc),
                terminal=terminal,
            )
            if terminal:
                PrometheusMetrics.record_outbox_outcome(event.event_type, "failed")
                logger.error(
                    "Outbox event %s failed permanently after %s attempts: %s",
                    event.id,
                    attempt_number,
                    exc,
                )
            else:
                logger.warning(
                    "Outbox event %s attempt=%s failed: %s", event.id, attempt_number, exc
                )
            return False

        self.repository.mark_sent(event.id, attempt_number)
        PrometheusMetrics.record_outbox_outcome(event.event_type, "sent")
        return True

    def drain(self, limit: int = 200) -> int:
        """Deliver every due event in-process; returns how many were sent."""
        sent = 0
        for event in self.repository.fetch_pending(limit=limit, now=self.clock()):
            if self.deliver_one(event):
                sent += 1
        return sent
