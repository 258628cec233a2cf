"""Domain events delivered through the outbox."""

from .publisher import EventPublisher
from .session_events import AttendanceCheckedIn, NotificationRequested, SessionCompleted

__all__ = [
    "AttendanceCheckedIn",
    "EventPublisher",
    "NotificationRequested",
    "SessionCompleted",
]
