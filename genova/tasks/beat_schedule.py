# genova/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for Genova.

Session sweeps run on crontab minutes; outbox dispatch runs on a short
fixed interval.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # CONFIRMED sessions past end + grace period
    "auto-complete-overdue-sessions": {
        "task": "sessions.auto_complete_overdue",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": "sessions"},
    },
    "notify-sessions-started": {
        "task": "sessions.notify_started",
        "schedule": crontab(minute="*"),
        "options": {"queue": "sessions"},
    },
    "send-check-in-reminders": {
        "task": "sessions.send_check_in_reminders",
        "schedule": crontab(minute="*"),
        "options": {"queue": "sessions"},
    },
    "dispatch-outbox-events": {
        "task": "outbox.dispatch_pending",
        "schedule": timedelta(seconds=30),
        "options": {"queue": "notifications"},
    },
}


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """Return a copy so callers can adjust entries per worker."""
    return {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
