# genova/tasks/attendance_tasks.py
"""
Periodic session sweeps.

- ``sessions.auto_complete_overdue``: completes CONFIRMED sessions whose
  end passed more than the grace period ago, then settles them.
- ``sessions.notify_started``: tells the tutor side a session began.
- ``sessions.send_check_in_reminders``: nudges members who have not
  checked in a few minutes after start.
"""

from typing import Any, Dict

from celery.utils.log import get_task_logger

from genova.services.attendance_service import AttendanceService
from genova.tasks.celery_app import BaseTask, celery_app
from genova.tasks.session_scope import session_scope

logger = get_task_logger(__name__)


@celery_app.task(name="sessions.auto_complete_overdue", base=BaseTask, max_retries=0)
def auto_complete_overdue_sessions() -> Dict[str, Any]:
    """Settlement failures surface as a task failure after every session was processed."""
    with session_scope() as session:
        result = AttendanceService(session).auto_complete_overdue_sessions()
    if result["completed"]:
        logger.info("Auto-completed sessions: %s", ", ".join(result["completed"]))
    return result


@celery_app.task(name="sessions.notify_started", max_retries=0)
def notify_sessions_started() -> int:
    with session_scope() as session:
        return AttendanceService(session).notify_sessions_started()


@celery_app.task(name="sessions.send_check_in_reminders", max_retries=0)
def send_check_in_reminders() -> int:
    with session_scope() as session:
        reminded = AttendanceService(session).send_check_in_reminders()
    if reminded:
        logger.info("Queued %s check-in reminders", reminded)
    return reminded
