# genova/tasks/outbox_tasks.py
"""
Celery tasks for dispatching outbox events.

Implements a two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` runs the event's consumer with retries and backoff.
"""

from __future__ import annotations

from typing import Any, Optional

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger

from genova.database import SessionLocal
from genova.models.event_outbox import EventOutboxStatus
from genova.monitoring.prometheus_metrics import PrometheusMetrics
from genova.repositories.event_outbox_repository import EventOutboxRepository
from genova.services.outbox_dispatcher import (
    MAX_DELIVERY_ATTEMPTS,
    OutboxDispatcher,
    next_backoff,
)
from genova.tasks.celery_app import celery_app
from genova.tasks.session_scope import session_scope

logger = get_task_logger(__name__)


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with session_scope() as session:
        repo = EventOutboxRepository(session)
        pending = repo.fetch_pending(limit=200)
        for event in pending:
            deliver_event.apply_async((event.id,), queue="notifications")
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=30,
    queue="notifications",
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    session = SessionLocal()
    try:
        dispatcher = OutboxDispatcher(session)
        event = dispatcher.repository.get_by_id(event_id)
        if event is None:
            logger.warning("Outbox event %s missing; skipping", event_id)
            session.commit()
            return None
        if event.status != EventOutboxStatus.PENDING.value:
            logger.info("Outbox event %s already %s; skipping", event_id, event.status)
            session.commit()
            return None

        attempt_number = event.attempt_count + 1
        event_type = event.event_type
        PrometheusMetrics.record_outbox_attempt(event_type)
        try:
            dispatcher.deliver(event)
            dispatcher.repository.mark_sent(event.id, attempt_number)
            session.commit()
        except Exception as exc:
            session.rollback()
            backoff = next_backoff(attempt_number)
            terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS
            dispatcher.repository.mark_failed(
                event_id,
                attempt_count=attempt_number,
                backoff_seconds=backoff,
                error=str(exc),
                terminal=terminal,
            )
            session.commit()
            if terminal:
                PrometheusMetrics.record_outbox_outcome(event_type, "failed")
                logger.exception(
                    "Outbox event %s failed permanently after %s attempts",
                    event_id,
                    attempt_number,
                )
                raise
            logger.exception(
                "Error delivering outbox event %s; retrying in %ss", event_id, backoff
            )
            raise self.retry(countdown=backoff, exc=exc)

        PrometheusMetrics.record_outbox_outcome(event_type, "sent")
        logger.info(
            "Delivered outbox event %s type=%s attempts=%s",
            event_id,
            event_type,
            attempt_number,
        )
        return event_id
    finally:
        session.close()
