from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from genova.events import EventPublisher, NotificationRequested
from genova.models import EventOutbox, EventOutboxStatus, Notification
from genova.repositories import RepositoryFactory
from genova.services.outbox_dispatcher import UnknownEventTypeError
from genova.tasks import outbox_tasks, session_scope


@pytest.fixture
def task_sessions(engine, monkeypatch):
    """Point the task modules at the test database."""
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(outbox_tasks, "SessionLocal", factory)
    monkeypatch.setattr(session_scope, "SessionLocal", factory)
    return factory


def _enqueue(db, event_type="notification.requested", payload=None, user=None):
    if event_type == NotificationRequested.event_type:
        publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))
        event = publisher.publish(
            NotificationRequested(user_id=user.id, title="Hello", message="World", type="X")
        )
    else:
        event = RepositoryFactory.create_event_outbox_repository(db).enqueue(
            event_type, "aggregate-1", payload or {}
        )
    db.commit()
    return event.id


def _row(db, event_id):
    return db.query(EventOutbox).filter_by(id=event_id).populate_existing().one()


def test_dispatch_pending_schedules_each_due_event(db, factory, task_sessions, monkeypatch):
    student = factory.student()
    ids = [_enqueue(db, user=student) for _ in range(2)]
    apply_async = MagicMock()
    monkeypatch.setattr(outbox_tasks.deliver_event, "apply_async", apply_async)

    assert outbox_tasks.dispatch_pending() == 2

    scheduled = [call.args[0][0] for call in apply_async.call_args_list]
    assert sorted(scheduled) == sorted(ids)


def test_deliver_event_persists_notification(db, factory, task_sessions):
    student = factory.student()
    event_id = _enqueue(db, user=student)

    assert outbox_tasks.deliver_event(event_id) == event_id

    row = _row(db, event_id)
    assert row.status == EventOutboxStatus.SENT.value
    assert row.attempt_count == 1
    assert db.query(Notification).filter_by(user_id=student.id).count() == 1


def test_deliver_event_skips_missing_and_sent_events(db, factory, task_sessions):
    student = factory.student()
    event_id = _enqueue(db, user=student)
    outbox_tasks.deliver_event(event_id)

    assert outbox_tasks.deliver_event(event_id) is None
    assert outbox_tasks.deliver_event("01J00000000000000000000000") is None
    assert db.query(Notification).filter_by(user_id=student.id).count() == 1


def test_deliver_event_records_failure_and_reraises(db, task_sessions):
    event_id = _enqueue(db, event_type="unknown.event")

    # Called directly, Celery's retry re-raises the original error
    with pytest.raises(UnknownEventTypeError):
        outbox_tasks.deliver_event(event_id)

    row = _row(db, event_id)
    assert row.status == EventOutboxStatus.PENDING.value
    assert row.attempt_count == 1
    assert "No consumer" in row.last_error


def test_deliver_event_marks_failed_on_last_attempt(db, task_sessions):
    event_id = _enqueue(db, event_type="unknown.event")
    db.query(EventOutbox).filter_by(id=event_id).update({"attempt_count": 4})
    db.commit()

    with pytest.raises(UnknownEventTypeError):
        outbox_tasks.deliver_event(event_id)

    row = _row(db, event_id)
    assert row.status == EventOutboxStatus.FAILED.value
    assert row.attempt_count == 5
