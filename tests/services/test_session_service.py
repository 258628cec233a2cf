"""
Tests for SessionService: booking, confirmation, updates, rescheduling
and cancellation with lead-time refunds.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from genova.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SessionConflictException,
    ValidationException,
)
from genova.models import EventOutbox, SessionStatus, Transaction, TransactionStatus
from genova.schemas.session import SessionCreate, SessionUpdate
from genova.services.session_service import SessionService, parse_status_filter
from genova.services.settlement_service import SettlementService


@pytest.fixture
def service(db, clock):
    return SessionService(db, clock)


@pytest.fixture
def setup(factory):
    creator = factory.student()
    member = factory.student()
    tutor = factory.tutor()
    study_class = factory.study_class(creator, member)
    return creator, member, tutor, study_class


def _create_payload(study_class, clock, tutor=None, consortium=None, hours_ahead=48, minutes=60):
    start = clock.now + timedelta(hours=hours_ahead)
    return SessionCreate(
        class_id=study_class.id,
        tutor_id=tutor.id if tutor else None,
        consortium_id=consortium.id if consortium else None,
        scheduled_start=start,
        scheduled_end=start + timedelta(minutes=minutes),
        subject="  Algebra  ",
        price=Decimal("20"),
    )


def test_parse_status_filter():
    assert parse_status_filter(None) is None
    assert parse_status_filter("pending, confirmed") == ["PENDING", "CONFIRMED"]


class TestCreateSession:
    def test_member_books_pending_session(self, db, service, setup, clock):
        creator, member, tutor, study_class = setup

        session = service.create_session(member, _create_payload(study_class, clock, tutor))

        assert session.status == SessionStatus.PENDING.value
        assert session.subject == "Algebra"
        assert session.created_by == member.id
        assert session.price == Decimal("20.00")
        queued = db.query(EventOutbox).filter_by(event_type="notification.requested").all()
        assert {row.payload["user_id"] for row in queued} == {creator.id, tutor.id}

    def test_requires_exactly_one_of_tutor_and_consortium(self, service, setup, clock, factory):
        creator, member, tutor, study_class = setup
        consortium = factory.consortium(tutor, {tutor: Decimal("100")})

        with pytest.raises(ValidationException, match="Either tutor ID or consortium ID"):
            service.create_session(member, _create_payload(study_class, clock))
        with pytest.raises(ValidationException, match="Cannot specify both"):
            service.create_session(
                member, _create_payload(study_class, clock, tutor, consortium)
            )

    def test_rejects_inverted_time_range(self, service, setup, clock):
        creator, member, tutor, study_class = setup
        payload = _create_payload(study_class, clock, tutor)
        payload.scheduled_end = payload.scheduled_start - timedelta(minutes=1)

        with pytest.raises(ValidationException, match="end time must be after start time"):
            service.create_session(member, payload)

    def test_outsider_cannot_book(self, service, setup, clock, factory):
        creator, member, tutor, study_class = setup
        outsider = factory.student()

        with pytest.raises(ForbiddenException):
            service.create_session(outsider, _create_payload(study_class, clock, tutor))

    def test_inactive_class_is_rejected(self, service, factory, clock):
        creator = factory.student()
        tutor = factory.tutor()
        study_class = factory.study_class(creator, is_active=False)

        with pytest.raises(ValidationException, match="inactive class"):
            service.create_session(creator, _create_payload(study_class, clock, tutor))

    def test_unknown_class_is_not_found(self, service, setup, clock):
        creator, member, tutor, study_class = setup
        payload = _create_payload(study_class, clock, tutor)
        payload.class_id = "01J00000000000000000000000"

        with pytest.raises(NotFoundException):
            service.create_session(member, payload)

    def test_overlapping_booking_conflicts(self, service, setup, clock, factory):
        creator, member, tutor, study_class = setup
        existing = factory.session(study_class, tutor, start=clock.now + timedelta(hours=48))

        with pytest.raises(SessionConflictException) as exc_info:
            service.create_session(
                member, _create_payload(study_class, clock, tutor, hours_ahead=48.5)
            )
        assert exc_info.value.details["conflicting_session_ids"] == [existing.id]

    def test_back_to_back_booking_is_allowed(self, service, setup, clock, factory):
        creator, member, tutor, study_class = setup
        factory.session(study_class, tutor, start=clock.now + timedelta(hours=47))

        session = service.create_session(
            member, _create_payload(study_class, clock, tutor, hours_ahead=48)
        )

        assert session.status == SessionStatus.PENDING.value


class TestConfirmSession:
    def test_assigned_tutor_confirms(self, service, setup, clock, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, status=SessionStatus.PENDING)

        confirmed = service.confirm_session(session.id, tutor)

        assert confirmed.status == SessionStatus.CONFIRMED.value
        assert confirmed.confirmed_at is not None

    def test_other_user_cannot_confirm(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, status=SessionStatus.PENDING)

        with pytest.raises(ForbiddenException):
            service.confirm_session(session.id, creator)

    @pytest.mark.parametrize(
        "status",
        [SessionStatus.CONFIRMED, SessionStatus.COMPLETED, SessionStatus.CANCELLED],
    )
    def test_only_pending_sessions_can_be_confirmed(self, service, setup, factory, status):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, status=status)

        with pytest.raises(ValidationException, match="Cannot confirm session with status"):
            service.confirm_session(session.id, tutor)


class TestStateMachine:
    """Terminal statuses never change again."""

    @pytest.mark.parametrize("status", [SessionStatus.COMPLETED, SessionStatus.CANCELLED])
    def test_terminal_sessions_reject_every_transition(
        self, db, service, setup, factory, clock, status
    ):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, status=status)
        new_start = clock.now + timedelta(days=5)

        with pytest.raises(ValidationException):
            service.reschedule_session(
                session.id, creator, new_start, new_start + timedelta(hours=1)
            )
        with pytest.raises(ValidationException):
            service.cancel_session(session.id, creator)
        with pytest.raises(ValidationException):
            service.update_session(session.id, creator, SessionUpdate(subject="Geometry"))
        for target in ("CONFIRMED", "COMPLETED", "CANCELLED"):
            with pytest.raises(ValidationException):
                service.update_session_status(session.id, creator, target)

        db.refresh(session)
        assert session.status == status.value

    def test_pending_session_cannot_be_completed(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, status=SessionStatus.PENDING)

        with pytest.raises(ValidationException, match="Can only complete confirmed sessions"):
            service.update_session_status(session.id, tutor, "COMPLETED")


class TestUpdateSession:
    def test_creator_updates_details(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)

        updated = service.update_session(
            session.id, creator, SessionUpdate(subject="Geometry", location="Room 4")
        )

        assert updated.subject == "Geometry"
        assert updated.location == "Room 4"

    @pytest.mark.parametrize("field", ["scheduled_start", "subject", "price"])
    def test_null_for_required_field_is_rejected(self, db, service, setup, factory, field):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)

        with pytest.raises(ValidationException, match="Cannot clear required"):
            service.update_session(session.id, creator, SessionUpdate(**{field: None}))
        db.refresh(session)
        assert session.subject == "Algebra"
        assert session.price == Decimal("20.00")

    def test_optional_field_can_be_cleared(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor, description="Chapter 4")

        updated = service.update_session(session.id, creator, SessionUpdate(description=None))

        assert updated.description is None

    def test_member_cannot_update(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)

        with pytest.raises(ForbiddenException):
            service.update_session(session.id, member, SessionUpdate(subject="Geometry"))

    def test_consortium_member_assigns_tutor_and_price_follows_rate(
        self, service, factory, clock
    ):
        creator = factory.student()
        study_class = factory.study_class(creator)
        tutor = factory.tutor(hourly_rate=Decimal("30.00"))
        consortium = factory.consortium(tutor, {tutor: Decimal("100")})
        session = factory.session(study_class, consortium=consortium, minutes=90)

        updated = service.update_session(session.id, tutor, SessionUpdate(tutor_id=tutor.id))

        assert updated.tutor_id == tutor.id
        assert updated.price == Decimal("45.00")

    def test_second_assignment_conflicts(self, service, factory):
        creator = factory.student()
        study_class = factory.study_class(creator)
        tutor, other = factory.tutor(), factory.tutor()
        consortium = factory.consortium(tutor, {tutor: Decimal("50"), other: Decimal("50")})
        session = factory.session(study_class, tutor, consortium=consortium)

        with pytest.raises(ConflictException, match="already has a tutor assigned"):
            service.update_session(session.id, creator, SessionUpdate(tutor_id=other.id))


class TestReschedule:
    def test_confirmed_session_returns_to_pending(self, service, setup, factory, clock):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)
        new_start = clock.now + timedelta(days=4)

        moved = service.reschedule_session(
            session.id, member, new_start, new_start + timedelta(hours=1)
        )

        assert moved.status == SessionStatus.PENDING.value
        assert moved.confirmed_at is None
        assert moved.start_utc == new_start

    def test_reschedule_into_busy_slot_conflicts(self, service, setup, factory, clock):
        creator, member, tutor, study_class = setup
        busy = factory.session(study_class, tutor, start=clock.now + timedelta(days=4))
        session = factory.session(study_class, tutor)

        with pytest.raises(SessionConflictException):
            service.reschedule_session(
                session.id, member, busy.start_utc, busy.start_utc + timedelta(minutes=30)
            )

    def test_outsider_cannot_reschedule(self, service, setup, factory, clock):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)
        new_start = clock.now + timedelta(days=4)

        with pytest.raises(ForbiddenException):
            service.reschedule_session(
                session.id, factory.student(), new_start, new_start + timedelta(hours=1)
            )


class TestCancel:
    @pytest.fixture
    def held_session(self, db, clock, factory, setup):
        creator, member, tutor, study_class = setup
        session = factory.session(
            study_class, tutor, start=clock.now + timedelta(hours=48), price=Decimal("20.00")
        )
        SettlementService(db, clock).place_payment_hold(session.id, member.id)
        return session

    @pytest.mark.parametrize(
        "hours_before, percentage, student_balance, tutor_balance",
        [
            (48, 1.0, Decimal("100.00"), Decimal("0.00")),
            (12, 0.5, Decimal("90.00"), Decimal("8.50")),
            (1, 0.0, Decimal("80.00"), Decimal("17.00")),
        ],
    )
    def test_refund_by_lead_time(
        self,
        db,
        service,
        setup,
        clock,
        held_session,
        hours_before,
        percentage,
        student_balance,
        tutor_balance,
    ):
        creator, member, tutor, study_class = setup
        clock.set(held_session.start_utc - timedelta(hours=hours_before))

        result = service.cancel_session(held_session.id, member, "Exams")

        assert result["refund_percentage"] == percentage
        assert result["refund_amount"] == Decimal("20.00") * Decimal(str(percentage))
        assert result["session"].status == SessionStatus.CANCELLED.value
        assert result["session"].cancellation_reason == "Exams"
        db.refresh(member)
        db.refresh(tutor)
        assert member.wallet_balance == student_balance
        assert tutor.wallet_balance == tutor_balance
        hold_status = db.query(Transaction.status).filter_by(session_id=held_session.id).scalar()
        expected = TransactionStatus.REFUNDED if percentage else TransactionStatus.COMPLETED
        assert hold_status == expected.value

    def test_cancelling_twice_is_rejected(self, service, setup, held_session):
        creator, member, tutor, study_class = setup
        service.cancel_session(held_session.id, member)

        with pytest.raises(ValidationException, match="already cancelled"):
            service.cancel_session(held_session.id, member)

    def test_outsider_cannot_cancel(self, service, factory, held_session):
        with pytest.raises(ForbiddenException):
            service.cancel_session(held_session.id, factory.student())


class TestListing:
    def test_user_sessions_newest_first_with_status_filter(self, service, setup, factory, clock):
        creator, member, tutor, study_class = setup
        older = factory.session(study_class, tutor, start=clock.now + timedelta(days=1))
        newer = factory.session(study_class, tutor, start=clock.now + timedelta(days=3))
        factory.session(
            study_class, tutor, start=clock.now + timedelta(days=5), status=SessionStatus.CANCELLED
        )

        sessions = service.list_user_sessions(member, status="CONFIRMED")

        assert [s.id for s in sessions] == [newer.id, older.id]

    def test_tutor_sees_sessions_they_teach(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        session = factory.session(study_class, tutor)

        assert [s.id for s in service.list_user_sessions(tutor)] == [session.id]

    def test_class_sessions_require_access(self, service, setup, factory):
        creator, member, tutor, study_class = setup
        factory.session(study_class, tutor)

        assert len(service.list_class_sessions(study_class.id, member)) == 1
        with pytest.raises(ForbiddenException):
            service.list_class_sessions(study_class.id, factory.student())
