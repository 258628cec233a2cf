"""
Tests for tutor calendar conflicts.

Covers the half-open interval rule (symmetry, back-to-back slots) and
which sessions count as committed.
"""

from datetime import datetime, timedelta, timezone

import pytest

from genova.models import SessionStatus
from genova.services.availability_checker import AvailabilityChecker, intervals_overlap

T0 = datetime(2030, 3, 4, 10, 0, tzinfo=timezone.utc)


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0, 60), (30, 90), True),
        ((0, 60), (60, 120), False),
        ((0, 60), (-60, 0), False),
        ((0, 120), (30, 60), True),
        ((0, 60), (0, 60), True),
        ((0, 60), (61, 90), False),
    ],
)
def test_overlap_is_symmetric(a, b, expected):
    a_start, a_end = _at(a[0]), _at(a[1])
    b_start, b_end = _at(b[0]), _at(b[1])

    assert intervals_overlap(a_start, a_end, b_start, b_end) is expected
    assert intervals_overlap(b_start, b_end, a_start, a_end) is expected


def test_naive_values_are_treated_as_utc():
    naive_start = T0.replace(tzinfo=None)
    assert intervals_overlap(naive_start, naive_start + timedelta(hours=1), _at(30), _at(90))


class TestFindConflicts:
    def test_back_to_back_sessions_do_not_conflict(self, db, factory, clock):
        tutor = factory.tutor()
        study_class = factory.study_class(factory.student())
        factory.session(study_class, tutor, start=_at(0), minutes=60)

        checker = AvailabilityChecker(db, clock=clock)

        assert checker.is_available(tutor.id, _at(60), _at(120))
        assert checker.is_available(tutor.id, _at(-60), _at(0))

    def test_overlapping_pending_and_confirmed_sessions_conflict(self, db, factory, clock):
        tutor = factory.tutor()
        study_class = factory.study_class(factory.student())
        pending = factory.session(
            study_class, tutor, start=_at(0), status=SessionStatus.PENDING
        )
        confirmed = factory.session(study_class, tutor, start=_at(120))

        conflicts = AvailabilityChecker(db, clock=clock).find_conflicts(
            tutor.id, _at(30), _at(150)
        )

        assert {s.id for s in conflicts} == {pending.id, confirmed.id}

    def test_cancelled_and_completed_sessions_are_ignored(self, db, factory, clock):
        tutor = factory.tutor()
        study_class = factory.study_class(factory.student())
        factory.session(study_class, tutor, start=_at(0), status=SessionStatus.CANCELLED)
        factory.session(study_class, tutor, start=_at(0), status=SessionStatus.COMPLETED)

        assert AvailabilityChecker(db, clock=clock).is_available(tutor.id, _at(0), _at(60))

    def test_excluded_session_does_not_conflict_with_itself(self, db, factory, clock):
        tutor = factory.tutor()
        study_class = factory.study_class(factory.student())
        session = factory.session(study_class, tutor, start=_at(0))

        checker = AvailabilityChecker(db, clock=clock)

        assert not checker.is_available(tutor.id, _at(15), _at(75))
        assert checker.is_available(tutor.id, _at(15), _at(75), exclude_session_id=session.id)

    def test_other_tutors_sessions_do_not_conflict(self, db, factory, clock):
        tutor, other = factory.tutor(), factory.tutor()
        study_class = factory.study_class(factory.student())
        factory.session(study_class, other, start=_at(0))

        assert AvailabilityChecker(db, clock=clock).is_available(tutor.id, _at(0), _at(60))


class TestCheckTutorAvailability:
    def test_reports_conflicts(self, db, factory, clock):
        tutor = factory.tutor()
        study_class = factory.study_class(factory.student())
        session = factory.session(study_class, tutor, start=_at(0))

        result = AvailabilityChecker(db, clock=clock).check_tutor_availability(
            tutor.id, _at(30), _at(90)
        )

        assert result["available"] is False
        assert [c["session_id"] for c in result["conflicts"]] == [session.id]
        assert result["conflicts"][0]["status"] == SessionStatus.CONFIRMED.value

    def test_rejects_inverted_range(self, db, factory, clock):
        from genova.core.exceptions import ValidationException

        tutor = factory.tutor()
        with pytest.raises(ValidationException):
            AvailabilityChecker(db, clock=clock).check_tutor_availability(
                tutor.id, _at(60), _at(0)
            )

    def test_unknown_tutor_is_not_found(self, db, factory, clock):
        from genova.core.exceptions import NotFoundException

        student = factory.student()
        with pytest.raises(NotFoundException):
            AvailabilityChecker(db, clock=clock).check_tutor_availability(
                student.id, _at(0), _at(60)
            )
