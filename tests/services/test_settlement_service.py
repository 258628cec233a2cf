"""Tests for payment holds, post-session settlement and consortium payouts."""

from datetime import timedelta
from decimal import Decimal

import pytest

from genova.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SettlementException,
    ValidationException,
)
from genova.models import (
    Attendance,
    AttendanceStatus,
    SessionStatus,
    Transaction,
    TransactionStatus,
    User,
)
from genova.services.settlement_service import SettlementService


@pytest.fixture
def service(db, clock):
    return SettlementService(db, clock)


@pytest.fixture
def scenario(factory):
    creator = factory.student()
    alice = factory.student()
    bob = factory.student()
    tutor = factory.tutor()
    study_class = factory.study_class(creator, alice, bob)
    return creator, alice, bob, tutor, study_class


def _balance(db, user):
    return db.query(User.wallet_balance).filter(User.id == user.id).scalar()


def _hold_status(db, hold):
    return db.query(Transaction.status).filter(Transaction.id == hold.id).scalar()


def _record(db, session, student, status):
    db.add(
        Attendance(
            session_id=session.id,
            student_id=student.id,
            status=status.value,
            check_in_time=session.start_utc if status != AttendanceStatus.ABSENT else None,
        )
    )
    db.commit()


class TestPaymentHold:
    def test_hold_debits_wallet_and_splits_fee(self, db, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor, price=Decimal("20.00"))

        hold = service.place_payment_hold(session.id, alice.id)

        assert hold.amount == Decimal("20.00")
        assert hold.platform_fee == Decimal("3.00")
        assert hold.net_amount == Decimal("17.00")
        assert hold.payee_id == tutor.id
        assert hold.status == TransactionStatus.PENDING.value
        assert _balance(db, alice) == Decimal("80.00")

    def test_explicit_amount_overrides_price(self, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)

        hold = service.place_payment_hold(session.id, alice.id, amount="10.10")

        assert hold.platform_fee == Decimal("1.52")
        assert hold.net_amount == Decimal("8.58")

    def test_second_pending_hold_conflicts(self, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        service.place_payment_hold(session.id, alice.id)

        with pytest.raises(ConflictException):
            service.place_payment_hold(session.id, alice.id)

    def test_insufficient_balance(self, db, service, factory, scenario):
        creator, alice, bob, tutor, study_class = scenario
        poor = factory.student(balance=Decimal("5.00"))
        study_class = factory.study_class(creator, poor)
        session = factory.session(study_class, tutor)

        with pytest.raises(ValidationException) as exc_info:
            service.place_payment_hold(session.id, poor.id)
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert _balance(db, poor) == Decimal("5.00")

    def test_non_member_cannot_pay(self, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)

        with pytest.raises(ForbiddenException):
            service.place_payment_hold(session.id, factory.student().id)

    @pytest.mark.parametrize("status", [SessionStatus.COMPLETED, SessionStatus.CANCELLED])
    def test_terminal_session_rejects_hold(self, service, scenario, factory, status):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor, status=status)

        with pytest.raises(ValidationException):
            service.place_payment_hold(session.id, alice.id)

    def test_zero_amount(self, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor, price=Decimal("0"))

        with pytest.raises(ValidationException, match="greater than zero"):
            service.place_payment_hold(session.id, alice.id)


class TestSettle:
    def test_attended_paid_absent_refunded(self, db, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        paid_hold = service.place_payment_hold(session.id, alice.id)
        refunded_hold = service.place_payment_hold(session.id, bob.id)
        _record(db, session, alice, AttendanceStatus.PRESENT)
        _record(db, session, bob, AttendanceStatus.ABSENT)

        summary = service.settle(session.id)

        assert summary == {"session_id": session.id, "paid": 1, "refunded": 1, "skipped": 0}
        assert _hold_status(db, paid_hold) == TransactionStatus.COMPLETED.value
        assert _hold_status(db, refunded_hold) == TransactionStatus.REFUNDED.value
        assert _balance(db, tutor) == Decimal("17.00")
        assert _balance(db, alice) == Decimal("80.00")
        assert _balance(db, bob) == Decimal("97.00")

    def test_late_hold_is_refunded_like_an_absence(self, db, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        hold = service.place_payment_hold(session.id, alice.id)
        _record(db, session, alice, AttendanceStatus.LATE)

        summary = service.settle(session.id)

        assert summary["paid"] == 0
        assert summary["refunded"] == 1
        assert _hold_status(db, hold) == TransactionStatus.REFUNDED.value
        assert _balance(db, alice) == Decimal("97.00")
        assert _balance(db, tutor) == Decimal("0.00")

    def test_settle_is_idempotent(self, db, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        service.place_payment_hold(session.id, alice.id)
        _record(db, session, alice, AttendanceStatus.PRESENT)
        service.settle(session.id)

        summary = service.settle(session.id)

        assert summary["paid"] == 0
        assert _balance(db, tutor) == Decimal("17.00")

    def test_member_without_hold_is_ignored(self, db, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        _record(db, session, alice, AttendanceStatus.PRESENT)

        assert service.settle(session.id)["paid"] == 0

    def test_unknown_session(self, service):
        with pytest.raises(NotFoundException):
            service.settle("01J00000000000000000000000")

    def test_consortium_split(self, db, service, factory):
        creator = factory.student()
        student = factory.student()
        lead, partner = factory.tutor(), factory.tutor()
        consortium = factory.consortium(lead, {lead: Decimal("60"), partner: Decimal("40")})
        session = factory.session(factory.study_class(creator, student), consortium=consortium)
        service.place_payment_hold(session.id, student.id)
        _record(db, session, student, AttendanceStatus.PRESENT)

        service.settle(session.id)

        assert _balance(db, lead) == Decimal("10.20")
        assert _balance(db, partner) == Decimal("6.80")

    def test_one_failing_hold_does_not_block_the_others(
        self, db, service, scenario, factory, monkeypatch
    ):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)
        failing = service.place_payment_hold(session.id, alice.id)
        settled = service.place_payment_hold(session.id, bob.id)
        _record(db, session, alice, AttendanceStatus.PRESENT)
        _record(db, session, bob, AttendanceStatus.PRESENT)

        failing_id = failing.id
        repository = service.transaction_repository
        original_transition = repository.transition_if_pending

        def flaky_transition(transaction_id, status, settled_at):
            if transaction_id == failing_id:
                raise RuntimeError("ledger unavailable")
            return original_transition(transaction_id, status, settled_at)

        monkeypatch.setattr(repository, "transition_if_pending", flaky_transition)

        with pytest.raises(SettlementException) as exc_info:
            service.settle(session.id)

        assert exc_info.value.failed_transaction_ids == [failing_id]
        assert _hold_status(db, failing) == TransactionStatus.PENDING.value
        assert _hold_status(db, settled) == TransactionStatus.COMPLETED.value
        assert _balance(db, tutor) == Decimal("17.00")


class TestTransactionHistory:
    def test_payer_and_payee_see_holds_newest_first(self, service, scenario, factory, clock):
        creator, alice, bob, tutor, study_class = scenario
        first = factory.session(study_class, tutor)
        second = factory.session(study_class, tutor, start=first.start_utc + timedelta(hours=3))
        older = service.place_payment_hold(first.id, alice.id)
        clock.advance(minutes=5)
        newer = service.place_payment_hold(second.id, alice.id)

        history = service.get_transaction_history(alice.id)

        assert [t.id for t in history] == [newer.id, older.id]
        assert history[0].session.id == second.id
        assert {t.id for t in service.get_transaction_history(tutor.id)} == {older.id, newer.id}
        assert service.get_transaction_history(bob.id) == []

    def test_limit(self, service, scenario, factory, clock):
        creator, alice, bob, tutor, study_class = scenario
        first = factory.session(study_class, tutor)
        second = factory.session(study_class, tutor, start=first.start_utc + timedelta(hours=3))
        service.place_payment_hold(first.id, alice.id)
        clock.advance(minutes=5)
        newer = service.place_payment_hold(second.id, alice.id)

        assert [t.id for t in service.get_transaction_history(alice.id, limit=1)] == [newer.id]


class TestPayoutShares:
    def test_single_tutor_receives_everything(self, service, scenario, factory):
        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor)

        assert service.payout_shares(session, Decimal("17")) == [(tutor.id, Decimal("17.00"))]

    def test_zero_share_member_is_dropped(self, service, factory):
        lead, idle = factory.tutor(), factory.tutor()
        consortium = factory.consortium(lead, {lead: Decimal("100"), idle: Decimal("0")})
        session = factory.session(factory.study_class(factory.student()), consortium=consortium)

        assert service.payout_shares(session, Decimal("17.00")) == [(lead.id, Decimal("17.00"))]

    def test_session_without_payee(self, service, factory):
        session = factory.session(factory.study_class(factory.student()))

        with pytest.raises(ValidationException, match="no tutor or consortium"):
            service.payout_shares(session, Decimal("17.00"))


class TestCancellationRefund:
    def test_half_refund_splits_between_payer_and_tutor(
        self, db, service, scenario, factory, clock
    ):
        from genova.services.settlement_service import refund_tier

        creator, alice, bob, tutor, study_class = scenario
        session = factory.session(study_class, tutor, start=clock.now + timedelta(hours=10))
        hold = service.place_payment_hold(session.id, alice.id)

        quote = refund_tier(session.price, session.scheduled_start, clock.now)
        processed = service.refund_cancellation(session, quote)
        db.commit()

        assert processed == 1
        assert _hold_status(db, hold) == TransactionStatus.REFUNDED.value
        assert _balance(db, alice) == Decimal("90.00")
        assert _balance(db, tutor) == Decimal("8.50")
