# genova/services/settlement_service.py
"""
Settlement Engine.

Owns the money side of a session:

- the cancellation refund tier (pure function of price and lead time)
- payment holds placed by students before a session
- post-session settlement: holds of PRESENT students are paid out to
  the tutor (or split across a consortium), every other hold (ABSENT,
  LATE) is refunded minus the platform fee
- cancellation refunds of outstanding holds

Each student's hold is settled in its own transaction so one bad hold
never blocks the others; failures are collected and raised together.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SettlementException,
    ValidationException,
)
from ..core.money import Number, percentage_of, quantize_money, to_decimal
from ..core.timezone_utils import Clock, ensure_utc
from ..models.attendance import Attendance, AttendanceStatus
from ..models.session import TutoringSession
from ..models.transaction import Transaction, TransactionStatus, TransactionType
from ..monitoring.prometheus_metrics import PrometheusMetrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService, NotificationType
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

FULL_REFUND_HOURS = 24
HALF_REFUND_HOURS = 2


@dataclass(frozen=True)
class RefundQuote:
    refund_amount: Decimal
    refund_percentage: float
    hours_until_start: float


def refund_tier(price: Number, scheduled_start: datetime, cancel_time: datetime) -> RefundQuote:
    """
    Refund owed when a session is cancelled at ``cancel_time``.

    More than 24 hours ahead refunds everything, more than 2 hours ahead
    refunds half, anything later refunds nothing.
    """
    hours_until = (ensure_utc(scheduled_start) - ensure_utc(cancel_time)).total_seconds() / 3600
    if hours_until > FULL_REFUND_HOURS:
        percentage = 1.0
    elif hours_until > HALF_REFUND_HOURS:
        percentage = 0.5
    else:
        percentage = 0.0
    return RefundQuote(
        refund_amount=percentage_of(price, percentage),
        refund_percentage=percentage,
        hours_until_start=hours_until,
    )


def split_platform_fee(amount: Number) -> Tuple[Decimal, Decimal]:
    """Return ``(platform_fee, net_amount)`` for a gross amount."""
    gross = quantize_money(amount)
    fee = percentage_of(gross, settings.platform_fee_rate)
    return fee, gross - fee


class SettlementService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        wallet_service: Optional[WalletService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.session_repository = RepositoryFactory.create_session_repository(db)
        self.transaction_repository = RepositoryFactory.create_transaction_repository(db)
        self.attendance_repository = RepositoryFactory.create_attendance_repository(db)
        self.consortium_repository = RepositoryFactory.create_consortium_repository(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.wallet_service = wallet_service or WalletService(db, clock)
        self.notification_service = notification_service or NotificationService(db, clock)

    # ------------------------------------------------------------------
    # Payment holds
    # ------------------------------------------------------------------

    @BaseService.measure_operation("place_payment_hold")
    def place_payment_hold(
        self, session_id: str, student_id: str, amount: Optional[Number] = None
    ) -> Transaction:
        """
        Debit the student's wallet and record a PENDING session payment.

        Raises:
            NotFoundException: Unknown session
            ValidationException: Terminal session, bad amount or insufficient balance
            ForbiddenException: Student is not an active class member
            ConflictException: A pending hold already exists
        """
        session = self.session_repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")
        if session.is_terminal:
            raise ValidationException(f"Cannot pay for a {session.status.lower()} session")
        if not self.class_repository.is_active_member(session.class_id, student_id):
            raise ForbiddenException("Student is not a member of this class")
        if self.transaction_repository.get_pending_hold(session_id, student_id) is not None:
            raise ConflictException("A payment hold already exists for this session")

        gross = quantize_money(amount if amount is not None else session.price)
        if gross <= 0:
            raise ValidationException("Payment amount must be greater than zero")
        fee, net = split_platform_fee(gross)

        with self.transaction():
            self.wallet_service.debit(student_id, gross)
            hold = self.transaction_repository.create(
                session_id=session_id,
                payer_id=student_id,
                payee_id=session.tutor_id,
                amount=gross,
                platform_fee=fee,
                net_amount=net,
                transaction_type=TransactionType.SESSION_PAYMENT.value,
                status=TransactionStatus.PENDING.value,
                description=f"Payment for session: {session.subject}",
                created_at=self.now(),
            )

        self.log_operation("place_payment_hold", session_id=session_id, amount=str(gross))
        return hold

    @BaseService.measure_operation("get_transaction_history")
    def get_transaction_history(self, user_id: str, limit: int = 50) -> List[Transaction]:
        """Transactions the user paid or received, newest first, with their session."""
        return self.transaction_repository.list_for_user(user_id, limit=limit)

    # ------------------------------------------------------------------
    # Revenue distribution
    # ------------------------------------------------------------------

    def payout_shares(
        self, session: TutoringSession, net_amount: Number
    ) -> List[Tuple[str, Decimal]]:
        """
        Who receives ``net_amount`` for ``session`` and how much each gets.

        Consortium sessions split by revenue share; otherwise the assigned
        tutor receives everything. Credits that round to zero are dropped.
        """
        net = quantize_money(net_amount)
        if session.consortium_id:
            members = self.consortium_repository.get_members(session.consortium_id)
            if not members:
                raise ValidationException("Consortium has no members")
            total_share = sum((to_decimal(m.revenue_share) for m in members), Decimal("0"))
            if abs(total_share - Decimal("100")) > Decimal("0.01"):
                logger.warning(
                    "Consortium %s revenue shares sum to %s, not 100",
                    session.consortium_id,
                    total_share,
                )
            shares = [
                (member.tutor_id, percentage_of(net, to_decimal(member.revenue_share) / 100))
                for member in members
            ]
            return [(tutor_id, value) for tutor_id, value in shares if value > 0]
        if session.tutor_id:
            return [(session.tutor_id, net)] if net > 0 else []
        raise ValidationException("Session has no tutor or consortium to pay")

    def _pay_out(self, session: TutoringSession, net_amount: Number) -> List[Tuple[str, Decimal]]:
        paid = []
        for user_id, value in self.payout_shares(session, net_amount):
            self.wallet_service.credit(user_id, value)
            paid.append((user_id, value))
        return paid

    # ------------------------------------------------------------------
    # Post-session settlement
    # ------------------------------------------------------------------

    def _settle_hold(
        self, session: TutoringSession, attendance: Attendance, hold: Transaction, now: datetime
    ) -> Optional[str]:
        if attendance.status == AttendanceStatus.PRESENT.value:
            if not self.transaction_repository.transition_if_pending(
                hold.id, TransactionStatus.COMPLETED, now
            ):
                return None
            payees = self._pay_out(session, hold.net_amount)
            self.notification_service.request(
                [hold.payer_id],
                title="Payment Completed",
                message=(
                    f"Your payment of {quantize_money(hold.amount)} for {session.subject} "
                    "was completed."
                ),
                type=NotificationType.PAYMENT_RECEIVED,
                data={"session_id": session.id, "transaction_id": hold.id},
            )
            for user_id, value in payees:
                self.notification_service.request(
                    [user_id],
                    title="Payment Received",
                    message=f"You received {value} for {session.subject}.",
                    type=NotificationType.PAYMENT_RECEIVED,
                    data={"session_id": session.id, "amount": str(value)},
                )
            return "paid"

        if not self.transaction_repository.transition_if_pending(
            hold.id, TransactionStatus.REFUNDED, now
        ):
            return None
        refund = percentage_of(hold.amount, settings.absent_refund_rate)
        if refund > 0:
            self.wallet_service.credit(hold.payer_id, refund)
        self.notification_service.request(
            [hold.payer_id],
            title="Payment Refunded",
            message=(
                f"Your attendance for {session.subject} was recorded as "
                f"{attendance.status.lower()}; {refund} was refunded to your wallet."
            ),
            type=NotificationType.PAYMENT_REFUNDED,
            data={"session_id": session.id, "amount": str(refund)},
        )
        return "refunded"

    @BaseService.measure_operation("settle")
    def settle(self, session_id: str) -> Dict[str, Any]:
        """
        Settle every pending hold of a finished session against attendance.

        Returns counts of paid and refunded holds.

        Raises:
            NotFoundException: Unknown session
            SettlementException: One or more holds failed; the rest were settled
        """
        session = self.session_repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")

        summary = {"session_id": session_id, "paid": 0, "refunded": 0, "skipped": 0}
        failed: List[str] = []
        for attendance in self.attendance_repository.list_for_session(session_id):
            hold = self.transaction_repository.get_pending_hold(session_id, attendance.student_id)
            if hold is None:
                continue
            hold_id = hold.id
            try:
                with self.transaction():
                    outcome = self._settle_hold(session, attendance, hold, self.now())
            except Exception as exc:
                logger.error(
                    "Settlement of transaction %s (student %s, session %s) failed: %s",
                    hold_id,
                    attendance.student_id,
                    session_id,
                    exc,
                )
                failed.append(hold_id)
                PrometheusMetrics.record_settlement("failed")
                continue

            if outcome is None:
                summary["skipped"] += 1
            else:
                summary[outcome] += 1
                PrometheusMetrics.record_settlement(outcome)

        if failed:
            raise SettlementException(session_id, failed)

        logger.info(
            "Settled session %s: %s paid, %s refunded",
            session_id,
            summary["paid"],
            summary["refunded"],
        )
        return summary

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def refund_cancellation(self, session: TutoringSession, quote: RefundQuote) -> int:
        """
        Refund outstanding holds of a cancelled session by ``quote``.

        The payer gets ``amount * pct`` back and the tutor side keeps the
        matching share of the net amount. Runs in the caller's transaction.
        Returns the number of holds processed.
        """
        pct = to_decimal(quote.refund_percentage)
        now = self.now()
        processed = 0
        for hold in self.transaction_repository.list_pending_holds(session.id):
            status = TransactionStatus.REFUNDED if pct > 0 else TransactionStatus.COMPLETED
            if not self.transaction_repository.transition_if_pending(hold.id, status, now):
                continue
            refund = percentage_of(hold.amount, pct)
            if refund > 0:
                self.wallet_service.credit(hold.payer_id, refund)
            retained = percentage_of(hold.net_amount, Decimal("1") - pct)
            if retained > 0:
                self._pay_out(session, retained)
            processed += 1
            logger.info(
                "Cancellation refund for transaction %s: refunded %s, paid out %s",
                hold.id,
                refund,
                retained,
            )
        return processed
