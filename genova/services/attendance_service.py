# genova/services/attendance_service.py
"""
Attendance & Check-in Engine.

Handles the in-session part of a tutoring session:

- PIN / QR credential issuance by the tutor side
- student check-in against the live credential
- tutor checkout, which completes the session
- absence marking once a session has ended
- the completion pipeline shared by checkout, manual completion and the
  auto-complete sweep: absences, conditional COMPLETED flip, tutor hours,
  outbox events, then settlement
- attendance read models and the periodic sweeps run by Celery beat
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    DomainException,
    DuplicateCheckInException,
    ForbiddenException,
    NotFoundException,
    ServiceException,
    SettlementException,
    ValidationException,
)
from ..core.timezone_utils import Clock, ensure_utc, ensure_utc_optional, minutes_between
from ..events import AttendanceCheckedIn, EventPublisher, SessionCompleted
from ..models.attendance import ABSENT_AUTO_NOTE, ATTENDED_STATUSES, Attendance, AttendanceStatus
from ..models.session import SessionStatus, TutoringSession, flagged_description
from ..models.user import User
from ..monitoring.prometheus_metrics import PrometheusMetrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .checkin_codes import (
    CheckInCode,
    CheckInCodeStore,
    CheckInMethod,
    generate_pin,
    generate_qr_token,
    get_checkin_code_store,
)
from .notification_service import NotificationService, NotificationType
from .settlement_service import SettlementService

logger = logging.getLogger(__name__)

RECENT_ATTENDANCE_LIMIT = 10
SESSION_STARTED_WINDOW = timedelta(minutes=1)


def attendance_rate(attended: int, total: int) -> float:
    """Percentage rounded to two decimals; 0 when there is nothing to count."""
    if total <= 0:
        return 0.0
    return round(attended / total * 100, 2)


class AttendanceService(BaseService):
    """Credentials, check-in/checkout, absences, completion and attendance stats."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        code_store: Optional[CheckInCodeStore] = None,
        notification_service: Optional[NotificationService] = None,
        settlement_service: Optional[SettlementService] = None,
    ):
        super().__init__(db, clock)
        self.session_repository = RepositoryFactory.create_session_repository(db)
        self.attendance_repository = RepositoryFactory.create_attendance_repository(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.consortium_repository = RepositoryFactory.create_consortium_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.code_store = code_store or get_checkin_code_store()
        self.publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))
        self.notification_service = notification_service or NotificationService(
            db, clock, publisher=self.publisher
        )
        self.settlement_service = settlement_service or SettlementService(
            db, clock, notification_service=self.notification_service
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_session(self, session_id: str) -> TutoringSession:
        session = self.session_repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")
        return session

    def _is_tutor_side(self, session: TutoringSession, user_id: str) -> bool:
        if session.tutor_id == user_id:
            return True
        return bool(
            session.consortium_id
            and self.consortium_repository.is_member(session.consortium_id, user_id)
        )

    def _is_class_creator(self, class_id: str, user_id: str) -> bool:
        study_class = self.class_repository.get_by_id(class_id, load_relationships=False)
        return bool(study_class and study_class.created_by == user_id)

    def _tutor_side_ids(self, session: TutoringSession) -> List[str]:
        if session.tutor_id:
            return [session.tutor_id]
        if session.consortium_id:
            members = self.consortium_repository.get_members(session.consortium_id)
            return [member.tutor_id for member in members]
        return []

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def _authorize_issue(self, session_id: str, issuer: User) -> TutoringSession:
        session = self._get_session(session_id)
        if not self._is_tutor_side(session, issuer.id):
            raise ForbiddenException("Only the session tutor can generate check-in codes")
        if session.status != SessionStatus.CONFIRMED.value:
            raise ValidationException("Can only generate check-in codes for confirmed sessions")
        return session

    @BaseService.measure_operation("issue_pin")
    def issue_pin(self, session_id: str, issuer: User) -> CheckInCode:
        """Issue a fresh 6-digit PIN, replacing any previous PIN of the session."""
        self._authorize_issue(session_id, issuer)
        entry = self.code_store.put(session_id, CheckInMethod.PIN, generate_pin())
        logger.info(f"Issued check-in PIN for session {session_id}")
        return entry

    @BaseService.measure_operation("issue_qr")
    def issue_qr(self, session_id: str, issuer: User) -> CheckInCode:
        """Issue a fresh QR token, replacing any previous QR token of the session."""
        self._authorize_issue(session_id, issuer)
        entry = self.code_store.put(
            session_id, CheckInMethod.QR, generate_qr_token(session_id, self.now())
        )
        logger.info(f"Issued check-in QR code for session {session_id}")
        return entry

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------

    @BaseService.measure_operation("check_in")
    def check_in(
        self,
        session_id: str,
        student_id: str,
        method: CheckInMethod,
        code: Optional[str],
    ) -> Attendance:
        """
        Record a student's presence with a live PIN or QR credential.

        Raises:
            ValidationException: Missing/invalid code, session not confirmed,
                or outside the scheduled window
            NotFoundException: Unknown session
            ForbiddenException: Student is not an active class member
            DuplicateCheckInException: Student already checked in
        """
        method = CheckInMethod(method)
        if not code or not code.strip():
            raise ValidationException("QR code or PIN is required for check-in")

        session = self._get_session(session_id)
        if session.status != SessionStatus.CONFIRMED.value:
            raise ValidationException("Can only check in to confirmed sessions")
        if not self.class_repository.is_active_member(session.class_id, student_id):
            raise ForbiddenException("Student is not a member of this class")

        now = self.now()
        if now < session.start_utc:
            raise ValidationException("Cannot check in before session start time")
        if now > session.end_utc:
            raise ValidationException("Cannot check in after session end time")

        credential = self.code_store.get(session_id, method)
        if credential is None or not credential.matches(code.strip()):
            PrometheusMetrics.record_check_in(method.value, "invalid")
            raise ValidationException("Invalid QR code or PIN")

        existing = self.attendance_repository.get_for_student(session_id, student_id)
        if existing is not None and existing.has_checked_in:
            PrometheusMetrics.record_check_in(method.value, "duplicate")
            raise DuplicateCheckInException(session_id, student_id)

        with self.attendance_repository.transaction():
            if existing is not None:
                existing.mark_present(now)
                attendance = existing
            else:
                created = self.attendance_repository.create_present(session_id, student_id, now)
                if created is None:
                    PrometheusMetrics.record_check_in(method.value, "duplicate")
                    raise DuplicateCheckInException(session_id, student_id)
                attendance = created
            self.publisher.publish(
                AttendanceCheckedIn(
                    session_id=session_id, student_id=student_id, checked_in_at=now
                )
            )

        PrometheusMetrics.record_check_in(method.value, "success")
        self.log_operation(
            "check_in", session_id=session_id, student_id=student_id, method=method.value
        )
        return attendance

    # ------------------------------------------------------------------
    # Absences
    # ------------------------------------------------------------------

    def _record_absences(self, session: TutoringSession) -> List[Attendance]:
        """ABSENT rows for active members without any record; flushes only."""
        recorded = self.attendance_repository.get_recorded_student_ids(session.id)
        created: List[Attendance] = []
        for student_id in self.class_repository.get_active_member_ids(session.class_id):
            if student_id in recorded:
                continue
            row = self.attendance_repository.create_absent_if_missing(
                session.id, student_id, ABSENT_AUTO_NOTE
            )
            if row is not None:
                created.append(row)
        if created:
            logger.info(f"Marked {len(created)} students absent for session {session.id}")
        return created

    @BaseService.measure_operation("mark_absent")
    def mark_absent(
        self,
        session_id: str,
        actor: Optional[User] = None,
        enforce_end: bool = True,
    ) -> List[Attendance]:
        """
        Mark every member without a record ABSENT.

        Idempotent: a second call creates nothing. Returns the rows created.
        """
        session = self._get_session(session_id)
        if actor is not None and not (
            session.tutor_id == actor.id or self._is_class_creator(session.class_id, actor.id)
        ):
            raise ForbiddenException("Only the tutor or class creator can mark absences")
        if enforce_end and self.now() < session.end_utc:
            raise ValidationException("Cannot mark absences before session end time")

        with self.transaction():
            created = self._record_absences(session)
        return created

    # ------------------------------------------------------------------
    # Completion pipeline
    # ------------------------------------------------------------------

    def _accrue_tutor_hours(self, session: TutoringSession) -> None:
        if not session.tutor_id:
            return
        profile = self.user_repository.get_tutor_profile(session.tutor_id)
        if profile is None:
            logger.warning(f"No tutor profile for {session.tutor_id}; hours not accrued")
            return
        start = ensure_utc_optional(session.actual_start) or session.start_utc
        end = ensure_utc_optional(session.actual_end) or session.end_utc
        profile.add_hours(max((end - start).total_seconds(), 0) / 3600)

    @BaseService.measure_operation("complete_session")
    def complete_session(
        self,
        session: TutoringSession,
        actual_end: Optional[datetime] = None,
        *,
        auto_completed: bool = False,
    ) -> Dict[str, Any]:
        """
        Take a CONFIRMED session to COMPLETED and settle its payment holds.

        With ``actual_end`` the actual window is recorded (``actual_start``
        defaulting to the scheduled start) and a duration discrepancy over
        the threshold is flagged in the description. The status flip only
        applies while the session is still CONFIRMED.

        Raises:
            ConflictException: Another writer completed or cancelled the session first
            SettlementException: Some holds failed to settle; the session stays COMPLETED
        """
        now = self.now()
        scheduled_duration = minutes_between(session.scheduled_start, session.scheduled_end)
        actual_start = ensure_utc_optional(session.actual_start)
        description = session.description

        if actual_end is not None:
            actual_start = actual_start or session.start_utc
            actual_end = ensure_utc(actual_end)
            actual_duration = minutes_between(actual_start, actual_end)
        else:
            actual_duration = scheduled_duration
        discrepancy = abs(actual_duration - scheduled_duration)
        flagged = discrepancy > settings.discrepancy_threshold_minutes
        if flagged:
            description = flagged_description(description, discrepancy)
            logger.warning(
                f"Session {session.id} flagged for review: {discrepancy} minute discrepancy"
            )

        with self.transaction():
            absences = self._record_absences(session)
            completed = self.session_repository.complete_if_confirmed(
                session.id,
                actual_start=actual_start,
                actual_end=actual_end,
                completed_at=now,
                description=description,
            )
            if not completed:
                raise ConflictException("Session is no longer confirmed")
            self.db.refresh(session)
            self._accrue_tutor_hours(session)
            self.publisher.publish(
                SessionCompleted(session_id=session.id, tutor_id=session.tutor_id, completed_at=now)
            )
            if auto_completed:
                self.notification_service.request(
                    self._tutor_side_ids(session),
                    title="Session Auto-Completed",
                    message=(
                        f"Your {session.subject} session was completed automatically "
                        "because no checkout was recorded."
                    ),
                    type=NotificationType.SESSION_AUTO_COMPLETED,
                    data={"session_id": session.id},
                )

        self.log_operation(
            "complete_session",
            session_id=session.id,
            absences=len(absences),
            flagged=flagged,
            auto_completed=auto_completed,
        )
        self.settlement_service.settle(session.id)
        return {
            "session": session,
            "actual_duration": actual_duration,
            "scheduled_duration": scheduled_duration,
            "discrepancy": discrepancy,
            "flagged_for_review": flagged,
        }

    @BaseService.measure_operation("check_out")
    def check_out(self, session_id: str, tutor: User) -> Dict[str, Any]:
        """
        Tutor closes the session now; early checkout is allowed.

        Returns the completed session with actual/scheduled durations in
        minutes, the discrepancy and whether it was flagged.
        """
        session = self._get_session(session_id)
        if session.tutor_id != tutor.id:
            raise ForbiddenException("Only the assigned tutor can check out of this session")
        if session.status != SessionStatus.CONFIRMED.value:
            raise ValidationException("Can only check out of confirmed sessions")
        now = self.now()
        if now < session.start_utc:
            raise ValidationException("Cannot check out before session start time")
        return self.complete_session(session, actual_end=now)

    # ------------------------------------------------------------------
    # Read models and corrections
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_session_attendance")
    def get_session_attendance(self, session_id: str, viewer: User) -> List[Attendance]:
        session = self._get_session(session_id)
        allowed = (
            self._is_tutor_side(session, viewer.id)
            or self._is_class_creator(session.class_id, viewer.id)
            or self.class_repository.is_active_member(session.class_id, viewer.id)
        )
        if not allowed:
            raise ForbiddenException("You do not have access to this session")
        return self.attendance_repository.list_for_session(session_id)

    @BaseService.measure_operation("get_student_dashboard")
    def get_student_dashboard(
        self,
        student_id: str,
        class_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        records = self.attendance_repository.list_for_student(
            student_id, class_id=class_id, start_date=start_date, end_date=end_date
        )
        counts = Counter(record.status for record in records)
        attended = sum(counts[status] for status in ATTENDED_STATUSES)
        return {
            "total_sessions": len(records),
            "attended_sessions": counts[AttendanceStatus.PRESENT.value],
            "absent_sessions": counts[AttendanceStatus.ABSENT.value],
            "late_sessions": counts[AttendanceStatus.LATE.value],
            "attendance_rate": attendance_rate(attended, len(records)),
            "recent_attendances": records[:RECENT_ATTENDANCE_LIMIT],
        }

    @BaseService.measure_operation("get_class_statistics")
    def get_class_statistics(
        self,
        class_id: str,
        viewer: User,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Per-student attendance over the class's CONFIRMED and COMPLETED sessions."""
        study_class = self.class_repository.get_by_id(class_id, load_relationships=False)
        if study_class is None:
            raise NotFoundException("Class not found")
        allowed = (
            study_class.created_by == viewer.id
            or self.class_repository.is_active_member(class_id, viewer.id)
            or self.session_repository.exists(class_id=class_id, tutor_id=viewer.id)
        )
        if not allowed:
            raise ForbiddenException("You do not have access to this class")

        sessions = self.session_repository.list_sessions(
            class_ids=[class_id],
            statuses=[SessionStatus.CONFIRMED.value, SessionStatus.COMPLETED.value],
            start_date=start_date,
            end_date=end_date,
        )
        session_ids = {s.id for s in sessions}
        per_student: Dict[str, Dict[str, Any]] = {}
        for record in self.attendance_repository.list_for_class(class_id):
            if record.session_id not in session_ids:
                continue
            stats = per_student.setdefault(
                record.student_id,
                {
                    "student_id": record.student_id,
                    "student_name": record.student.full_name if record.student else "",
                    "attended_sessions": 0,
                    "total_sessions": 0,
                },
            )
            stats["total_sessions"] += 1
            if record.status in ATTENDED_STATUSES:
                stats["attended_sessions"] += 1

        student_statistics = [
            {
                **stats,
                "attendance_rate": attendance_rate(
                    stats["attended_sessions"], stats["total_sessions"]
                ),
            }
            for stats in per_student.values()
        ]
        student_statistics.sort(key=lambda s: s["attendance_rate"], reverse=True)
        rates = [s["attendance_rate"] for s in student_statistics]
        average = round(sum(rates) / len(rates), 2) if rates else 0.0
        return {
            "class_id": class_id,
            "total_sessions": len(sessions),
            "average_attendance_rate": average,
            "student_statistics": student_statistics,
        }

    @BaseService.measure_operation("update_attendance")
    def update_attendance(
        self,
        attendance_id: str,
        actor: User,
        status: Optional[AttendanceStatus] = None,
        notes: Optional[str] = None,
    ) -> Attendance:
        """Manual correction by the session tutor or the class creator."""
        attendance = self.attendance_repository.get_by_id(attendance_id)
        if attendance is None:
            raise NotFoundException("Attendance record not found")
        session = attendance.session
        if not (
            session.tutor_id == actor.id or self._is_class_creator(session.class_id, actor.id)
        ):
            raise ForbiddenException("Only the tutor or class creator can update attendance")

        with self.transaction():
            if status is not None:
                attendance.status = AttendanceStatus(status).value
            if notes is not None:
                attendance.notes = notes or None
            self.attendance_repository.flush()
        logger.info(f"Attendance {attendance_id} corrected by {actor.id}")
        return attendance

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def auto_complete_overdue_sessions(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Complete CONFIRMED sessions whose end passed more than the grace period ago.

        Each session is handled independently. Raises ``ServiceException`` at
        the end when any settlement failed.
        """
        now = ensure_utc(now or self.now())
        cutoff = now - timedelta(minutes=settings.auto_complete_grace_minutes)
        completed: List[str] = []
        skipped: List[str] = []
        settlement_failures: Dict[str, List[str]] = {}

        for session in self.session_repository.get_confirmed_ended_before(cutoff):
            session_id = session.id
            try:
                self.complete_session(session, actual_end=session.end_utc, auto_completed=True)
                completed.append(session_id)
            except SettlementException as exc:
                completed.append(session_id)
                settlement_failures[session_id] = exc.failed_transaction_ids
                logger.error(f"Settlement failed for auto-completed session {session_id}: {exc}")
            except DomainException as exc:
                skipped.append(session_id)
                logger.warning(f"Could not auto-complete session {session_id}: {exc.message}")

        if completed:
            logger.info(f"Auto-completed {len(completed)} sessions")
        if settlement_failures:
            raise ServiceException(
                f"Settlement failed for {len(settlement_failures)} auto-completed session(s)",
                code="SETTLEMENT_FAILED",
                details={"sessions": settlement_failures, "completed": completed},
            )
        return {"completed": completed, "skipped": skipped}

    def notify_sessions_started(self, now: Optional[datetime] = None) -> int:
        """Tell the tutor side that a session started within the last minute."""
        now = ensure_utc(now or self.now())
        sessions = self.session_repository.get_confirmed_starting_between(
            now - SESSION_STARTED_WINDOW, now
        )
        notified = 0
        with self.transaction():
            for session in sessions:
                notified += self.notification_service.request(
                    self._tutor_side_ids(session),
                    title="Session Started",
                    message=(
                        f"Your {session.subject} session has started. "
                        "Generate the check-in code for your students."
                    ),
                    type=NotificationType.SESSION_STARTED,
                    data={"session_id": session.id, "action": "MANAGE_ATTENDANCE"},
                    dedupe_key=f"session_started:{session.id}",
                )
        return notified

    def send_check_in_reminders(self, now: Optional[datetime] = None) -> int:
        """Remind members who have not checked in, five to six minutes after start."""
        now = ensure_utc(now or self.now())
        offset = timedelta(minutes=settings.check_in_reminder_offset_minutes)
        sessions = self.session_repository.get_confirmed_starting_between(
            now - offset - timedelta(minutes=1), now - offset
        )
        reminded = 0
        with self.transaction():
            for session in sessions:
                recorded = self.attendance_repository.get_recorded_student_ids(session.id)
                pending = [
                    student_id
                    for student_id in self.class_repository.get_active_member_ids(session.class_id)
                    if student_id not in recorded
                ]
                reminded += self.notification_service.request(
                    pending,
                    title="Confirm Your Attendance",
                    message=f"Your {session.subject} session has started! Check in now.",
                    type=NotificationType.CHECK_IN_REMINDER,
                    data={"session_id": session.id, "action": "CHECK_IN"},
                    dedupe_key=f"check_in_reminder:{session.id}",
                )
        return reminded
