# genova/services/session_service.py
"""
Session Lifecycle Manager.

Owns the tutoring session state machine:

    PENDING -> CONFIRMED -> COMPLETED
    PENDING | CONFIRMED -> CANCELLED

and the authorization and validation rules around each transition.
Completion itself (absences, hours, settlement) is delegated to the
attendance engine so checkout, manual completion and the auto-complete
sweep share one pipeline.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    SessionConflictException,
    ValidationException,
)
from ..core.money import quantize_money, to_decimal
from ..core.timezone_utils import Clock, ensure_utc
from ..models.session import NO_OVERLAP_CONSTRAINT, SessionStatus, TutoringSession
from ..models.study_class import StudyClass
from ..models.user import User
from ..repositories import RepositoryFactory
from ..schemas.session import SessionCreate, SessionUpdate
from .availability_checker import AvailabilityChecker
from .base import BaseService
from .notification_service import NotificationService, NotificationType
from .settlement_service import SettlementService, refund_tier

logger = logging.getLogger(__name__)

REQUIRED_UPDATE_FIELDS = ("scheduled_start", "scheduled_end", "subject", "price")


def parse_status_filter(status: Optional[str]) -> Optional[List[str]]:
    """Split ``"PENDING,CONFIRMED"`` into validated status values."""
    if not status:
        return None
    values = [part.strip().upper() for part in status.split(",") if part.strip()]
    valid = {s.value for s in SessionStatus}
    unknown = [value for value in values if value not in valid]
    if unknown:
        raise ValidationException(f"Invalid session status: {', '.join(unknown)}")
    return values or None


class SessionService(BaseService):
    """Create, confirm, update, reschedule, complete and cancel sessions."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        availability_checker: Optional[AvailabilityChecker] = None,
        notification_service: Optional[NotificationService] = None,
        settlement_service: Optional[SettlementService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_session_repository(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.consortium_repository = RepositoryFactory.create_consortium_repository(db)
        self.availability_checker = availability_checker or AvailabilityChecker(
            db, self.repository, clock
        )
        self.notification_service = notification_service or NotificationService(db, clock)
        self.settlement_service = settlement_service or SettlementService(
            db, clock, notification_service=self.notification_service
        )

    # ------------------------------------------------------------------
    # Lookups and authorization helpers
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> TutoringSession:
        session = self.repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found")
        return session

    @BaseService.measure_operation("get_session_for_user")
    def get_session_for_user(self, session_id: str, user: User) -> TutoringSession:
        """Session details for its tutor side, class creator or class members."""
        session = self.get_session(session_id)
        if not self._is_participant(session, user.id):
            if not (
                session.consortium_id
                and self.consortium_repository.is_member(session.consortium_id, user.id)
            ):
                raise ForbiddenException("You do not have access to this session")
        return session

    def _get_class(self, class_id: str) -> StudyClass:
        study_class = self.class_repository.get_by_id(class_id, load_relationships=False)
        if study_class is None:
            raise NotFoundException("Class not found")
        return study_class

    def _is_class_creator(self, session: TutoringSession, user_id: str) -> bool:
        study_class = self._get_class(session.class_id)
        return study_class.created_by == user_id

    def _is_tutor_or_creator(self, session: TutoringSession, user_id: str) -> bool:
        return session.tutor_id == user_id or self._is_class_creator(session, user_id)

    def _is_participant(self, session: TutoringSession, user_id: str) -> bool:
        if self._is_tutor_or_creator(session, user_id):
            return True
        return self.class_repository.is_active_member(session.class_id, user_id)

    def _session_parties(self, session: TutoringSession) -> Set[str]:
        """Everyone to notify about a session: tutor side, class creator and members."""
        parties: Set[str] = set(self.class_repository.get_active_member_ids(session.class_id))
        study_class = self._get_class(session.class_id)
        parties.add(study_class.created_by)
        if session.tutor_id:
            parties.add(session.tutor_id)
        if session.consortium_id:
            members = self.consortium_repository.get_members(session.consortium_id)
            parties.update(member.tutor_id for member in members)
        return parties

    def _notify(
        self,
        user_ids: Iterable[Optional[str]],
        session: TutoringSession,
        title: str,
        message: str,
        type: str,
        exclude: Optional[str] = None,
    ) -> None:
        recipients = [uid for uid in user_ids if uid and uid != exclude]
        self.notification_service.request(
            recipients, title, message, type, data={"session_id": session.id}
        )

    def _ensure_tutor_available(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        message: str,
        exclude_session_id: Optional[str] = None,
    ) -> None:
        conflicts = self.availability_checker.find_conflicts(
            tutor_id, start, end, exclude_session_id
        )
        if conflicts:
            raise SessionConflictException(
                message,
                details={"conflicting_session_ids": [c.id for c in conflicts]},
            )

    def _raise_conflict_from_store_error(self, exc: Exception) -> None:
        """
        Translate an exclusion-constraint violation into a session conflict.

        The database rejects overlapping committed sessions for one tutor even
        when two writers both passed the availability pre-check.
        """
        message = str(exc).lower()
        if NO_OVERLAP_CONSTRAINT in message or "exclusion constraint" in message:
            raise SessionConflictException(details={"constraint": NO_OVERLAP_CONSTRAINT}) from exc
        if isinstance(exc, SQLAlchemyError):
            raise ServiceException(f"Database operation failed: {exc}") from exc
        raise exc

    @staticmethod
    def _validate_time_range(start: datetime, end: datetime) -> None:
        if ensure_utc(end) <= ensure_utc(start):
            raise ValidationException("Session end time must be after start time")

    @staticmethod
    def _ensure_not_terminal(session: TutoringSession, action: str) -> None:
        if session.status == SessionStatus.COMPLETED.value:
            raise ValidationException(f"Cannot {action} a completed session")
        if session.status == SessionStatus.CANCELLED.value:
            raise ValidationException(f"Cannot {action} a cancelled session")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @BaseService.measure_operation("list_user_sessions")
    def list_user_sessions(
        self,
        user: User,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[TutoringSession]:
        """Sessions of the user's classes (member or creator) or taught by them, newest first."""
        return self.repository.list_sessions(
            class_ids=self.class_repository.get_class_ids_for_user(user.id),
            tutor_id=user.id,
            statuses=parse_status_filter(status),
            start_date=start_date,
            end_date=end_date,
            newest_first=True,
        )

    @BaseService.measure_operation("list_class_sessions")
    def list_class_sessions(
        self,
        class_id: str,
        user: User,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[TutoringSession]:
        study_class = self._get_class(class_id)
        allowed = (
            study_class.created_by == user.id
            or self.class_repository.is_active_member(class_id, user.id)
            or self.repository.exists(class_id=class_id, tutor_id=user.id)
        )
        if not allowed:
            raise ForbiddenException("You do not have access to this class")
        return self.repository.list_sessions(
            class_ids=[class_id],
            statuses=parse_status_filter(status),
            start_date=start_date,
            end_date=end_date,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_session")
    def create_session(self, requester: User, data: SessionCreate) -> TutoringSession:
        """
        Book a PENDING session for a class.

        Raises:
            ValidationException: Bad tutor/consortium combination, time range,
                price, or inactive class
            NotFoundException: Unknown class or consortium
            ForbiddenException: Requester is neither member nor creator of the class
            SessionConflictException: Tutor is already booked for the interval
        """
        if not data.tutor_id and not data.consortium_id:
            raise ValidationException("Either tutor ID or consortium ID must be provided")
        if data.tutor_id and data.consortium_id:
            raise ValidationException("Cannot specify both tutor ID and consortium ID")
        self._validate_time_range(data.scheduled_start, data.scheduled_end)
        if to_decimal(data.price) < 0:
            raise ValidationException("Price cannot be negative")

        study_class = self._get_class(data.class_id)
        if not study_class.is_active:
            raise ValidationException("Cannot create session for inactive class")
        if study_class.created_by != requester.id and not self.class_repository.is_active_member(
            data.class_id, requester.id
        ):
            raise ForbiddenException("Only class members can create sessions")

        if data.consortium_id and self.consortium_repository.get_by_id(
            data.consortium_id, load_relationships=False
        ) is None:
            raise NotFoundException("Consortium not found")
        if data.tutor_id:
            self._ensure_tutor_available(
                data.tutor_id,
                data.scheduled_start,
                data.scheduled_end,
                "Tutor is not available during the requested time slot",
            )

        self.log_operation(
            "create_session",
            class_id=data.class_id,
            tutor_id=data.tutor_id,
            consortium_id=data.consortium_id,
        )
        try:
            with self.repository.transaction():
                session = self.repository.create(
                    class_id=data.class_id,
                    tutor_id=data.tutor_id,
                    consortium_id=data.consortium_id,
                    scheduled_start=ensure_utc(data.scheduled_start),
                    scheduled_end=ensure_utc(data.scheduled_end),
                    subject=data.subject,
                    description=data.description,
                    price=quantize_money(data.price),
                    location=data.location,
                    online_meeting_link=data.online_meeting_link,
                    status=SessionStatus.PENDING.value,
                    created_by=requester.id,
                )
                self._notify(
                    self._session_parties(session),
                    session,
                    "New Session Scheduled",
                    f"A session on {session.subject} was scheduled for "
                    f"{session.start_utc.isoformat()}.",
                    NotificationType.SESSION_CREATED,
                    exclude=requester.id,
                )
        except (RepositoryException, SQLAlchemyError) as exc:
            self._raise_conflict_from_store_error(exc)

        logger.info(f"Session {session.id} created for class {data.class_id}")
        return session

    # ------------------------------------------------------------------
    # Confirm
    # ------------------------------------------------------------------

    def _confirm(self, session: TutoringSession) -> TutoringSession:
        if session.tutor_id:
            self._ensure_tutor_available(
                session.tutor_id,
                session.scheduled_start,
                session.scheduled_end,
                "Tutor is no longer available during this time slot",
                exclude_session_id=session.id,
            )
        try:
            with self.repository.transaction():
                session.confirm(self.now())
                self._notify(
                    self._session_parties(session),
                    session,
                    "Session Confirmed",
                    f"Your session on {session.subject} has been confirmed.",
                    NotificationType.SESSION_CONFIRMED,
                    exclude=session.tutor_id,
                )
        except (RepositoryException, SQLAlchemyError) as exc:
            self._raise_conflict_from_store_error(exc)
        return session

    @BaseService.measure_operation("confirm_session")
    def confirm_session(self, session_id: str, tutor: User) -> TutoringSession:
        """PENDING -> CONFIRMED, by the assigned tutor only."""
        session = self.get_session(session_id)
        if session.tutor_id != tutor.id:
            raise ForbiddenException("Only the assigned tutor can confirm this session")
        if session.status != SessionStatus.PENDING.value:
            raise ValidationException(f"Cannot confirm session with status: {session.status}")
        return self._confirm(session)

    # ------------------------------------------------------------------
    # Update / tutor assignment
    # ------------------------------------------------------------------

    def _can_assign_tutor(self, session: TutoringSession, user_id: str) -> bool:
        return bool(
            session.consortium_id
            and self.consortium_repository.is_member(session.consortium_id, user_id)
        )

    @BaseService.measure_operation("update_session")
    def update_session(self, session_id: str, actor: User, data: SessionUpdate) -> TutoringSession:
        """
        Update non-status fields; a ``tutor_id`` assigns the tutor.

        Raises:
            ForbiddenException: Actor is not tutor or class creator
            ValidationException: Session is terminal or the time range is inverted
            ConflictException: A tutor is already assigned
            NotFoundException: Assigned tutor has no profile
            SessionConflictException: Tutor is busy for the interval
        """
        session = self.get_session(session_id)
        assigning = data.tutor_id is not None
        if not self._is_tutor_or_creator(session, actor.id) and not (
            assigning and self._can_assign_tutor(session, actor.id)
        ):
            raise ForbiddenException("Only the tutor or class creator can update session details")
        if session.is_terminal:
            raise ValidationException(f"Cannot update {session.status.lower()} sessions")

        changes: Dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"tutor_id"})
        cleared = [f for f in REQUIRED_UPDATE_FIELDS if f in changes and changes[f] is None]
        if cleared:
            raise ValidationException(
                f"Cannot clear required session fields: {', '.join(cleared)}",
                details={"fields": cleared},
            )
        new_start = ensure_utc(changes.get("scheduled_start") or session.scheduled_start)
        new_end = ensure_utc(changes.get("scheduled_end") or session.scheduled_end)
        times_changed = "scheduled_start" in changes or "scheduled_end" in changes
        if times_changed:
            self._validate_time_range(new_start, new_end)
            if session.tutor_id:
                self._ensure_tutor_available(
                    session.tutor_id,
                    new_start,
                    new_end,
                    "Tutor is not available during the new time slot",
                    exclude_session_id=session.id,
                )
            changes["scheduled_start"] = new_start
            changes["scheduled_end"] = new_end

        if "price" in changes:
            if to_decimal(changes["price"]) < 0:
                raise ValidationException("Price cannot be negative")
            changes["price"] = quantize_money(changes["price"])

        if assigning:
            tutor_id = data.tutor_id
            logger.info(f"Assigning tutor {tutor_id} to session {session_id}")
            if session.tutor_id:
                raise ConflictException(
                    "This session already has a tutor assigned. "
                    "Please unassign the current tutor first."
                )
            profile = self.user_repository.get_tutor_profile(tutor_id)
            if profile is None:
                raise NotFoundException("Tutor profile not found")
            self._ensure_tutor_available(
                tutor_id,
                new_start,
                new_end,
                "Tutor is not available during this time slot",
                exclude_session_id=session.id,
            )
            hours = Decimal(str((new_end - new_start).total_seconds() / 3600))
            changes["tutor_id"] = tutor_id
            changes["price"] = quantize_money(to_decimal(profile.hourly_rate) * hours)
            logger.info(
                f"Calculated price: {changes['price']} for {hours} hours at {profile.hourly_rate}/h"
            )

        try:
            with self.repository.transaction():
                for key, value in changes.items():
                    setattr(session, key, value)
                self.repository.flush()
                if assigning:
                    self._notify(
                        self._session_parties(session),
                        session,
                        "Tutor Assigned",
                        f"A tutor has been assigned to {session.subject}.",
                        NotificationType.TUTOR_ASSIGNED,
                        exclude=actor.id,
                    )
                elif times_changed:
                    self._notify(
                        self._session_parties(session),
                        session,
                        "Session Updated",
                        f"The schedule of {session.subject} has changed.",
                        NotificationType.SESSION_UPDATED,
                        exclude=actor.id,
                    )
        except (RepositoryException, SQLAlchemyError) as exc:
            self._raise_conflict_from_store_error(exc)
        return session

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    @BaseService.measure_operation("reschedule_session")
    def reschedule_session(
        self, session_id: str, actor: User, new_start: datetime, new_end: datetime
    ) -> TutoringSession:
        """Move a session; a CONFIRMED session goes back to PENDING."""
        session = self.get_session(session_id)
        if not self._is_participant(session, actor.id):
            raise ForbiddenException(
                "Only the tutor, class creator, or class members can reschedule this session"
            )
        self._ensure_not_terminal(session, "reschedule")
        self._validate_time_range(new_start, new_end)
        if session.tutor_id:
            self._ensure_tutor_available(
                session.tutor_id,
                new_start,
                new_end,
                "Tutor is not available during the new time slot",
                exclude_session_id=session.id,
            )

        old_start = session.start_utc
        try:
            with self.repository.transaction():
                session.scheduled_start = ensure_utc(new_start)
                session.scheduled_end = ensure_utc(new_end)
                if session.status == SessionStatus.CONFIRMED.value:
                    session.status = SessionStatus.PENDING.value
                    session.confirmed_at = None
                self.repository.flush()
                self._notify(
                    self._session_parties(session),
                    session,
                    "Session Rescheduled",
                    f"{session.subject} moved to {ensure_utc(new_start).isoformat()}.",
                    NotificationType.SESSION_RESCHEDULED,
                    exclude=actor.id,
                )
        except (RepositoryException, SQLAlchemyError) as exc:
            self._raise_conflict_from_store_error(exc)

        logger.info(
            "Session %s rescheduled from %s to %s by %s",
            session.id,
            old_start.isoformat(),
            ensure_utc(new_start).isoformat(),
            actor.id,
        )
        return session

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    @BaseService.measure_operation("update_session_status")
    def update_session_status(
        self, session_id: str, actor: User, status: str, reason: Optional[str] = None
    ) -> TutoringSession:
        """
        Explicit status change by the tutor or class creator.

        COMPLETED runs the full completion pipeline; CANCELLED goes through
        ``cancel_session`` so refunds apply.
        """
        session = self.get_session(session_id)
        if not self._is_tutor_or_creator(session, actor.id):
            raise ForbiddenException("Only the tutor or class creator can update session status")

        if status == SessionStatus.CONFIRMED.value:
            if session.status != SessionStatus.PENDING.value:
                raise ValidationException("Can only confirm pending sessions")
            return self._confirm(session)

        if status == SessionStatus.COMPLETED.value:
            if session.status != SessionStatus.CONFIRMED.value:
                raise ValidationException("Can only complete confirmed sessions")
            from .attendance_service import AttendanceService

            attendance_service = AttendanceService(
                self.db,
                clock=self.clock,
                notification_service=self.notification_service,
                settlement_service=self.settlement_service,
            )
            attendance_service.complete_session(session)
            return session

        if status == SessionStatus.CANCELLED.value:
            return self.cancel_session(session_id, actor, reason)["session"]

        raise ValidationException(f"Invalid status transition to {status}")

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    @BaseService.measure_operation("cancel_session")
    def cancel_session(
        self, session_id: str, actor: User, reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Cancel a session and refund outstanding holds by lead time.

        Returns ``{"session", "refund_amount", "refund_percentage"}``.
        """
        session = self.get_session(session_id)
        if not self._is_participant(session, actor.id):
            raise ForbiddenException(
                "Only the tutor, class creator, or class members can cancel this session"
            )
        if session.status == SessionStatus.COMPLETED.value:
            raise ValidationException("Cannot cancel a completed session")
        if session.status == SessionStatus.CANCELLED.value:
            raise ValidationException("Session is already cancelled")

        now = self.now()
        quote = refund_tier(session.price, session.scheduled_start, now)
        with self.transaction():
            session.cancel(actor.id, reason, now)
            self.repository.flush()
            self.settlement_service.refund_cancellation(session, quote)
            self._notify(
                self._session_parties(session),
                session,
                "Session Cancelled",
                f"{session.subject} on {session.start_utc.isoformat()} was cancelled."
                + (f" Reason: {reason}" if reason else ""),
                NotificationType.SESSION_CANCELLED,
                exclude=actor.id,
            )

        logger.info(
            "Session cancelled",
            extra={
                "session_id": session.id,
                "user_id": actor.id,
                "reason": reason,
                "refund_amount": str(quote.refund_amount),
                "refund_percentage": quote.refund_percentage,
            },
        )
        return {
            "session": session,
            "refund_amount": quote.refund_amount,
            "refund_percentage": quote.refund_percentage,
        }
