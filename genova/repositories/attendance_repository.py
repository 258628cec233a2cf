# genova/repositories/attendance_repository.py
"""Attendance data access."""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.attendance import Attendance, AttendanceStatus
from ..models.session import SessionStatus, TutoringSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AttendanceRepository(BaseRepository[Attendance]):
    def __init__(self, db: Session):
        super().__init__(db, Attendance)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Attendance.session))

    def get_for_student(self, session_id: str, student_id: str) -> Optional[Attendance]:
        return cast(
            Optional[Attendance],
            self.db.query(Attendance)
            .filter(Attendance.session_id == session_id, Attendance.student_id == student_id)
            .first(),
        )

    def list_for_session(self, session_id: str) -> List[Attendance]:
        query = (
            self.db.query(Attendance)
            .options(joinedload(Attendance.student))
            .filter(Attendance.session_id == session_id)
            .order_by(Attendance.created_at.asc(), Attendance.id.asc())
        )
        return self._execute_query(query)

    def get_recorded_student_ids(self, session_id: str) -> set[str]:
        rows = (
            self.db.query(Attendance.student_id).filter(Attendance.session_id == session_id).all()
        )
        return {row[0] for row in rows}

    def create_absent_if_missing(
        self, session_id: str, student_id: str, notes: str
    ) -> Optional[Attendance]:
        """
        Insert an ABSENT row unless one already exists for the pair.

        A concurrent insert that wins the unique constraint is treated as
        "already recorded" and yields None.
        """
        if self.get_for_student(session_id, student_id) is not None:
            return None
        try:
            with self.db.begin_nested():
                entity = Attendance(
                    session_id=session_id,
                    student_id=student_id,
                    status=AttendanceStatus.ABSENT.value,
                    check_in_time=None,
                    notes=notes,
                )
                self.db.add(entity)
                self.db.flush()
            return entity
        except IntegrityError:
            self.logger.info(
                "Attendance for student %s in session %s recorded concurrently; skipping",
                student_id,
                session_id,
            )
            return None
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking absence: {str(e)}")
            raise RepositoryException(f"Failed to mark absence: {str(e)}")

    def create_present(
        self, session_id: str, student_id: str, check_in_time: datetime
    ) -> Optional[Attendance]:
        """
        Insert a PRESENT row for a check-in.

        Returns None when a concurrent check-in already holds the unique
        (session, student) slot.
        """
        try:
            with self.db.begin_nested():
                entity = Attendance(
                    session_id=session_id,
                    student_id=student_id,
                    status=AttendanceStatus.PRESENT.value,
                    check_in_time=check_in_time,
                )
                self.db.add(entity)
                self.db.flush()
            return entity
        except IntegrityError:
            self.logger.info(
                "Student %s checked in to session %s concurrently", student_id, session_id
            )
            return None
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording check-in: {str(e)}")
            raise RepositoryException(f"Failed to record check-in: {str(e)}")

    def list_for_student(
        self,
        student_id: str,
        limit: Optional[int] = None,
        *,
        class_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Attendance]:
        query = (
            self.db.query(Attendance)
            .options(joinedload(Attendance.session))
            .join(TutoringSession, TutoringSession.id == Attendance.session_id)
            .filter(Attendance.student_id == student_id)
        )
        if class_id:
            query = query.filter(TutoringSession.class_id == class_id)
        if start_date:
            query = query.filter(TutoringSession.scheduled_start >= start_date)
        if end_date:
            query = query.filter(TutoringSession.scheduled_start <= end_date)
        query = query.order_by(TutoringSession.scheduled_start.desc())
        if limit:
            query = query.limit(limit)
        return self._execute_query(query)

    def list_for_student_in_completed_sessions(
        self, student_id: str, since: datetime
    ) -> List[Attendance]:
        """Attendance of ``student_id`` in COMPLETED sessions starting at or after ``since``."""
        query = (
            self.db.query(Attendance)
            .join(TutoringSession, TutoringSession.id == Attendance.session_id)
            .filter(
                Attendance.student_id == student_id,
                TutoringSession.status == SessionStatus.COMPLETED.value,
                TutoringSession.scheduled_start >= since,
            )
        )
        return self._execute_query(query)

    def list_for_class(self, class_id: str) -> List[Attendance]:
        query = (
            self.db.query(Attendance)
            .join(TutoringSession, TutoringSession.id == Attendance.session_id)
            .filter(TutoringSession.class_id == class_id)
        )
        return self._execute_query(query)
