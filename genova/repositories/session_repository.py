# genova/repositories/session_repository.py
"""
Session repository.

Data access for tutoring sessions, including the calendar conflict
query used by the availability checker and the conditional status
flip used at checkout.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, cast

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.session import COMMITTED_STATUSES, SessionStatus, TutoringSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository[TutoringSession]):
    """Repository for tutoring session queries and guarded updates."""

    def __init__(self, db: Session):
        super().__init__(db, TutoringSession)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(TutoringSession.study_class))

    # Conflict queries

    def get_conflicting_sessions(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[TutoringSession]:
        """
        Committed sessions of ``tutor_id`` overlapping ``[start, end)``.

        Half-open comparison: a session ending exactly at ``start`` is not
        returned.
        """
        try:
            query = self.db.query(TutoringSession).filter(
                TutoringSession.tutor_id == tutor_id,
                TutoringSession.status.in_(COMMITTED_STATUSES),
                TutoringSession.scheduled_start < end,
                TutoringSession.scheduled_end > start,
            )
            if exclude_session_id:
                query = query.filter(TutoringSession.id != exclude_session_id)
            return cast(List[TutoringSession], query.order_by(TutoringSession.scheduled_start).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting sessions for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflicting sessions: {str(e)}")

    # Listings

    def list_sessions(
        self,
        *,
        class_ids: Optional[Iterable[str]] = None,
        tutor_id: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        newest_first: bool = False,
    ) -> List[TutoringSession]:
        """
        Sessions belonging to any of ``class_ids`` or taught by ``tutor_id``.

        Ordered by scheduled start.
        """
        scopes = []
        ids = list(class_ids or [])
        if ids:
            scopes.append(TutoringSession.class_id.in_(ids))
        if tutor_id:
            scopes.append(TutoringSession.tutor_id == tutor_id)
        if not scopes:
            return []

        query = self._build_query().filter(or_(*scopes))
        if statuses:
            query = query.filter(TutoringSession.status.in_(statuses))
        if start_date:
            query = query.filter(TutoringSession.scheduled_start >= start_date)
        if end_date:
            query = query.filter(TutoringSession.scheduled_start <= end_date)
        order = (
            TutoringSession.scheduled_start.desc()
            if newest_first
            else TutoringSession.scheduled_start.asc()
        )
        return self._execute_query(query.order_by(order))

    def get_confirmed_ended_before(self, cutoff: datetime, limit: int = 200) -> List[TutoringSession]:
        """CONFIRMED sessions whose scheduled end is at or before ``cutoff``."""
        query = (
            self._build_query()
            .filter(
                TutoringSession.status == SessionStatus.CONFIRMED.value,
                TutoringSession.scheduled_end <= cutoff,
            )
            .order_by(TutoringSession.scheduled_end.asc())
            .limit(limit)
        )
        return self._execute_query(query)

    def get_confirmed_starting_between(
        self, window_start: datetime, window_end: datetime
    ) -> List[TutoringSession]:
        """CONFIRMED sessions with ``window_start <= scheduled_start < window_end``."""
        query = self._build_query().filter(
            TutoringSession.status == SessionStatus.CONFIRMED.value,
            TutoringSession.scheduled_start >= window_start,
            TutoringSession.scheduled_start < window_end,
        )
        return self._execute_query(query)

    # Guarded updates

    def complete_if_confirmed(
        self,
        session_id: str,
        *,
        actual_start: Optional[datetime],
        actual_end: Optional[datetime],
        completed_at: datetime,
        description: Optional[str],
    ) -> bool:
        """
        Flip a session to COMPLETED only if it is still CONFIRMED.

        Returns False when another writer changed the status first.
        """
        try:
            result = self.db.execute(
                update(TutoringSession)
                .where(
                    TutoringSession.id == session_id,
                    TutoringSession.status == SessionStatus.CONFIRMED.value,
                )
                .values(
                    status=SessionStatus.COMPLETED.value,
                    actual_start=actual_start,
                    actual_end=actual_end,
                    completed_at=completed_at,
                    description=description,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error completing session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to complete session: {str(e)}")
