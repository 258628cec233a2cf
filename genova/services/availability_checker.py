# genova/services/availability_checker.py
"""
Availability Checker.

Decides whether a tutor is free for a time range by looking for
committed (PENDING or CONFIRMED) sessions overlapping it. Intervals are
half-open, so back-to-back sessions never conflict. Only calendar
conflicts are considered; no weekly availability is consulted.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import Clock, ensure_utc
from ..models.session import TutoringSession
from ..repositories import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from .base import BaseService

logger = logging.getLogger(__name__)


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """
    True when ``[a_start, a_end)`` and ``[b_start, b_end)`` share any instant.

    Symmetric in its two intervals; ``a_end == b_start`` is not an overlap.
    """
    return ensure_utc(a_start) < ensure_utc(b_end) and ensure_utc(a_end) > ensure_utc(b_start)


class AvailabilityChecker(BaseService):
    """Tutor calendar conflict detection."""

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    def find_conflicts(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[TutoringSession]:
        """Committed sessions of the tutor overlapping ``[start, end)``."""
        start_utc, end_utc = ensure_utc(start), ensure_utc(end)
        candidates = self.repository.get_conflicting_sessions(
            tutor_id, start_utc, end_utc, exclude_session_id
        )
        conflicts = [
            session
            for session in candidates
            if intervals_overlap(start_utc, end_utc, session.scheduled_start, session.scheduled_end)
        ]
        if conflicts:
            self.logger.info(
                f"Found {len(conflicts)} session conflicts for tutor {tutor_id} "
                f"between {start_utc.isoformat()} and {end_utc.isoformat()}"
            )
        return conflicts

    @BaseService.measure_operation("is_available")
    def is_available(
        self,
        tutor_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> bool:
        return not self.find_conflicts(tutor_id, start, end, exclude_session_id)

    @BaseService.measure_operation("check_tutor_availability")
    def check_tutor_availability(
        self, tutor_id: str, start: datetime, end: datetime
    ) -> Dict[str, Any]:
        """
        API-facing availability check.

        Raises:
            ValidationException: If the range is empty or inverted
            NotFoundException: If the tutor has no profile
        """
        if ensure_utc(end) <= ensure_utc(start):
            raise ValidationException("End time must be after start time")
        if self.user_repository.get_tutor_profile(tutor_id) is None:
            raise NotFoundException("Tutor profile not found")

        conflicts = self.find_conflicts(tutor_id, start, end)
        return {
            "tutor_id": tutor_id,
            "available": not conflicts,
            "conflicts": [
                {
                    "session_id": session.id,
                    "scheduled_start": ensure_utc(session.scheduled_start),
                    "scheduled_end": ensure_utc(session.scheduled_end),
                    "status": session.status,
                }
                for session in conflicts
            ],
        }
