# genova/services/badge_service.py
"""Badge evaluation and awarding, driven by outbox events."""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import Clock
from ..models.attendance import AttendanceStatus
from ..models.badge import ASSIDU, MENTOR, PEDAGOGUE, Badge, UserBadge
from ..repositories import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)

ATTENDANCE_WINDOW_DAYS = 30

BADGE_CATALOG: Dict[str, Tuple[str, str]] = {
    ASSIDU: ("Assidu", "Attended at least 95% of sessions over the last 30 days"),
    MENTOR: ("Mentor", "Taught 100 hours or more"),
    PEDAGOGUE: ("Pédagogue", "Average rating of 4.5 or more over at least 20 reviews"),
}


class BadgeService(BaseService):
    """Award badges to students (attendance) and tutors (hours, ratings)."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_badge_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.attendance_repository = RepositoryFactory.create_attendance_repository(db)
        self.notification_service = notification_service or NotificationService(db, clock)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def attendance_rate(self, student_id: str) -> Optional[float]:
        """
        Percent of PRESENT records over the last 30 days of COMPLETED sessions.

        None when the student has no such record.
        """
        since = self.now() - timedelta(days=ATTENDANCE_WINDOW_DAYS)
        records = self.attendance_repository.list_for_student_in_completed_sessions(
            student_id, since
        )
        if not records:
            return None
        present = sum(1 for r in records if r.status == AttendanceStatus.PRESENT.value)
        return present / len(records) * 100

    def check_attendance_badge(self, student_id: str) -> Optional[UserBadge]:
        rate = self.attendance_rate(student_id)
        if rate is None or rate < settings.attendance_badge_threshold:
            return None
        return self.award_badge(student_id, ASSIDU)

    def check_mentor_badge(self, tutor_id: str) -> Optional[UserBadge]:
        profile = self.user_repository.get_tutor_profile(tutor_id)
        if profile is None:
            return None
        if float(profile.total_hours_taught or 0) < settings.mentor_hours_threshold:
            return None
        return self.award_badge(tutor_id, MENTOR)

    def check_pedagogue_badge(self, tutor_id: str) -> Optional[UserBadge]:
        profile = self.user_repository.get_tutor_profile(tutor_id)
        if profile is None:
            return None
        if (
            float(profile.average_rating or 0) < settings.pedagogue_min_rating
            or int(profile.total_reviews or 0) < settings.pedagogue_min_reviews
        ):
            return None
        return self.award_badge(tutor_id, PEDAGOGUE)

    # ------------------------------------------------------------------
    # Awarding
    # ------------------------------------------------------------------

    def _get_or_create_badge(self, code: str) -> Badge:
        badge = self.repository.get_by_code(code)
        if badge is not None:
            return badge
        name, description = BADGE_CATALOG[code]
        return self.repository.create(
            code=code, name=name, description=description, points=settings.badge_points
        )

    def award_badge(self, user_id: str, code: str) -> Optional[UserBadge]:
        """
        Award ``code`` to ``user_id`` once.

        Returns the new award, or None if the user already holds the badge.
        """
        badge = self._get_or_create_badge(code)
        if self.repository.get_award(user_id, badge.id) is not None:
            return None

        award = self.repository.create_award(user_id, badge.id)
        self.user_repository.add_loyalty_points(user_id, int(badge.points or 0))
        self.notification_service.create_notification(
            user_id=user_id,
            title="Badge Earned!",
            message=f"You earned the {badge.name} badge and {badge.points} points.",
            type=NotificationType.BADGE_EARNED,
            data={"badge_code": badge.code, "points": badge.points},
        )
        self.log_operation("award_badge", user_id=user_id, badge_code=code)
        return award
