# genova/models/session.py
"""
Tutoring session model.

A session is one scheduled engagement between a study class and either
a single tutor or a consortium. Lifecycle:

    PENDING -> CONFIRMED -> COMPLETED
    PENDING | CONFIRMED -> CANCELLED

COMPLETED and CANCELLED are terminal. Rows are never hard-deleted.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Optional

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.timezone_utils import ensure_utc, utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)

NO_OVERLAP_CONSTRAINT = "tutoring_sessions_no_overlap_per_tutor"


def flagged_description(description: Optional[str], discrepancy_minutes: int) -> str:
    """Append the duration-discrepancy marker, after a blank line if text exists."""
    marker = f"[FLAGGED] Duration discrepancy: {discrepancy_minutes} minutes"
    return f"{description}\n\n{marker}" if description else marker


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value)
COMMITTED_STATUSES = (SessionStatus.PENDING.value, SessionStatus.CONFIRMED.value)


class TutoringSession(Base):
    """
    Scheduled tutoring engagement.

    Exactly one of tutor_id / consortium_id is set at creation; a session
    created for a consortium may later receive a tutor assignment.
    """

    __tablename__ = "tutoring_sessions"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    class_id = Column(String(26), ForeignKey("classes.id"), nullable=False, index=True)
    tutor_id = Column(String(26), ForeignKey("users.id"), nullable=True, index=True)
    consortium_id = Column(String(26), ForeignKey("consortiums.id"), nullable=True, index=True)

    scheduled_start = Column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_end = Column(DateTime(timezone=True), nullable=False)
    actual_start = Column(DateTime(timezone=True), nullable=True)
    actual_end = Column(DateTime(timezone=True), nullable=True)

    subject = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    location = Column(String(255), nullable=True)
    online_meeting_link = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False, default=SessionStatus.PENDING.value, index=True)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    study_class = relationship("StudyClass", foreign_keys=[class_id])
    tutor = relationship("User", foreign_keys=[tutor_id])
    consortium = relationship("Consortium", foreign_keys=[consortium_id])
    attendances = relationship("Attendance", back_populates="session")

    __table_args__ = (
        CheckConstraint("scheduled_end > scheduled_start", name="ck_tutoring_sessions_time_order"),
        CheckConstraint("price >= 0", name="ck_tutoring_sessions_price_non_negative"),
        Index("ix_tutoring_sessions_tutor_window", "tutor_id", "scheduled_start", "scheduled_end"),
    )

    def __repr__(self) -> str:
        return f"<TutoringSession {self.id} {self.status} {self.scheduled_start}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return self.status in COMMITTED_STATUSES

    @property
    def start_utc(self) -> datetime:
        return ensure_utc(self.scheduled_start)

    @property
    def end_utc(self) -> datetime:
        return ensure_utc(self.scheduled_end)

    @property
    def scheduled_hours(self) -> float:
        return (self.end_utc - self.start_utc).total_seconds() / 3600

    def confirm(self, at: Optional[datetime] = None) -> None:
        self.status = SessionStatus.CONFIRMED.value
        self.confirmed_at = at or utc_now()
        logger.info(f"Session {self.id} confirmed")

    def cancel(
        self, cancelled_by_user_id: str, reason: Optional[str] = None, at: Optional[datetime] = None
    ) -> None:
        """Cancel this session."""
        self.status = SessionStatus.CANCELLED.value
        self.cancelled_at = at or utc_now()
        self.cancelled_by_id = cancelled_by_user_id
        self.cancellation_reason = reason
        logger.info(f"Session {self.id} cancelled by user {cancelled_by_user_id}")


# The store is the source of truth for tutor double-booking on PostgreSQL.
event.listen(
    TutoringSession.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    TutoringSession.__table__,
    "after_create",
    DDL(
        f"""
        ALTER TABLE tutoring_sessions
          ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT}
          EXCLUDE USING gist (
            tutor_id WITH =,
            tstzrange(scheduled_start, scheduled_end, '[)') WITH &&
          )
          WHERE (tutor_id IS NOT NULL AND status IN ('PENDING', 'CONFIRMED'))
        """
    ).execute_if(dialect="postgresql"),
)
