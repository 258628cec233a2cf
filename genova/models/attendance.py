# genova/models/attendance.py
"""Per-student attendance records for a session."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

ABSENT_AUTO_NOTE = "Automatically marked absent - no check-in recorded"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"


ATTENDED_STATUSES = (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value)


class Attendance(Base):
    """
    At most one row per (session, student).

    Created by a successful check-in (PRESENT with check_in_time) or by
    absence marking after the session ends (ABSENT, no check_in_time).
    """

    __tablename__ = "attendances"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    session_id = Column(String(26), ForeignKey("tutoring_sessions.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    session = relationship("TutoringSession", back_populates="attendances")
    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_attendances_session_student"),
    )

    @property
    def has_checked_in(self) -> bool:
        return self.check_in_time is not None

    def mark_present(self, at: datetime) -> None:
        self.status = AttendanceStatus.PRESENT.value
        self.check_in_time = at
