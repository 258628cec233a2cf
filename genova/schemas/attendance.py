# genova/schemas/attendance.py
"""Attendance, check-in and checkout schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from ..models.attendance import AttendanceStatus
from ..services.checkin_codes import CheckInMethod
from .base import StandardizedModel, StrictRequestModel
from .session import SessionResponse


class CheckInRequest(StrictRequestModel):
    """A missing or blank ``code`` is reported by the service."""

    session_id: str
    method: CheckInMethod
    code: Optional[str] = None


class CheckOutRequest(StrictRequestModel):
    session_id: str


class AttendanceUpdate(StrictRequestModel):
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _require_change(self) -> "AttendanceUpdate":
        if self.status is None and self.notes is None:
            raise ValueError("status or notes is required")
        return self


class AttendanceResponse(StandardizedModel):
    id: str
    session_id: str
    student_id: str
    status: AttendanceStatus
    check_in_time: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class PinResponse(StandardizedModel):
    pin: str
    expires_in: int


class QrCodeResponse(StandardizedModel):
    qr_code: str
    expires_in: int


class CheckOutResponse(StandardizedModel):
    session: SessionResponse
    actual_duration: int
    scheduled_duration: int
    discrepancy: int
    flagged_for_review: bool


class StudentDashboardResponse(StandardizedModel):
    total_sessions: int
    attended_sessions: int
    absent_sessions: int
    late_sessions: int
    attendance_rate: float
    recent_attendances: List[AttendanceResponse]


class StudentStatistics(StandardizedModel):
    student_id: str
    student_name: str
    attended_sessions: int
    total_sessions: int
    attendance_rate: float


class ClassStatisticsResponse(StandardizedModel):
    class_id: str
    total_sessions: int
    average_attendance_rate: float
    student_statistics: List[StudentStatistics]
