"""Session and attendance domain events carried by the outbox."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional


@dataclass
class AttendanceCheckedIn:
    """Fired after a student checks in; triggers the attendance badge re-check."""

    event_type: ClassVar[str] = "attendance.checked_in"

    session_id: str
    student_id: str
    checked_in_at: datetime

    @property
    def aggregate_id(self) -> str:
        return self.session_id

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionCompleted:
    """Fired after a session reaches COMPLETED; triggers tutor badge checks."""

    event_type: ClassVar[str] = "session.completed"

    session_id: str
    tutor_id: Optional[str]
    completed_at: datetime

    @property
    def aggregate_id(self) -> str:
        return self.session_id

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NotificationRequested:
    """An in-app notification to persist for one user."""

    event_type: ClassVar[str] = "notification.requested"

    user_id: str
    title: str
    message: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def aggregate_id(self) -> str:
        return self.user_id

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
