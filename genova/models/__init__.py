"""
Database models for the Genova sessions backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .attendance import ABSENT_AUTO_NOTE, ATTENDED_STATUSES, Attendance, AttendanceStatus
from .badge import Badge, UserBadge
from .consortium import Consortium, ConsortiumMember
from .event_outbox import EventOutbox, EventOutboxStatus
from .notification import Notification
from .session import (
    COMMITTED_STATUSES,
    NO_OVERLAP_CONSTRAINT,
    TERMINAL_STATUSES,
    SessionStatus,
    TutoringSession,
)
from .study_class import ClassMember, StudyClass
from .transaction import Transaction, TransactionStatus, TransactionType
from .user import TutorProfile, User, UserRole

__all__ = [
    "ABSENT_AUTO_NOTE",
    "ATTENDED_STATUSES",
    "Attendance",
    "AttendanceStatus",
    "Badge",
    "ClassMember",
    "COMMITTED_STATUSES",
    "Consortium",
    "ConsortiumMember",
    "EventOutbox",
    "EventOutboxStatus",
    "NO_OVERLAP_CONSTRAINT",
    "Notification",
    "SessionStatus",
    "StudyClass",
    "TERMINAL_STATUSES",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "TutorProfile",
    "TutoringSession",
    "User",
    "UserBadge",
    "UserRole",
]
