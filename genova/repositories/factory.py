# genova/repositories/factory.py
"""
Repository factory.

Centralizes repository creation so services never construct data
access objects directly.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

if TYPE_CHECKING:
    from .attendance_repository import AttendanceRepository
    from .badge_repository import BadgeRepository
    from .class_repository import ClassRepository
    from .consortium_repository import ConsortiumRepository
    from .event_outbox_repository import EventOutboxRepository
    from .notification_repository import NotificationRepository
    from .session_repository import SessionRepository
    from .transaction_repository import TransactionRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_session_repository(db: Session) -> "SessionRepository":
        from .session_repository import SessionRepository

        return SessionRepository(db)

    @staticmethod
    def create_class_repository(db: Session) -> "ClassRepository":
        from .class_repository import ClassRepository

        return ClassRepository(db)

    @staticmethod
    def create_attendance_repository(db: Session) -> "AttendanceRepository":
        from .attendance_repository import AttendanceRepository

        return AttendanceRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_transaction_repository(db: Session) -> "TransactionRepository":
        from .transaction_repository import TransactionRepository

        return TransactionRepository(db)

    @staticmethod
    def create_consortium_repository(db: Session) -> "ConsortiumRepository":
        from .consortium_repository import ConsortiumRepository

        return ConsortiumRepository(db)

    @staticmethod
    def create_notification_repository(db: Session) -> "NotificationRepository":
        from .notification_repository import NotificationRepository

        return NotificationRepository(db)

    @staticmethod
    def create_badge_repository(db: Session) -> "BadgeRepository":
        from .badge_repository import BadgeRepository

        return BadgeRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
