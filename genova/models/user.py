# genova/models/user.py
"""
User and tutor profile models.

A User is any account on the platform (student, tutor or admin). Tutors
additionally own a TutorProfile carrying their hourly rate and the
counters the badge rules read.
"""

from enum import Enum
import logging

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


class User(Base):
    """
    Platform account.

    Attributes:
        wallet_balance: Internal wallet used for payment holds, payouts and refunds
        loyalty_points: Points earned through badges
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT.value)
    is_active = Column(Boolean, nullable=False, default=True)
    wallet_balance = Column(Numeric(12, 2), nullable=False, default=0)
    loyalty_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tutor_profile = relationship("TutorProfile", back_populates="user", uselist=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_tutor(self) -> bool:
        return self.role == UserRole.TUTOR.value

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class TutorProfile(Base):
    """Teaching profile attached to a tutor account."""

    __tablename__ = "tutor_profiles"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False, default=0)
    total_hours_taught = Column(Float, nullable=False, default=0.0)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="tutor_profile")

    def add_hours(self, hours: float) -> None:
        """Accrue taught hours after a completed session."""
        self.total_hours_taught = float(self.total_hours_taught or 0) + hours
        logger.debug(f"Tutor profile {self.id} now at {self.total_hours_taught:.2f} hours")
