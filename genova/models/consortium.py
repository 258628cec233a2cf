# genova/models/consortium.py
"""Tutor consortiums sharing sessions and splitting revenue."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Consortium(Base):
    __tablename__ = "consortiums"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(200), nullable=False)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("ConsortiumMember", back_populates="consortium")


class ConsortiumMember(Base):
    """
    Membership of a tutor in a consortium.

    revenue_share is a percentage; the shares of one consortium are
    expected to sum to 100.
    """

    __tablename__ = "consortium_members"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    consortium_id = Column(String(26), ForeignKey("consortiums.id"), nullable=False, index=True)
    tutor_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    revenue_share = Column(Numeric(5, 2), nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    consortium = relationship("Consortium", back_populates="members")
    tutor = relationship("User", foreign_keys=[tutor_id])

    __table_args__ = (
        UniqueConstraint("consortium_id", "tutor_id", name="uq_consortium_members_tutor"),
        CheckConstraint(
            "revenue_share >= 0 AND revenue_share <= 100",
            name="ck_consortium_members_share_range",
        ),
    )
