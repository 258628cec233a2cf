# genova/models/transaction.py
"""
Wallet transactions.

A SESSION_PAYMENT row in PENDING state is the payment hold placed by a
student for a session; settlement moves it to COMPLETED or REFUNDED.
"""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class TransactionType(str, Enum):
    SESSION_PAYMENT = "SESSION_PAYMENT"
    REFUND = "REFUND"
    PAYOUT = "PAYOUT"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    session_id = Column(String(26), ForeignKey("tutoring_sessions.id"), nullable=True, index=True)
    payer_id = Column(String(26), ForeignKey("users.id"), nullable=True, index=True)
    payee_id = Column(String(26), ForeignKey("users.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)
    transaction_type = Column(String(30), nullable=False, default=TransactionType.SESSION_PAYMENT.value)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    settled_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("TutoringSession", foreign_keys=[session_id])
    payer = relationship("User", foreign_keys=[payer_id])

    __table_args__ = (
        Index("ix_transactions_session_payer_status", "session_id", "payer_id", "status"),
    )
