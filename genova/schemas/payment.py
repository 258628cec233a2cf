# genova/schemas/payment.py
"""Payment hold and wallet schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from ..models.session import SessionStatus
from ..models.transaction import TransactionStatus, TransactionType
from .base import Money, StandardizedModel, StrictRequestModel


class PaymentHoldCreate(StrictRequestModel):
    session_id: str
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the session price")


class TransactionResponse(StandardizedModel):
    id: str
    session_id: Optional[str] = None
    payer_id: Optional[str] = None
    payee_id: Optional[str] = None
    amount: Money
    platform_fee: Money
    net_amount: Money
    transaction_type: TransactionType
    status: TransactionStatus
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None


class TransactionSessionSummary(StandardizedModel):
    id: str
    subject: str
    scheduled_start: datetime
    scheduled_end: datetime
    status: SessionStatus


class TransactionHistoryItem(TransactionResponse):
    session: Optional[TransactionSessionSummary] = None


class WalletResponse(StandardizedModel):
    user_id: str
    balance: Money
    loyalty_points: int
