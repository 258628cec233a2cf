# genova/schemas/session.py
"""Tutoring session schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ..models.session import SessionStatus
from .base import Money, StandardizedModel, StrictRequestModel


class SessionCreate(StrictRequestModel):
    """
    Book a session for a class.

    Exactly one of ``tutor_id`` / ``consortium_id`` must be given; the
    service enforces this so the error message is stable.
    """

    class_id: str
    tutor_id: Optional[str] = None
    consortium_id: Optional[str] = None
    scheduled_start: datetime
    scheduled_end: datetime
    subject: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"))
    location: Optional[str] = Field(None, max_length=255)
    online_meeting_link: Optional[str] = Field(None, max_length=500)

    @field_validator("subject")
    @classmethod
    def strip_subject(cls, v: str) -> str:
        return v.strip()


class SessionUpdate(StrictRequestModel):
    """Partial update; a ``tutor_id`` here is a tutor assignment."""

    tutor_id: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    subject: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    location: Optional[str] = Field(None, max_length=255)
    online_meeting_link: Optional[str] = Field(None, max_length=500)


class SessionStatusUpdate(StrictRequestModel):
    status: Literal["CONFIRMED", "COMPLETED", "CANCELLED"]
    reason: Optional[str] = Field(None, max_length=1000)


class SessionCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SessionReschedule(StrictRequestModel):
    scheduled_start: datetime
    scheduled_end: datetime


class SessionResponse(StandardizedModel):
    id: str
    class_id: str
    tutor_id: Optional[str] = None
    consortium_id: Optional[str] = None
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    subject: str
    description: Optional[str] = None
    price: Money
    location: Optional[str] = None
    online_meeting_link: Optional[str] = None
    status: SessionStatus
    created_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    cancellation_reason: Optional[str] = None


class CancellationResponse(StandardizedModel):
    session: SessionResponse
    refund_amount: Money
    refund_percentage: float


class AvailabilityConflict(StandardizedModel):
    session_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    status: SessionStatus


class AvailabilityResponse(StandardizedModel):
    tutor_id: str
    available: bool
    conflicts: List[AvailabilityConflict] = Field(default_factory=list)
