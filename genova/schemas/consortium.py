# genova/schemas/consortium.py
"""Consortium revenue share schemas."""

from decimal import Decimal
from typing import List

from pydantic import Field

from .base import Money, StandardizedModel, StrictRequestModel


class RevenueShareItem(StrictRequestModel):
    tutor_id: str
    revenue_share: Decimal = Field(..., ge=0, le=100)


class RevenueSharesUpdate(StrictRequestModel):
    shares: List[RevenueShareItem] = Field(..., min_length=1)


class ConsortiumMemberResponse(StandardizedModel):
    tutor_id: str
    revenue_share: Money
