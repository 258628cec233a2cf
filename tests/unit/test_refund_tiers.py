"""
Tests for the cancellation refund tiers and the platform fee split.

Tiers: more than 24h ahead refunds 100%, more than 2h ahead 50%,
anything later 0%.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from genova.core.money import quantize_money
from genova.services.settlement_service import refund_tier, split_platform_fee

START = datetime(2030, 5, 1, 18, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "hours_before, percentage, refund",
    [
        (48, 1.0, Decimal("50.00")),
        (12, 0.5, Decimal("25.00")),
        (1, 0.0, Decimal("0.00")),
    ],
)
def test_refund_tiers(hours_before, percentage, refund):
    quote = refund_tier(Decimal("50.00"), START, START - timedelta(hours=hours_before))

    assert quote.refund_percentage == percentage
    assert quote.refund_amount == refund
    assert quote.hours_until_start == pytest.approx(hours_before)


def test_tier_boundaries_are_exclusive():
    exactly_24h = refund_tier(Decimal("40"), START, START - timedelta(hours=24))
    exactly_2h = refund_tier(Decimal("40"), START, START - timedelta(hours=2))

    assert exactly_24h.refund_percentage == 0.5
    assert exactly_2h.refund_percentage == 0.0


def test_cancelling_after_start_refunds_nothing():
    quote = refund_tier(Decimal("40"), START, START + timedelta(minutes=10))

    assert quote.refund_amount == Decimal("0.00")
    assert quote.hours_until_start < 0


def test_half_refund_rounds_to_cents():
    quote = refund_tier(Decimal("33.33"), START, START - timedelta(hours=5))

    assert quote.refund_amount == Decimal("16.67")


def test_platform_fee_split_sums_to_gross():
    fee, net = split_platform_fee(Decimal("20.00"))

    assert fee == Decimal("3.00")
    assert net == Decimal("17.00")


def test_platform_fee_split_rounds_half_up():
    fee, net = split_platform_fee(Decimal("10.10"))

    assert fee == Decimal("1.52")
    assert fee + net == quantize_money("10.10")
