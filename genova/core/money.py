"""Decimal money helpers; amounts are kept to the cent."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

Number = Union[Decimal, float, int, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Number, rate: Number) -> Decimal:
    """``amount * rate`` rounded to the cent."""
    return quantize_money(to_decimal(amount) * to_decimal(rate))
