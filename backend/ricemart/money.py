from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize a number to two decimal places (kyat amounts are stored with cents)."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value) -> Optional[str]:
    if value is None:
        return None
    return str(to_money(value))
