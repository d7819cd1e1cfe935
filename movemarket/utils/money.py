from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP


def _to_float(amount: float | Decimal | int | str | None) -> float:
    try:
        return float(amount or 0)
    except Exception:
        return 0.0


def money_major_to_minor(amount: float | Decimal | int | str | None) -> int:
    """Convert a major-unit amount to processor minor units.

    Rounds half up on the float product (``floor(amount * 100 + 0.5)``).
    This must match the processor's own rounding; decimal rounding gives a
    different result for amounts such as 1.005.
    """
    value = _to_float(amount)
    if not math.isfinite(value) or value <= 0:
        return 0
    return int(math.floor(value * 100 + 0.5))


def money_minor_to_major(minor: int | float | Decimal | None) -> float:
    try:
        parsed = Decimal(int(minor or 0))
    except Exception:
        parsed = Decimal("0")
    return float((parsed / Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percent_of(amount: float | Decimal | int | None, rate: float | Decimal | int | None) -> float:
    try:
        base = Decimal(str(amount or 0))
        pct = Decimal(str(rate or 0))
    except Exception:
        return 0.0
    raw = (base * pct) / Decimal("100")
    return float(raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_inr(amount: float | Decimal | int | None) -> str:
    value = _to_float(amount)
    if value == int(value):
        return f"₹{int(value)}"
    return f"₹{value:.2f}"
