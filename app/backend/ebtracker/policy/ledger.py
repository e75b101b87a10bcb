"""Project ledger arithmetic."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def remaining_hours(allocated: Decimal, used: Decimal) -> Decimal:
    return Decimal(allocated) - Decimal(used)


def progress_percentage(allocated: Decimal, used: Decimal) -> int:
    """Share of allocated hours consumed, rounded half-up and clamped to [0, 100]."""

    allocated = Decimal(allocated)
    used = Decimal(used)
    if allocated <= ZERO:
        return 0

    percentage = (used / allocated * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(min(max(percentage, ZERO), HUNDRED))
