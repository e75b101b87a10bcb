from decimal import Decimal

import pytest

from ebtracker.policy.effects import LedgerAdjustment
from ebtracker.policy.ledger import progress_percentage, remaining_hours


@pytest.mark.parametrize(
    ("allocated", "used", "expected"),
    [
        ("100", "10", 10),
        ("115", "10", 9),
        ("8", "1", 13),
        ("200", "1", 1),
        ("200", "0.99", 0),
        ("100", "150", 100),
        ("100", "-5", 0),
        ("0", "10", 0),
        ("-10", "5", 0),
    ],
)
def test_progress_percentage_is_rounded_and_clamped(allocated: str, used: str, expected: int) -> None:
    assert progress_percentage(Decimal(allocated), Decimal(used)) == expected


def test_remaining_hours_can_go_negative() -> None:
    assert remaining_hours(Decimal("100.00"), Decimal("90.50")) == Decimal("9.50")
    assert remaining_hours(Decimal("10"), Decimal("12.25")) == Decimal("-2.25")


def test_ledger_adjustment_only_targets_ledger_columns() -> None:
    with pytest.raises(ValueError):
        LedgerAdjustment(project_id=None, field="quote_value", delta=Decimal("1"))
