"""Money helper tests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from balance_ledger.utils.money import money_str, quantize, to_decimal


def test_quantize_rounds_half_up_to_cents() -> None:
    assert quantize(Decimal("6.365")) == Decimal("6.37")
    assert quantize(Decimal("0.004")) == Decimal("0.00")


def test_to_decimal_accepts_numeric_strings_and_floats() -> None:
    assert to_decimal("106.50") == Decimal("106.50")
    assert to_decimal(0.1) == Decimal("0.1")


@pytest.mark.parametrize("value", [True, "abc", "NaN", float("inf")])
def test_to_decimal_rejects_non_amounts(value: object) -> None:
    with pytest.raises(ValueError):
        to_decimal(value)


def test_money_str_always_has_two_places() -> None:
    assert money_str(Decimal("106")) == "106.00"
