# tests/unit/test_money.py

from decimal import Decimal

import pytest

from tableside.domain.money import line_total, order_total, to_amount, to_minor_units


def test_to_amount_quantizes_to_cents():
    assert to_amount("12.345") == Decimal("12.35")
    assert to_amount(7) == Decimal("7.00")


def test_float_inputs_do_not_drift():
    assert to_amount(0.1) + to_amount(0.2) == Decimal("0.30")


@pytest.mark.parametrize("value", ["abc", None, "NaN", "Infinity"])
def test_to_amount_rejects_non_amounts(value):
    with pytest.raises(ValueError):
        to_amount(value)


def test_order_total_is_exact_sum_of_lines():
    lines = [(Decimal("50.00"), 2), (Decimal("120.00"), 1)]

    assert order_total(lines) == Decimal("220.00")


def test_order_total_of_many_small_prices():
    lines = [(Decimal("0.10"), 1)] * 3

    assert order_total(lines) == Decimal("0.30")


def test_line_total():
    assert line_total(Decimal("19.99"), 3) == Decimal("59.97")


def test_minor_units():
    assert to_minor_units(Decimal("220.00")) == 22000
    assert to_minor_units(Decimal("0.05")) == 5
