from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Tuple

CENT = Decimal("0.01")


def to_amount(value) -> Decimal:
    """Coerce a price or amount to a two-place Decimal without float drift."""
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return to_amount(unit_price * quantity)


def order_total(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    total = Decimal("0.00")
    for unit_price, quantity in lines:
        total += line_total(unit_price, quantity)
    return to_amount(total)


def to_minor_units(amount: Decimal) -> int:
    # paise / cents, the unit payment gateways expect
    return int((to_amount(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
