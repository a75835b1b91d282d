"""
Pricing -- per-line and per-order monetary computation.

Responsibility:
    Turns a unit price, a quantity and the medicine's tax and discount
    percentages into a priced line, and sums priced lines into order totals.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic.  Floats are rejected.
    - Per-unit tax and discount are rounded ROUND_HALF_UP to 2 places BEFORE
      being multiplied by quantity, so every order-level figure is an exact
      sum of line-level figures.
    - total_amount == subtotal + tax_amount - discount_amount, and
      total_amount == sum(line_total).

Failure modes:
    - TypeError when a float (or non-numeric) price is supplied.
    - ValueError on negative price, non-positive quantity, or a percentage
      outside 0-100.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from pharmacy_kernel.db.types import round_money, to_money

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class PricedLine:
    """
    One priced order line.

    unit_tax and unit_discount are per unit; subtotal is unit_price * quantity
    (before tax and discount); line_total is
    (unit_price + unit_tax - unit_discount) * quantity.
    """

    quantity: int
    unit_price: Decimal
    unit_tax: Decimal
    unit_discount: Decimal
    subtotal: Decimal
    line_total: Decimal

    @property
    def tax_total(self) -> Decimal:
        return self.unit_tax * self.quantity

    @property
    def discount_total(self) -> Decimal:
        return self.unit_discount * self.quantity


@dataclass(frozen=True, slots=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def _check_percentage(name: str, value: Decimal) -> Decimal:
    value = to_money(value)
    if value < _ZERO or value > _HUNDRED:
        raise ValueError(f"{name} must be between 0 and 100, got {value}")
    return value


def price_line(
    unit_price: Decimal | int | str,
    quantity: int,
    tax_rate: Decimal | int | str = _ZERO,
    discount_percentage: Decimal | int | str = _ZERO,
) -> PricedLine:
    """
    Price a single order line.

    Args:
        unit_price: Price of one unit (Decimal, int or numeric string).
        quantity: Units ordered, must be > 0.
        tax_rate: Tax percentage 0-100.
        discount_percentage: Discount percentage 0-100.

    Returns:
        PricedLine with 2-place per-unit figures.
    """
    price = to_money(unit_price)
    if price < _ZERO:
        raise ValueError(f"Unit price cannot be negative: {price}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"Quantity must be a positive integer, got {quantity!r}")
    rate = _check_percentage("tax_rate", tax_rate)
    pct = _check_percentage("discount_percentage", discount_percentage)

    price = round_money(price)
    unit_tax = round_money(price * rate / _HUNDRED)
    unit_discount = round_money(price * pct / _HUNDRED)

    return PricedLine(
        quantity=quantity,
        unit_price=price,
        unit_tax=unit_tax,
        unit_discount=unit_discount,
        subtotal=price * quantity,
        line_total=(price + unit_tax - unit_discount) * quantity,
    )


def total_order(lines: Iterable[PricedLine]) -> OrderTotals:
    """Sum priced lines into order totals."""
    subtotal = tax = discount = total = _ZERO
    for line in lines:
        subtotal += line.subtotal
        tax += line.tax_total
        discount += line.discount_total
        total += line.line_total
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        total_amount=total,
    )
