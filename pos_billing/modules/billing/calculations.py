"""
billing/calculations.py

Pure money math for carts, drafts and bills. No DB, no Qt.

Rounding policy:
  - subtotal is kept unrounded (sum of unit_price * quantity),
  - tax is rounded half-up to cents when computed,
  - total = round2(after_discount) + tax.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from ...utils.helpers import NumberLike, ZERO, round2, to_decimal

__all__ = ["Totals", "line_total", "clamp_discount", "compute_totals"]


class _Line(Protocol):
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO

    @property
    def after_discount(self) -> Decimal:
        return self.subtotal - self.discount_amount


def line_total(unit_price: NumberLike, quantity: int) -> Decimal:
    return to_decimal(unit_price) * int(quantity)


def clamp_discount(discount_value: NumberLike, subtotal: Decimal) -> Decimal:
    """
    Flat discount applied to a subtotal: negatives count as no discount and the
    discount never exceeds the subtotal, so the discounted amount floors at zero.
    """
    d = to_decimal(discount_value or 0)
    if d <= 0:
        return ZERO
    return min(d, subtotal) if subtotal > 0 else ZERO


def compute_totals(
    lines: Iterable[_Line],
    discount_value: NumberLike = 0,
    tax_rate_percent: NumberLike = 0,
    tax_enabled: bool = False,
) -> Totals:
    """
    subtotal       = sum(unit_price * quantity)
    after_discount = max(0, subtotal - discount)
    tax            = round2(after_discount * rate / 100) if tax_enabled else 0
    total          = round2(after_discount) + tax

    An empty line set yields all zeros.
    """
    subtotal = sum((line_total(ln.unit_price, ln.quantity) for ln in lines), ZERO)
    discount = clamp_discount(discount_value, subtotal)
    after = subtotal - discount

    rate = to_decimal(tax_rate_percent or 0)
    tax = round2(after * rate / 100) if tax_enabled and rate > 0 else ZERO

    return Totals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total=round2(after) + tax,
    )
