"""
billing/payment_status.py

Pure payment resolution, shared by finalize/checkout and by due settlement.

    cash -> paid = total, due = 0, status 'paid'
    due  -> paid = supplied (default 0, capped at total; excess is change)
            due  = max(0, total - paid)
            status = 'paid' if due <= 0 else 'partial' if paid > 0 else 'unpaid'
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ...constants import PAYMENT_CASH, PAYMENT_DUE, PAYMENT_TYPES
from ...utils.helpers import NumberLike, ZERO, round2, to_decimal
from .errors import ValidationError

__all__ = ["PaymentResolution", "status_from_paid", "resolve_payment", "apply_settlement"]


@dataclass(frozen=True)
class PaymentResolution:
    payment_type: str
    payment_status: str
    paid_amount: Decimal
    due_amount: Decimal
    change: Decimal = ZERO


def status_from_paid(due: Decimal, paid: Decimal) -> str:
    if due <= 0:
        return "paid"
    if paid > 0:
        return "partial"
    return "unpaid"


def _parse_paid(paid_amount: NumberLike | None) -> Decimal:
    if paid_amount is None or (isinstance(paid_amount, str) and not paid_amount.strip()):
        return ZERO
    try:
        paid = to_decimal(paid_amount)
    except ValueError as e:
        raise ValidationError("Paid amount must be a number.") from e
    if not paid.is_finite():
        raise ValidationError("Paid amount must be a number.")
    if paid < 0:
        raise ValidationError("Paid amount cannot be negative.")
    return round2(paid)


def resolve_payment(
    total: NumberLike,
    payment_type: str,
    paid_amount: NumberLike | None = None,
) -> PaymentResolution:
    total_d = round2(total)
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Payment type must be one of: {', '.join(PAYMENT_TYPES)}.")

    if payment_type == PAYMENT_CASH:
        return PaymentResolution(PAYMENT_CASH, "paid", total_d, ZERO)

    paid = _parse_paid(paid_amount)
    change = ZERO
    if paid > total_d:
        change = paid - total_d
        paid = total_d
    due = max(ZERO, total_d - paid)
    return PaymentResolution(PAYMENT_DUE, status_from_paid(due, paid), paid, due, change)


def apply_settlement(
    total: NumberLike,
    paid_so_far: NumberLike,
    amount: NumberLike,
    payment_type: str = PAYMENT_DUE,
) -> PaymentResolution:
    """
    State of a completed bill after one more payment of `amount`, derived with
    the same rule as at finalize time. The bill keeps its original payment type.
    """
    r = resolve_payment(total, PAYMENT_DUE, round2(paid_so_far) + round2(amount))
    return PaymentResolution(payment_type, r.payment_status, r.paid_amount, r.due_amount, r.change)
