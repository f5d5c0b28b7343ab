"""
Bills as loaded from storage, one type per lifecycle state.

Only a DraftBill can be updated, finalized or cancelled; the controller's
lifecycle operations are typed to accept nothing else.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional, Union

from ...constants import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_DRAFT
from ...database.repositories.bills_repo import BillItem, BillTotals, BillsRepo, PaymentFields
from ...utils.helpers import to_decimal


@dataclass(frozen=True)
class _BillBase:
    bill_id: int
    business_id: int
    bill_number: str
    customer_id: Optional[int]
    customer_name: Optional[str]
    created_by: Optional[int]
    created_at: str
    items: tuple[BillItem, ...]
    totals: BillTotals
    notes: Optional[str]


@dataclass(frozen=True)
class DraftBill(_BillBase):
    status = STATUS_DRAFT

    @property
    def reserved_units(self) -> dict[int, int]:
        """Units this draft holds, per product id."""
        c: Counter = Counter()
        for it in self.items:
            c[it.product_id] += it.quantity
        return dict(c)


@dataclass(frozen=True)
class CompletedBill(_BillBase):
    payment: PaymentFields = None  # type: ignore[assignment]
    completed_at: Optional[str] = None
    status = STATUS_COMPLETED


@dataclass(frozen=True)
class CancelledBill(_BillBase):
    cancelled_at: Optional[str] = None
    status = STATUS_CANCELLED


Bill = Union[DraftBill, CompletedBill, CancelledBill]


def load_bill(bills: BillsRepo, bill_id: int) -> Optional[Bill]:
    h = bills.get_header(bill_id)
    if h is None:
        return None
    common = dict(
        bill_id=int(h["bill_id"]),
        business_id=int(h["business_id"]),
        bill_number=h["bill_number"],
        customer_id=h["customer_id"],
        customer_name=h["customer_name"],
        created_by=h["created_by"],
        created_at=h["created_at"],
        items=tuple(bills.list_items(bill_id)),
        totals=BillTotals(
            subtotal=to_decimal(h["subtotal"]),
            discount_value=to_decimal(h["discount_value"]),
            discount_amount=to_decimal(h["discount_amount"]),
            tax_amount=to_decimal(h["tax_amount"]),
            total_amount=to_decimal(h["total_amount"]),
            tax_rate=to_decimal(h["tax_rate"]),
            tax_enabled=bool(h["tax_enabled"]),
        ),
        notes=h["notes"],
    )
    status = h["status"]
    if status == STATUS_DRAFT:
        return DraftBill(**common)
    if status == STATUS_CANCELLED:
        return CancelledBill(**common, cancelled_at=h["cancelled_at"])
    return CompletedBill(
        **common,
        payment=PaymentFields(
            payment_type=h["payment_type"],
            payment_status=h["payment_status"],
            paid_amount=to_decimal(h["paid_amount"]),
            due_amount=to_decimal(h["due_amount"]),
            due_date=h["due_date"],
        ),
        completed_at=h["completed_at"],
    )
