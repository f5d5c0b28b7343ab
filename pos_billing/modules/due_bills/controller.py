"""
Due bills: completed bills with money still owed, and recording payments
against them. Paid/due/status are re-derived with the same resolver used at
finalize time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
import sqlite3
from typing import Callable, Optional

from PySide6.QtCore import Signal

from ..base_module import BaseModule
from ..billing.controller import OperationResult
from ..billing.errors import ValidationError
from ..billing.payment_status import apply_settlement
from .model import DueBillsTableModel
from ...constants import STATUS_COMPLETED
from ...database.repositories.bill_payments_repo import BillPaymentsRepo
from ...database.repositories.bills_repo import (
    BillsRepo,
    ConflictError,
    DomainError as BillsDomainError,
    PaymentFields,
)
from ...utils.auth import ActorContext
from ...utils.helpers import ZERO, fmt_money, round2, to_decimal
from ...utils.loggers import get_audit_logger, log_event

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueBill:
    bill_id: int
    bill_number: str
    customer_id: Optional[int]
    customer_name: Optional[str]
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    due_date: Optional[str]
    payment_status: str
    overdue: bool


@dataclass(frozen=True)
class DueSummary:
    bill_count: int
    total_outstanding: Decimal
    overdue_count: int


class DueBillsController(BaseModule):
    paymentRecorded = Signal(int)

    def __init__(
        self,
        conn: sqlite3.Connection,
        actor: ActorContext,
        *,
        clock: Callable[[], date] = date.today,
        audit_logger: logging.Logger | None = None,
    ):
        super().__init__()
        self.conn = conn
        self.actor = actor
        self.clock = clock
        self.bills = BillsRepo(conn)
        self.payments = BillPaymentsRepo(conn)
        self.audit = audit_logger or get_audit_logger()
        self.model = DueBillsTableModel([])

    def list_due_bills(self) -> list[DueBill]:
        today = self.clock().isoformat()
        out = []
        for r in self.bills.list_due_bills(self.actor.business_id):
            out.append(
                DueBill(
                    bill_id=int(r["bill_id"]),
                    bill_number=r["bill_number"],
                    customer_id=r["customer_id"],
                    customer_name=r["customer_name"],
                    total_amount=round2(r["total_amount"]),
                    paid_amount=round2(r["paid_amount"]),
                    due_amount=round2(r["due_amount"]),
                    due_date=r["due_date"],
                    payment_status=r["payment_status"],
                    overdue=bool(r["due_date"]) and r["due_date"] < today,
                )
            )
        return out

    def refresh(self) -> None:
        self.model.replace(self.list_due_bills())

    def summary(self) -> DueSummary:
        rows = self.list_due_bills()
        return DueSummary(
            bill_count=len(rows),
            total_outstanding=sum((r.due_amount for r in rows), ZERO),
            overdue_count=sum(1 for r in rows if r.overdue),
        )

    def record_payment(
        self,
        bill_id: int,
        amount,
        method: str = "cash",
        notes: str | None = None,
    ) -> OperationResult:
        extra = {"user_id": self.actor.user_id, "bill_id": bill_id, "amount": str(amount)}
        try:
            bill_number = self._record(bill_id, amount, method, notes)
        except (ValidationError, ValueError) as e:
            _log.info("record_payment refused: %s", e)
            log_event(self.audit, "record_payment", "rejected", str(e), extra)
            return OperationResult.fail(str(e))
        except ConflictError as e:
            _log.warning("record_payment conflict: %s", e)
            log_event(self.audit, "record_payment", "rejected", str(e), extra, level=logging.WARNING)
            return OperationResult.fail(str(e))
        except BillsDomainError as e:
            log_event(self.audit, "record_payment", "rejected", str(e), extra)
            return OperationResult.fail(str(e))
        except Exception as e:
            _log.exception("record_payment failed unexpectedly")
            log_event(
                self.audit, "record_payment", "rejected", f"Unexpected error: {e}", extra,
                level=logging.ERROR,
            )
            return OperationResult.fail(f"Unexpected error: {e}")

        log_event(self.audit, "record_payment", "commit", "ok", {**extra, "bill_number": bill_number})
        self.paymentRecorded.emit(bill_id)
        return OperationResult(True, None, bill_id, bill_number)

    def _record(self, bill_id: int, amount, method: str, notes: str | None) -> str:
        try:
            amt = round2(to_decimal(amount))
        except ValueError as e:
            raise ValidationError("Payment amount must be a number.") from e
        if amt <= 0:
            raise ValidationError("Payment amount must be greater than zero.")

        h = self.bills.get_header(bill_id)
        if h is None or int(h["business_id"]) != self.actor.business_id:
            raise ValidationError("Bill not found.")
        if h["status"] != STATUS_COMPLETED:
            raise ValidationError("Payments can only be recorded against completed bills.")
        due = round2(h["due_amount"])
        if amt > due:
            raise ValidationError(f"Amount exceeds the outstanding due of {fmt_money(due)}.")

        paid = round2(h["paid_amount"])
        settled = apply_settlement(h["total_amount"], paid, amt, h["payment_type"])
        self.payments.record_payment(
            bill_id=bill_id,
            amount=amt,
            settled=PaymentFields(
                payment_type=settled.payment_type,
                payment_status=settled.payment_status,
                paid_amount=settled.paid_amount,
                due_amount=settled.due_amount,
                due_date=h["due_date"],
            ),
            expected_paid=paid,
            method=method,
            notes=notes,
            created_by=self.actor.user_id,
        )
        return h["bill_number"]
