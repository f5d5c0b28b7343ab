from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
import sqlite3
from typing import Optional

from ...constants import STATUS_COMPLETED
from ...utils.helpers import money_to_db, now_str, round2, to_decimal
from .bills_repo import ConflictError, InvalidStateError, NotFoundError, PaymentFields


class BillPaymentsRepo:
    """
    Settlement history for completed bills (rows in bill_payments).

    Rules enforced here (mirrors DB-side policy):
      • Payments only against completed bills (DB trigger enforces).
      • Amount is strictly positive and never more than what is still due.
      • The bill header (paid/due/status) and the customer's running due move in
        the same transaction as the history row.

    The caller derives the new payment fields from the bill it read; the write
    is refused with ConflictError when the bill's paid amount moved since then.
    """

    METHODS: set[str] = {"cash", "card", "bank", "other"}

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    @contextmanager
    def _immediate_tx(self):
        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            yield
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    # --- API ---------------------------------------------------------------

    def record_payment(
        self,
        *,
        bill_id: int,
        amount: Decimal,
        settled: PaymentFields,
        expected_paid: Decimal,
        method: str = "cash",
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> int:
        """
        Inserts a row into bill_payments, rewrites the bill's payment fields with
        `settled`, lowers the customer's running due, and returns payment_id.
        """
        amount = round2(amount)
        if amount <= 0:
            raise ValueError("Payment amount must be greater than zero.")
        if method not in self.METHODS:
            raise ValueError(f"Unsupported payment method: {method}")

        with self._immediate_tx():
            row = self.conn.execute(
                "SELECT status, customer_id, paid_amount, due_amount FROM bills WHERE bill_id=?",
                (bill_id,),
            ).fetchone()
            if not row:
                raise NotFoundError(f"Bill {bill_id} not found.")
            if row["status"] != STATUS_COMPLETED:
                raise InvalidStateError("Payments can only be recorded against completed bills.")
            if round2(row["paid_amount"]) != round2(expected_paid):
                raise ConflictError("This bill was updated by someone else; refresh and try again.")
            if amount > round2(row["due_amount"]):
                raise ConflictError(
                    f"Payment of {amount} exceeds the outstanding {round2(row['due_amount'])}."
                )

            cur = self.conn.execute(
                """
                INSERT INTO bill_payments (bill_id, amount, method, notes, created_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (bill_id, money_to_db(amount), method, notes, created_by, now_str()),
            )
            payment_id = int(cur.lastrowid)

            self.conn.execute(
                """
                UPDATE bills
                   SET paid_amount=?, due_amount=?, payment_status=?, updated_at=?
                 WHERE bill_id=?
                """,
                (
                    money_to_db(settled.paid_amount),
                    money_to_db(settled.due_amount),
                    settled.payment_status,
                    now_str(),
                    bill_id,
                ),
            )
            if row["customer_id"] is not None:
                self.conn.execute(
                    "UPDATE customers "
                    "SET current_due = MAX(0, ROUND(CAST(current_due AS REAL) - ?, 2)) "
                    "WHERE customer_id=?",
                    (money_to_db(amount), row["customer_id"]),
                )
            return payment_id

    def list_by_bill(self, bill_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT payment_id, bill_id, CAST(amount AS REAL) AS amount, method, notes,
                   created_by, created_at
            FROM bill_payments
            WHERE bill_id=?
            ORDER BY payment_id
            """,
            (bill_id,),
        ).fetchall()

    def total_paid(self, bill_id: int) -> Decimal:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(CAST(amount AS REAL)), 0) AS s FROM bill_payments WHERE bill_id=?",
            (bill_id,),
        ).fetchone()
        return round2(to_decimal(r["s"]))
