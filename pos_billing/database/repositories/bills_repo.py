from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, Optional
import sqlite3

from ...constants import BILL_SEQUENCE_WIDTH, STATUS_CANCELLED, STATUS_COMPLETED, STATUS_DRAFT
from ...utils.helpers import ZERO, money_to_db, now_str, round2, to_decimal
from .customers_repo import find_or_insert_customer


# ---------------------------------------------------------------------------
# Errors raised at the storage boundary
# ---------------------------------------------------------------------------

class DomainError(Exception):
    """Base for errors the billing procedures raise after rolling back."""
    pass


class ConflictError(DomainError):
    """The authoritative check failed: local state is stale."""
    pass


class StockConflictError(ConflictError):
    def __init__(self, product_name: str, available: int):
        self.product_name = product_name
        self.available = int(available)
        super().__init__(
            f"Stock limit reached for {product_name}. Only {self.available} units available."
        )


class DuplicateBillNumberError(ConflictError):
    def __init__(self, bill_number: str):
        self.bill_number = bill_number
        super().__init__(f"Bill number {bill_number} is already in use.")


class InvalidStateError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class BillItem:
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    cost_price: Decimal = ZERO
    item_id: int | None = None

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class BillTotals:
    subtotal: Decimal = ZERO
    discount_value: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    tax_rate: Decimal = ZERO
    tax_enabled: bool = False


@dataclass
class BillHeader:
    business_id: int
    bill_number: str
    customer_id: int | None
    created_by: int | None
    totals: BillTotals = field(default_factory=BillTotals)
    notes: str | None = None


@dataclass
class DraftRevision:
    """Full replacement content for an open draft."""
    customer_id: int | None
    items: list[BillItem]
    totals: BillTotals
    notes: str | None = None


@dataclass
class PaymentFields:
    payment_type: str
    payment_status: str
    paid_amount: Decimal
    due_amount: Decimal
    due_date: str | None = None


def _quantities(items: Iterable[BillItem]) -> dict[int, int]:
    """Total quantity per product (a product may appear on several lines)."""
    out: dict[int, int] = defaultdict(int)
    for it in items:
        out[int(it.product_id)] += int(it.quantity)
    return dict(out)


class BillsRepo:
    """
    Bills, their items, and the stock counters they move.

    Every public write is one BEGIN IMMEDIATE transaction: the stock check and
    the counter update happen under sqlite's write lock, and any error rolls the
    whole operation back.

      - create_completed_bill: direct checkout; decrements stock_quantity.
      - create_draft_bill:     reserves stock (reserved_quantity += qty).
      - update_draft_bill:     applies only the per-product reservation delta.
      - finalize_draft_bill:   stock_quantity -= qty and reserved_quantity -= qty.
      - cancel_draft_bill:     reserved_quantity -= qty; stock untouched.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------- TX helper ----------------------------

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

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_header(self, bill_id: int) -> sqlite3.Row | None:
        return self.conn.execute(
            """
            SELECT b.*, c.name AS customer_name
            FROM bills b
            LEFT JOIN customers c ON c.customer_id = b.customer_id
            WHERE b.bill_id=?
            """,
            (bill_id,),
        ).fetchone()

    def list_items(self, bill_id: int) -> list[BillItem]:
        rows = self.conn.execute(
            """
            SELECT item_id, product_id, product_name, quantity, unit_price, cost_price
            FROM bill_items
            WHERE bill_id=?
            ORDER BY item_id
            """,
            (bill_id,),
        ).fetchall()
        return [
            BillItem(
                item_id=int(r["item_id"]),
                product_id=int(r["product_id"]),
                product_name=r["product_name"],
                quantity=int(r["quantity"]),
                unit_price=to_decimal(r["unit_price"]),
                cost_price=to_decimal(r["cost_price"]),
            )
            for r in rows
        ]

    def list_bills(
        self,
        business_id: int,
        *,
        status: str | None = None,
        created_by: int | None = None,
        date: str | None = None,
    ) -> list[sqlite3.Row]:
        where = ["b.business_id = ?"]
        params: list = [business_id]
        if status:
            where.append("b.status = ?")
            params.append(status)
        if created_by is not None:
            where.append("b.created_by = ?")
            params.append(created_by)
        if date:
            where.append("DATE(b.created_at) = DATE(?)")
            params.append(date)
        sql = f"""
            SELECT b.bill_id, b.bill_number, b.status, b.created_at, b.completed_at,
                   b.customer_id, c.name AS customer_name, b.created_by,
                   CAST(b.total_amount AS REAL) AS total_amount,
                   CAST(b.paid_amount AS REAL)  AS paid_amount,
                   CAST(b.due_amount AS REAL)   AS due_amount,
                   b.payment_type, b.payment_status, b.due_date
            FROM bills b
            LEFT JOIN customers c ON c.customer_id = b.customer_id
            WHERE {" AND ".join(where)}
            ORDER BY b.created_at DESC, b.bill_id DESC
        """
        return self.conn.execute(sql, params).fetchall()

    def list_drafts(self, business_id: int, created_by: int | None = None) -> list[sqlite3.Row]:
        return self.list_bills(business_id, status=STATUS_DRAFT, created_by=created_by)

    def list_due_bills(self, business_id: int) -> list[sqlite3.Row]:
        """
        Completed bills with something still owed, earliest due date first
        (bills without a due date last).
        """
        return self.conn.execute(
            """
            SELECT b.bill_id, b.bill_number, b.completed_at, b.customer_id,
                   c.name AS customer_name,
                   CAST(b.total_amount AS REAL) AS total_amount,
                   CAST(b.paid_amount AS REAL)  AS paid_amount,
                   CAST(b.due_amount AS REAL)   AS due_amount,
                   b.due_date, b.payment_status
            FROM bills b
            LEFT JOIN customers c ON c.customer_id = b.customer_id
            WHERE b.business_id = ?
              AND b.status = 'completed'
              AND b.payment_status IN ('unpaid', 'partial')
            ORDER BY b.due_date IS NULL, b.due_date, b.bill_id
            """,
            (business_id,),
        ).fetchall()

    def highest_bill_number(self, business_id: int, stem: str) -> Optional[str]:
        """
        Highest bill number of the business made of `stem` plus a sequence tail
        (same-width sequences sort correctly as text).

        The tail must be all digits and either exactly BILL_SEQUENCE_WIDTH long or
        longer without a leading zero, so a number from another prefix whose text
        happens to start with `stem` is not taken for one of ours.
        """
        n = len(stem)
        r = self.conn.execute(
            """
            SELECT bill_number FROM bills
            WHERE business_id = ?
              AND substr(bill_number, 1, ?) = ?
              AND length(bill_number) >= ?
              AND substr(bill_number, ?) NOT GLOB '*[^0-9]*'
              AND (length(bill_number) = ? OR substr(bill_number, ?, 1) <> '0')
            ORDER BY length(bill_number) DESC, bill_number DESC
            LIMIT 1
            """,
            (
                business_id,
                n,
                stem,
                n + BILL_SEQUENCE_WIDTH,
                n + 1,
                n + BILL_SEQUENCE_WIDTH,
                n + 1,
            ),
        ).fetchone()
        return r["bill_number"] if r else None

    # ---------------------------------------------------------------------
    # INTERNAL
    # ---------------------------------------------------------------------
    def _require_bill(self, bill_id: int) -> sqlite3.Row:
        row = self.conn.execute(
            "SELECT bill_id, status, customer_id, total_amount FROM bills WHERE bill_id=?",
            (bill_id,),
        ).fetchone()
        if not row:
            raise NotFoundError(f"Bill {bill_id} not found.")
        return row

    def _require_draft(self, bill_id: int) -> sqlite3.Row:
        row = self._require_bill(bill_id)
        if row["status"] == STATUS_CANCELLED:
            raise InvalidStateError("This draft has already been cancelled.")
        if row["status"] != STATUS_DRAFT:
            raise InvalidStateError("This bill has already been finalized.")
        return row

    def _product_counters(self, product_id: int) -> sqlite3.Row:
        r = self.conn.execute(
            "SELECT name, stock_quantity, reserved_quantity FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        if not r:
            raise NotFoundError(f"Product {product_id} not found.")
        return r

    def _check_claims(self, claims: dict[int, int], held: dict[int, int]) -> None:
        """
        Every product must have at least `claims[pid]` more units free than it has now,
        counting back what this bill already holds. Raises on the first shortfall.
        """
        for pid, extra in claims.items():
            if extra <= 0:
                continue
            r = self._product_counters(pid)
            free = int(r["stock_quantity"]) - int(r["reserved_quantity"])
            if extra > free:
                raise StockConflictError(r["name"], free + held.get(pid, 0))

    def _insert_header(self, h: BillHeader, status: str, payment: PaymentFields | None) -> int:
        t = h.totals
        now = now_str()
        try:
            cur = self.conn.execute(
                """
                INSERT INTO bills (
                    business_id, bill_number, status, customer_id, created_by,
                    subtotal, discount_value, discount_amount, tax_amount, total_amount,
                    tax_rate, tax_enabled,
                    payment_type, payment_status, paid_amount, due_amount, due_date,
                    notes, created_at, updated_at, completed_at
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    h.business_id,
                    h.bill_number,
                    status,
                    h.customer_id,
                    h.created_by,
                    money_to_db(t.subtotal),
                    money_to_db(t.discount_value),
                    money_to_db(t.discount_amount),
                    money_to_db(t.tax_amount),
                    money_to_db(t.total_amount),
                    str(t.tax_rate),
                    1 if t.tax_enabled else 0,
                    payment.payment_type if payment else None,
                    payment.payment_status if payment else None,
                    money_to_db(payment.paid_amount) if payment else 0.0,
                    money_to_db(payment.due_amount) if payment else 0.0,
                    payment.due_date if payment else None,
                    h.notes,
                    now,
                    now,
                    now if status == STATUS_COMPLETED else None,
                ),
            )
        except sqlite3.IntegrityError as e:
            if "bill_number" in str(e):
                raise DuplicateBillNumberError(h.bill_number) from e
            raise
        return int(cur.lastrowid)

    def _insert_items(self, bill_id: int, items: Iterable[BillItem]) -> None:
        for it in items:
            self.conn.execute(
                """
                INSERT INTO bill_items (
                    bill_id, product_id, product_name, quantity, unit_price, cost_price, total_price
                ) VALUES (?,?,?,?,?,?,?)
                """,
                (
                    bill_id,
                    it.product_id,
                    it.product_name,
                    int(it.quantity),
                    money_to_db(it.unit_price),
                    money_to_db(it.cost_price),
                    money_to_db(it.total_price),
                ),
            )

    def _held_by(self, bill_id: int) -> dict[int, int]:
        rows = self.conn.execute(
            "SELECT product_id, SUM(quantity) AS qty FROM bill_items WHERE bill_id=? GROUP BY product_id",
            (bill_id,),
        ).fetchall()
        return {int(r["product_id"]): int(r["qty"]) for r in rows}

    def _add_customer_due(self, customer_id: int | None, due: Decimal) -> None:
        if customer_id is None or due <= 0:
            return
        self.conn.execute(
            "UPDATE customers SET current_due = ROUND(CAST(current_due AS REAL) + ?, 2) "
            "WHERE customer_id=?",
            (money_to_db(due), customer_id),
        )

    def _apply_revision(self, bill_id: int, rev: DraftRevision) -> None:
        """
        Rewrite a draft's items and totals, moving each product's reservation
        by (new quantity - old quantity) only.
        """
        if not rev.items:
            raise InvalidStateError("A draft must keep at least one item.")
        old = self._held_by(bill_id)
        new = _quantities(rev.items)
        deltas = {pid: new.get(pid, 0) - old.get(pid, 0) for pid in set(old) | set(new)}

        # check everything before touching any counter
        self._check_claims(deltas, held=old)

        for pid, delta in deltas.items():
            if delta:
                self.conn.execute(
                    "UPDATE products SET reserved_quantity = reserved_quantity + ? WHERE product_id=?",
                    (delta, pid),
                )

        self.conn.execute("DELETE FROM bill_items WHERE bill_id=?", (bill_id,))
        self._insert_items(bill_id, rev.items)

        t = rev.totals
        self.conn.execute(
            """
            UPDATE bills
               SET customer_id=?, subtotal=?, discount_value=?, discount_amount=?,
                   tax_amount=?, total_amount=?, tax_rate=?, tax_enabled=?,
                   notes=?, updated_at=?
             WHERE bill_id=?
            """,
            (
                rev.customer_id,
                money_to_db(t.subtotal),
                money_to_db(t.discount_value),
                money_to_db(t.discount_amount),
                money_to_db(t.tax_amount),
                money_to_db(t.total_amount),
                str(t.tax_rate),
                1 if t.tax_enabled else 0,
                rev.notes,
                now_str(),
                bill_id,
            ),
        )

    # ---------------------------------------------------------------------
    # WRITE: atomic procedures
    # ---------------------------------------------------------------------
    def create_completed_bill(
        self,
        header: BillHeader,
        items: list[BillItem],
        payment: PaymentFields,
        *,
        customer_name: str | None = None,
    ) -> int:
        """
        Direct checkout: insert a completed bill and take its units straight off
        stock_quantity. No reservation is ever created.

        When `customer_name` is given and no customer_id, the customer is looked up
        (or created) inside the same transaction.
        """
        if not items:
            raise InvalidStateError("Cannot check out an empty bill.")
        with self._immediate_tx():
            if header.customer_id is None and customer_name and customer_name.strip():
                # a rolled-back attempt must not leak the new id into the caller's header
                header = replace(
                    header,
                    customer_id=find_or_insert_customer(self.conn, header.business_id, customer_name),
                )
            qty = _quantities(items)
            self._check_claims(qty, held={})
            bill_id = self._insert_header(header, STATUS_COMPLETED, payment)
            self._insert_items(bill_id, items)
            for pid, q in qty.items():
                self.conn.execute(
                    "UPDATE products SET stock_quantity = stock_quantity - ? WHERE product_id=?",
                    (q, pid),
                )
            self._add_customer_due(header.customer_id, payment.due_amount)
            return bill_id

    def create_draft_bill(self, header: BillHeader, items: list[BillItem]) -> int:
        """
        Insert a draft and reserve its units (reserved_quantity += qty).
        """
        if not items:
            raise InvalidStateError("Cannot save an empty draft.")
        with self._immediate_tx():
            qty = _quantities(items)
            self._check_claims(qty, held={})
            bill_id = self._insert_header(header, STATUS_DRAFT, None)
            self._insert_items(bill_id, items)
            for pid, q in qty.items():
                self.conn.execute(
                    "UPDATE products SET reserved_quantity = reserved_quantity + ? WHERE product_id=?",
                    (q, pid),
                )
            return bill_id

    def update_draft_bill(self, bill_id: int, revision: DraftRevision) -> None:
        with self._immediate_tx():
            self._require_draft(bill_id)
            self._apply_revision(bill_id, revision)

    def finalize_draft_bill(
        self,
        bill_id: int,
        payment: PaymentFields,
        *,
        revision: DraftRevision | None = None,
        expected_total: Decimal | None = None,
        expected_units: dict[int, int] | None = None,
    ) -> None:
        """
        Complete a draft in one step: optionally apply the edited content first,
        then convert each held reservation into a real stock decrement and store
        the payment fields. The bill is never visible as completed-but-reserving.

        Without a revision, `expected_total` / `expected_units` are the caller's
        snapshot of the stored draft; if the draft no longer matches them the
        payment was resolved against stale totals and ConflictError is raised.
        """
        with self._immediate_tx():
            row = self._require_draft(bill_id)
            if revision is not None:
                self._apply_revision(bill_id, revision)
            else:
                stale = (
                    expected_total is not None
                    and round2(to_decimal(row["total_amount"])) != round2(expected_total)
                ) or (
                    expected_units is not None
                    and self._held_by(bill_id) != {int(k): int(v) for k, v in expected_units.items()}
                )
                if stale:
                    raise ConflictError(
                        "This draft was changed by someone else; refresh and try again."
                    )

            for pid, q in self._held_by(bill_id).items():
                r = self._product_counters(pid)
                if int(r["reserved_quantity"]) < q or int(r["stock_quantity"]) < q:
                    raise ConflictError(
                        f"Reservation for {r['name']} is out of sync; refresh and try again."
                    )
                self.conn.execute(
                    "UPDATE products "
                    "SET stock_quantity = stock_quantity - ?, reserved_quantity = reserved_quantity - ? "
                    "WHERE product_id=?",
                    (q, q, pid),
                )

            now = now_str()
            self.conn.execute(
                """
                UPDATE bills
                   SET status='completed', completed_at=?, updated_at=?,
                       payment_type=?, payment_status=?, paid_amount=?, due_amount=?, due_date=?
                 WHERE bill_id=?
                """,
                (
                    now,
                    now,
                    payment.payment_type,
                    payment.payment_status,
                    money_to_db(payment.paid_amount),
                    money_to_db(payment.due_amount),
                    payment.due_date,
                    bill_id,
                ),
            )
            customer_id = self._require_bill(bill_id)["customer_id"]
            self._add_customer_due(customer_id, payment.due_amount)

    def cancel_draft_bill(self, bill_id: int) -> None:
        """
        Release every unit the draft holds and mark it cancelled.
        A bill that is not a draft (including an already-cancelled one) is rejected,
        so a reservation is never released twice.
        """
        with self._immediate_tx():
            self._require_draft(bill_id)
            for pid, q in self._held_by(bill_id).items():
                self.conn.execute(
                    "UPDATE products SET reserved_quantity = reserved_quantity - ? WHERE product_id=?",
                    (q, pid),
                )
            now = now_str()
            self.conn.execute(
                "UPDATE bills SET status='cancelled', cancelled_at=?, updated_at=? WHERE bill_id=?",
                (now, now, bill_id),
            )
