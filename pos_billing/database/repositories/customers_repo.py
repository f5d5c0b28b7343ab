from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3

from ...utils.helpers import to_decimal


# Domain-level error the controller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


@dataclass
class Customer:
    customer_id: int | None
    business_id: int
    name: str
    phone: str | None
    current_due: Decimal = Decimal("0")
    is_active: bool = True


_COLUMNS = "customer_id, business_id, name, phone, current_due, is_active"


def _row_to_customer(r: sqlite3.Row) -> Customer:
    return Customer(
        customer_id=int(r["customer_id"]),
        business_id=int(r["business_id"]),
        name=r["name"],
        phone=r["phone"],
        current_due=to_decimal(r["current_due"]),
        is_active=bool(r["is_active"]),
    )


def _normalize_text(s: str | None) -> str | None:
    if s is None:
        return None
    # Gentle normalization: trim surrounding whitespace (no extra assumptions)
    return s.strip() or None


def find_or_insert_customer(conn: sqlite3.Connection, business_id: int, name: str) -> int:
    """
    Resolve a free-text customer name to an id, inserting a row when the
    business has no active customer of that name (case-insensitive).

    Does not commit: the register calls this inside its checkout transaction.
    """
    name_n = _normalize_text(name)
    if not name_n:
        raise DomainError("Customer name cannot be empty.")
    r = conn.execute(
        "SELECT customer_id FROM customers "
        "WHERE business_id=? AND is_active=1 AND name=? COLLATE NOCASE "
        "ORDER BY customer_id LIMIT 1",
        (business_id, name_n),
    ).fetchone()
    if r:
        return int(r["customer_id"])
    cur = conn.execute(
        "INSERT INTO customers(business_id, name) VALUES (?, ?)", (business_id, name_n)
    )
    return int(cur.lastrowid)


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Queries ----------------------------------------------------------

    def list_customers(self, business_id: int, active_only: bool = True) -> list[Customer]:
        """
        Returns customers of a business. By default, only active rows (is_active=1).
        """
        sql = f"SELECT {_COLUMNS} FROM customers WHERE business_id=?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY name COLLATE NOCASE"
        return [_row_to_customer(r) for r in self.conn.execute(sql, (business_id,)).fetchall()]

    def search(self, business_id: int, term: str) -> list[Customer]:
        """
        Matches name or phone with LIKE; active customers only.
        """
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customers "
            "WHERE business_id=? AND is_active=1 AND (name LIKE ? OR IFNULL(phone,'') LIKE ?) "
            "ORDER BY name COLLATE NOCASE",
            (business_id, pattern, pattern),
        ).fetchall()
        return [_row_to_customer(r) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customers WHERE customer_id=?", (customer_id,)
        ).fetchone()
        return _row_to_customer(r) if r else None

    def list_with_due(self, business_id: int) -> list[Customer]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customers "
            "WHERE business_id=? AND CAST(current_due AS REAL) > 0 "
            "ORDER BY CAST(current_due AS REAL) DESC",
            (business_id,),
        ).fetchall()
        return [_row_to_customer(r) for r in rows]

    # ---- Mutations --------------------------------------------------------

    def create(self, business_id: int, name: str, phone: str | None = None) -> int:
        name_n = _normalize_text(name)
        if not name_n:
            raise DomainError("Name cannot be empty.")
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO customers(business_id, name, phone) VALUES (?, ?, ?)",
                (business_id, name_n, _normalize_text(phone)),
            )
        return int(cur.lastrowid)

    def update(self, customer_id: int, name: str, phone: str | None) -> None:
        name_n = _normalize_text(name)
        if not name_n:
            raise DomainError("Name cannot be empty.")
        with self.conn:
            self.conn.execute(
                "UPDATE customers SET name=?, phone=? WHERE customer_id=?",
                (name_n, _normalize_text(phone), customer_id),
            )
