# pos_billing/database/repositories/products_repo.py
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List
import sqlite3
from contextlib import contextmanager

from ...utils.helpers import to_decimal


class DomainError(Exception):
    """Domain-level error the controller/UI can surface (toast/snackbar)."""
    pass


@dataclass
class Product:
    product_id: int | None
    business_id: int
    name: str
    sku: str | None
    selling_price: Decimal
    cost_price: Decimal
    stock_quantity: int
    reserved_quantity: int = 0
    low_stock_threshold: int = 0
    is_active: bool = True

    @property
    def available_quantity(self) -> int:
        """Units not held by any open draft."""
        return self.stock_quantity - self.reserved_quantity


_COLUMNS = (
    "product_id, business_id, name, sku, selling_price, cost_price, "
    "stock_quantity, reserved_quantity, low_stock_threshold, is_active"
)


def _row_to_product(r: sqlite3.Row) -> Product:
    return Product(
        product_id=int(r["product_id"]),
        business_id=int(r["business_id"]),
        name=r["name"],
        sku=r["sku"],
        selling_price=to_decimal(r["selling_price"]),
        cost_price=to_decimal(r["cost_price"]),
        stock_quantity=int(r["stock_quantity"]),
        reserved_quantity=int(r["reserved_quantity"]),
        low_stock_threshold=int(r["low_stock_threshold"]),
        is_active=bool(r["is_active"]),
    )


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # Use Row for named access; we normalize to dataclasses on the way out.
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- TX helper ----------------------------

    @contextmanager
    def _immediate_tx(self):
        """
        Start an IMMEDIATE transaction (write lock taken up front),
        commit on success, rollback on error.
        """
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

    # ---------------------------- Reads ----------------------------

    def list_products(self, business_id: int, active_only: bool = True) -> list[Product]:
        sql = f"SELECT {_COLUMNS} FROM products WHERE business_id=?"
        if active_only:
            sql += " AND is_active=1"
        sql += " ORDER BY name COLLATE NOCASE, product_id"
        return [_row_to_product(r) for r in self.conn.execute(sql, (business_id,)).fetchall()]

    def search(self, business_id: int, term: str) -> list[Product]:
        """
        Active products whose name or SKU contains `term`, plus an exact id match.
        """
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products "
            "WHERE business_id=? AND is_active=1 AND ("
            "  CAST(product_id AS TEXT)=? OR name LIKE ? OR IFNULL(sku,'') LIKE ?"
            ") "
            "ORDER BY name COLLATE NOCASE, product_id",
            (business_id, term.strip(), pattern, pattern),
        ).fetchall()
        return [_row_to_product(r) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE product_id=?", (product_id,)
        ).fetchone()
        return _row_to_product(r) if r else None

    def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """
        Fresh rows for a set of products, keyed by id. Unknown ids are simply absent.
        """
        ids = sorted({int(pid) for pid in product_ids})
        if not ids:
            return {}
        marks = ",".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE product_id IN ({marks})", ids
        ).fetchall()
        return {int(r["product_id"]): _row_to_product(r) for r in rows}

    def list_low_stock(self, business_id: int) -> List[Product]:
        """
        Active products whose available-to-sell is at or below their threshold.
        """
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products "
            "WHERE business_id=? AND is_active=1 "
            "  AND (stock_quantity - reserved_quantity) <= low_stock_threshold "
            "ORDER BY (stock_quantity - reserved_quantity), name COLLATE NOCASE",
            (business_id,),
        ).fetchall()
        return [_row_to_product(r) for r in rows]

    # ---------------------------- Writes ----------------------------

    def create(
        self,
        business_id: int,
        name: str,
        selling_price,
        cost_price=0,
        stock_quantity: int = 0,
        *,
        sku: str | None = None,
        low_stock_threshold: int = 0,
    ) -> int:
        if not name or not name.strip():
            raise DomainError("Product name cannot be empty.")
        if int(stock_quantity) < 0:
            raise DomainError("Stock quantity cannot be negative.")
        with self._immediate_tx():
            cur = self.conn.execute(
                "INSERT INTO products(business_id, name, sku, selling_price, cost_price, "
                "stock_quantity, low_stock_threshold) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    business_id,
                    name.strip(),
                    sku,
                    str(to_decimal(selling_price)),
                    str(to_decimal(cost_price)),
                    int(stock_quantity),
                    int(low_stock_threshold),
                ),
            )
            return int(cur.lastrowid)

    def update_prices(self, product_id: int, selling_price, cost_price) -> None:
        """
        Catalog price change. Open carts and drafts keep their snapshots.
        """
        with self._immediate_tx():
            self.conn.execute(
                "UPDATE products SET selling_price=?, cost_price=? WHERE product_id=?",
                (str(to_decimal(selling_price)), str(to_decimal(cost_price)), product_id),
            )

    def adjust_stock(self, product_id: int, delta: int) -> int:
        """
        Receive (delta > 0) or write off (delta < 0) on-hand units.
        On-hand may never drop below what open drafts already hold.
        Returns the new on-hand quantity.
        """
        with self._immediate_tx():
            r = self.conn.execute(
                "SELECT name, stock_quantity, reserved_quantity FROM products WHERE product_id=?",
                (product_id,),
            ).fetchone()
            if not r:
                raise DomainError(f"Product {product_id} not found.")
            new_qty = int(r["stock_quantity"]) + int(delta)
            if new_qty < int(r["reserved_quantity"]):
                raise DomainError(
                    f"Cannot reduce stock of {r['name']} below the {r['reserved_quantity']} "
                    "units reserved by open drafts."
                )
            self.conn.execute(
                "UPDATE products SET stock_quantity=? WHERE product_id=?", (new_qty, product_id)
            )
            return new_qty

    def deactivate(self, product_id: int) -> None:
        with self._immediate_tx():
            self.conn.execute("UPDATE products SET is_active=0 WHERE product_id=?", (product_id,))
