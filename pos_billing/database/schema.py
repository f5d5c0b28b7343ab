from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- business -------- */
CREATE TABLE IF NOT EXISTS businesses (
    business_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    created_at   TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS business_settings (
    business_id      INTEGER PRIMARY KEY,
    bill_prefix      TEXT    NOT NULL DEFAULT 'INV',
    tax_rate         NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(tax_rate AS REAL) >= 0),
    apply_tax        INTEGER NOT NULL DEFAULT 1 CHECK (apply_tax IN (0,1)),
    show_discount    INTEGER NOT NULL DEFAULT 1 CHECK (show_discount IN (0,1)),
    currency_symbol  TEXT    NOT NULL DEFAULT '₹',
    FOREIGN KEY (business_id) REFERENCES businesses(business_id) ON DELETE CASCADE
);

/* -------- users (resolved by the auth collaborator; kept for FKs & collector codes) -------- */
CREATE TABLE IF NOT EXISTS users (
    user_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    business_id     INTEGER NOT NULL,
    username        TEXT UNIQUE NOT NULL,
    full_name       TEXT NOT NULL,
    role            TEXT NOT NULL CHECK (role IN ('owner','admin','manager','cashier','salesman')),
    collector_code  TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    FOREIGN KEY (business_id) REFERENCES businesses(business_id)
);

/* -------- customers -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    business_id  INTEGER NOT NULL,
    name         TEXT NOT NULL,
    phone        TEXT,
    current_due  NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(current_due AS REAL) >= 0),
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    FOREIGN KEY (business_id) REFERENCES businesses(business_id)
);
CREATE INDEX IF NOT EXISTS idx_customers_business ON customers(business_id);

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    business_id         INTEGER NOT NULL,
    name                TEXT    NOT NULL,
    sku                 TEXT,
    selling_price       NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(selling_price AS REAL) >= 0),
    cost_price          NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(cost_price AS REAL) >= 0),
    stock_quantity      INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
    reserved_quantity   INTEGER NOT NULL DEFAULT 0,
    low_stock_threshold INTEGER NOT NULL DEFAULT 0 CHECK (low_stock_threshold >= 0),
    is_active           INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    /* reservation can never exceed what is on hand */
    CHECK (reserved_quantity >= 0 AND reserved_quantity <= stock_quantity),
    FOREIGN KEY (business_id) REFERENCES businesses(business_id)
);
CREATE INDEX IF NOT EXISTS idx_products_business ON products(business_id);

/* ======================== BILLS ======================== */

CREATE TABLE IF NOT EXISTS bills (
    bill_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    business_id      INTEGER NOT NULL,
    bill_number      TEXT    NOT NULL,
    status           TEXT    NOT NULL DEFAULT 'draft'
                             CHECK (status IN ('draft','completed','cancelled')),
    customer_id      INTEGER,
    created_by       INTEGER,
    subtotal         NUMERIC NOT NULL DEFAULT 0,
    discount_type    TEXT    NOT NULL DEFAULT 'flat',
    discount_value   NUMERIC NOT NULL DEFAULT 0,
    discount_amount  NUMERIC NOT NULL DEFAULT 0,
    tax_amount       NUMERIC NOT NULL DEFAULT 0,
    tax_rate         NUMERIC NOT NULL DEFAULT 0,
    tax_enabled      INTEGER NOT NULL DEFAULT 0 CHECK (tax_enabled IN (0,1)),
    total_amount     NUMERIC NOT NULL DEFAULT 0,
    payment_type     TEXT CHECK (payment_type IS NULL OR payment_type IN ('cash','due')),
    payment_status   TEXT CHECK (payment_status IS NULL OR payment_status IN ('paid','partial','unpaid')),
    paid_amount      NUMERIC NOT NULL DEFAULT 0,
    due_amount       NUMERIC NOT NULL DEFAULT 0,
    due_date         DATE,
    notes            TEXT,
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    completed_at     TIMESTAMP,
    cancelled_at     TIMESTAMP,
    /* paid + due = total once completed (cent tolerance) */
    CHECK (
        status <> 'completed'
        OR ABS(CAST(paid_amount AS REAL) + CAST(due_amount AS REAL) - CAST(total_amount AS REAL)) < 0.005
    ),
    FOREIGN KEY (business_id) REFERENCES businesses(business_id),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (created_by)  REFERENCES users(user_id)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_bills_business_number ON bills(business_id, bill_number);
CREATE INDEX IF NOT EXISTS idx_bills_status ON bills(business_id, status);

CREATE TABLE IF NOT EXISTS bill_items (
    item_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id       INTEGER NOT NULL,
    product_id    INTEGER NOT NULL,
    product_name  TEXT    NOT NULL,
    quantity      INTEGER NOT NULL CHECK (quantity >= 1),
    unit_price    NUMERIC NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    cost_price    NUMERIC NOT NULL DEFAULT 0,
    total_price   NUMERIC NOT NULL DEFAULT 0,
    FOREIGN KEY (bill_id)    REFERENCES bills(bill_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_bill_items_bill ON bill_items(bill_id);
CREATE INDEX IF NOT EXISTS idx_bill_items_product ON bill_items(product_id);

/* due-settlement history (one row per payment recorded against a completed bill) */
CREATE TABLE IF NOT EXISTS bill_payments (
    payment_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id      INTEGER NOT NULL,
    amount       NUMERIC NOT NULL CHECK (CAST(amount AS REAL) > 0),
    method       TEXT    NOT NULL DEFAULT 'cash',
    notes        TEXT,
    created_by   INTEGER,
    created_at   TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (bill_id)    REFERENCES bills(bill_id),
    FOREIGN KEY (created_by) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_bill_payments_bill ON bill_payments(bill_id);

/* ======================== VIEWS ======================== */

DROP VIEW IF EXISTS v_product_availability;
CREATE VIEW v_product_availability AS
SELECT
    p.product_id,
    p.business_id,
    p.name,
    p.stock_quantity,
    p.reserved_quantity,
    (p.stock_quantity - p.reserved_quantity) AS available_quantity,
    p.low_stock_threshold
FROM products p;

/* ======================== LIFECYCLE GUARDS ======================== */

/* completed/cancelled bills never change status again */
DROP TRIGGER IF EXISTS trg_bills_terminal_status_guard;
CREATE TRIGGER trg_bills_terminal_status_guard
BEFORE UPDATE OF status ON bills
FOR EACH ROW
WHEN OLD.status <> 'draft' AND NEW.status <> OLD.status
BEGIN
  SELECT RAISE(ABORT, 'Bill is no longer a draft');
END;

/* items of a completed/cancelled bill are frozen */
DROP TRIGGER IF EXISTS trg_bill_items_frozen_del;
CREATE TRIGGER trg_bill_items_frozen_del
BEFORE DELETE ON bill_items
FOR EACH ROW
WHEN (SELECT status FROM bills WHERE bill_id = OLD.bill_id) <> 'draft'
BEGIN
  SELECT RAISE(ABORT, 'Items of a finalized bill cannot be changed');
END;

DROP TRIGGER IF EXISTS trg_bill_payments_completed_only;
CREATE TRIGGER trg_bill_payments_completed_only
BEFORE INSERT ON bill_payments
FOR EACH ROW
WHEN (SELECT status FROM bills WHERE bill_id = NEW.bill_id) <> 'completed'
BEGIN
  SELECT RAISE(ABORT, 'Payments can only be recorded against completed bills');
END;
"""


def _ensure_bill_tax_columns(conn: sqlite3.Connection) -> None:
    """
    Safe migration for older DBs that created `bills` before the tax toggle and
    rate were stored per bill. Adds the columns if missing and backfills them from
    the stored tax amount and the business's current rate. No-op if already present.
    """
    cur = conn.execute("PRAGMA table_info(bills);")
    cols = {row[1] for row in cur.fetchall()}  # row[1] = name
    if "tax_rate" not in cols:
        conn.execute("ALTER TABLE bills ADD COLUMN tax_rate NUMERIC NOT NULL DEFAULT 0;")
    if "tax_enabled" not in cols:
        conn.execute(
            "ALTER TABLE bills ADD COLUMN tax_enabled INTEGER NOT NULL DEFAULT 0 "
            "CHECK (tax_enabled IN (0,1));"
        )
        conn.execute(
            """
            UPDATE bills
               SET tax_enabled = 1,
                   tax_rate = COALESCE(
                       (SELECT s.tax_rate FROM business_settings s
                         WHERE s.business_id = bills.business_id), 0)
             WHERE CAST(tax_amount AS REAL) > 0
            """
        )


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)
    _ensure_bill_tax_columns(conn)
    conn.commit()


def init_schema(db_path: Path | str) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
    finally:
        conn.close()
    _log.info("Schema applied to %s", db_path)


if __name__ == "__main__":
    from ..config import DB_PATH

    target = sys.argv[1] if len(sys.argv) > 1 else DB_PATH
    init_schema(target)
