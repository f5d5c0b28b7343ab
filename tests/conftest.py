# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures)
# - Every test gets its own file-backed SQLite DB under tmp_path, built with
#   get_connection() (schema + seed), because the billing procedures commit
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (from get_connection)
# - Provide handy ids, actors and a fixed clock for bill numbers
# ---------------------------------------------------------------------

from __future__ import annotations

import logging
import os
import sqlite3
import tempfile
from datetime import date
from pathlib import Path

# keep config's eager data dir (and the audit log) out of the source tree
os.environ.setdefault("POS_BILLING_DATA_DIR", tempfile.mkdtemp(prefix="pos_billing_tests_"))
# headless runs have no display server
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from pos_billing.constants import (
    ROLE_CASHIER,
    ROLE_MANAGER,
    ROLE_OWNER,
    ROLE_SALESMAN,
)
from pos_billing.database import get_connection
from pos_billing.database.repositories.customers_repo import CustomersRepo
from pos_billing.database.repositories.products_repo import ProductsRepo
from pos_billing.database.repositories.settings_repo import BusinessSettings, SettingsRepo
from pos_billing.database.repositories.users_repo import UsersRepo
from pos_billing.modules.billing.controller import BillingController
from pos_billing.modules.due_bills.controller import DueBillsController
from pos_billing.utils.auth import ActorContext

TODAY = date(2026, 3, 7)


# ---------- Qt: let pytest-qt own the app ----------
@pytest.fixture(scope="session")
def app(qapp):  # alias to match code that expects an `app` fixture
    return qapp


# ---------- Per-test database ----------
@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pos_billing.db"


@pytest.fixture()
def conn(db_path: Path):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def second_conn(db_path: Path, conn):
    """Another register on the same database (its own connection)."""
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


# ---------- Seeded rows ----------
@pytest.fixture()
def ids(conn: sqlite3.Connection) -> dict:
    """Common IDs used throughout the tests."""
    business_id = int(conn.execute("SELECT business_id FROM businesses LIMIT 1").fetchone()[0])
    owner_id = int(conn.execute("SELECT user_id FROM users WHERE username='owner'").fetchone()[0])

    SettingsRepo(conn).save(
        BusinessSettings(
            business_id=business_id,
            bill_prefix="INV",
            tax_rate=5,
            apply_tax_by_default=False,
        )
    )

    users = UsersRepo(conn)
    products = ProductsRepo(conn)
    customers = CustomersRepo(conn)
    return {
        "business_id": business_id,
        "owner": owner_id,
        "manager": users.create(business_id, "mgr", "Manager", ROLE_MANAGER),
        "cashier": users.create(business_id, "till", "Cashier", ROLE_CASHIER),
        "salesman": users.create(business_id, "rk", "Ravi K", ROLE_SALESMAN, collector_code="RK"),
        "salesman2": users.create(business_id, "sm2", "Second Salesman", ROLE_SALESMAN),
        "prod_A": products.create(business_id, "Widget A", "100.00", "60.00", 10, low_stock_threshold=2),
        "prod_B": products.create(business_id, "Widget B", "50.00", "30.00", 5, low_stock_threshold=1),
        "prod_empty": products.create(business_id, "Gadget", "25.00", "10.00", 0),
        "customer": customers.create(business_id, "Alice", "0300-1234567"),
    }


@pytest.fixture()
def actors(ids: dict) -> dict:
    b = ids["business_id"]
    return {
        "owner": ActorContext(ids["owner"], ROLE_OWNER, b),
        "manager": ActorContext(ids["manager"], ROLE_MANAGER, b),
        "cashier": ActorContext(ids["cashier"], ROLE_CASHIER, b),
        "salesman": ActorContext(ids["salesman"], ROLE_SALESMAN, b),
        "salesman2": ActorContext(ids["salesman2"], ROLE_SALESMAN, b),
    }


@pytest.fixture()
def clock():
    return lambda: TODAY


@pytest.fixture()
def audit_logger():
    # propagates to root so caplog sees the structured events
    return logging.getLogger("pos_billing.test_audit")


@pytest.fixture()
def make_controller(conn, actors, clock, audit_logger, qapp):
    def _make(who: str = "manager", connection: sqlite3.Connection | None = None) -> BillingController:
        return BillingController(
            connection or conn, actors[who], clock=clock, audit_logger=audit_logger
        )
    return _make


@pytest.fixture()
def due_controller(conn, actors, clock, audit_logger, qapp) -> DueBillsController:
    return DueBillsController(conn, actors["manager"], clock=clock, audit_logger=audit_logger)


# ---------- Small readers ----------
@pytest.fixture()
def counters(conn):
    """counters(product_id) -> (stock_quantity, reserved_quantity)"""
    def _read(product_id: int) -> tuple[int, int]:
        r = conn.execute(
            "SELECT stock_quantity, reserved_quantity FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        return int(r["stock_quantity"]), int(r["reserved_quantity"])
    return _read
