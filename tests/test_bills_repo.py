# tests/test_bills_repo.py
from __future__ import annotations

import sqlite3
from decimal import Decimal

import pytest

from pos_billing.database.repositories.bills_repo import (
    BillHeader,
    BillItem,
    BillTotals,
    BillsRepo,
    ConflictError,
    DraftRevision,
    DuplicateBillNumberError,
    InvalidStateError,
    PaymentFields,
    StockConflictError,
)
from pos_billing.database.repositories.customers_repo import CustomersRepo
from pos_billing.database.repositories.products_repo import DomainError, ProductsRepo


# --------------------------- helpers ---------------------------

def _item(pid: int, qty: int, price: str = "100.00", name: str = "Widget A") -> BillItem:
    return BillItem(product_id=pid, product_name=name, quantity=qty, unit_price=Decimal(price))


def _totals(total: str) -> BillTotals:
    t = Decimal(total)
    return BillTotals(subtotal=t, total_amount=t)


def _header(ids, number: str, total: str = "100.00", customer_id=None) -> BillHeader:
    return BillHeader(
        business_id=ids["business_id"],
        bill_number=number,
        customer_id=customer_id,
        created_by=ids["manager"],
        totals=_totals(total),
    )


def _cash(total: str) -> PaymentFields:
    return PaymentFields("cash", "paid", Decimal(total), Decimal("0"))


def _draft(repo, ids, number: str, qty: int, pid=None) -> int:
    pid = pid or ids["prod_A"]
    return repo.create_draft_bill(_header(ids, number, str(qty * 100)), [_item(pid, qty)])


def _revision(items, total: str = "0") -> DraftRevision:
    return DraftRevision(customer_id=None, items=items, totals=_totals(total))


@pytest.fixture()
def repo(conn):
    return BillsRepo(conn)


# --------------------------- direct checkout ---------------------------

def test_checkout_decrements_stock_without_reservation(repo, ids, counters):
    bill_id = repo.create_completed_bill(_header(ids, "INV0001", "300.00"), [_item(ids["prod_A"], 3)], _cash("300.00"))
    assert counters(ids["prod_A"]) == (7, 0)
    h = repo.get_header(bill_id)
    assert h["status"] == "completed"
    assert h["completed_at"] is not None
    assert h["payment_status"] == "paid"


def test_checkout_cannot_take_units_held_by_drafts(repo, ids, counters):
    _draft(repo, ids, "D1", 8)
    with pytest.raises(StockConflictError) as e:
        repo.create_completed_bill(_header(ids, "INV0001"), [_item(ids["prod_A"], 3)], _cash("300.00"))
    assert e.value.available == 2
    assert counters(ids["prod_A"]) == (10, 8)
    assert repo.get_header(2) is None


def test_checkout_creates_named_customer_in_same_transaction(repo, ids, conn):
    pay = PaymentFields("due", "unpaid", Decimal("0"), Decimal("100.00"))
    bill_id = repo.create_completed_bill(
        _header(ids, "INV0001"), [_item(ids["prod_A"], 1)], pay, customer_name="Bob"
    )
    h = repo.get_header(bill_id)
    assert h["customer_name"] == "Bob"
    bob = CustomersRepo(conn).get(h["customer_id"])
    assert bob.current_due == Decimal("100")


def test_checkout_reuses_existing_customer_by_name(repo, ids):
    bill_id = repo.create_completed_bill(
        _header(ids, "INV0001"), [_item(ids["prod_A"], 1)], _cash("100.00"), customer_name="alice"
    )
    assert repo.get_header(bill_id)["customer_id"] == ids["customer"]


def test_duplicate_bill_number_rolls_everything_back(repo, ids, counters, conn):
    repo.create_completed_bill(_header(ids, "INV0001"), [_item(ids["prod_A"], 1)], _cash("100.00"))
    customers_before = conn.execute("SELECT COUNT(*) FROM customers").fetchone()[0]
    with pytest.raises(DuplicateBillNumberError):
        repo.create_completed_bill(
            _header(ids, "INV0001"), [_item(ids["prod_A"], 2)], _cash("200.00"), customer_name="Carol"
        )
    assert counters(ids["prod_A"]) == (9, 0)
    assert conn.execute("SELECT COUNT(*) FROM customers").fetchone()[0] == customers_before


# --------------------------- drafts ---------------------------

def test_create_draft_reserves(repo, ids, counters):
    _draft(repo, ids, "D1", 6)
    assert counters(ids["prod_A"]) == (10, 6)


def test_second_draft_over_available_is_rejected(repo, ids, counters):
    _draft(repo, ids, "D1", 6)
    with pytest.raises(StockConflictError) as e:
        _draft(repo, ids, "D2", 6)
    assert str(e.value) == "Stock limit reached for Widget A. Only 4 units available."
    assert counters(ids["prod_A"]) == (10, 6)


def test_race_between_two_registers(conn, second_conn, ids):
    """Both registers saw 10 free; the second commit loses at the storage boundary."""
    a, b = BillsRepo(conn), BillsRepo(second_conn)
    _draft(a, ids, "D1", 6)
    with pytest.raises(StockConflictError):
        _draft(b, ids, "D2", 6)
    row = second_conn.execute(
        "SELECT reserved_quantity FROM products WHERE product_id=?", (ids["prod_A"],)
    ).fetchone()
    assert row[0] == 6


@pytest.mark.parametrize("q1, q2", [(3, 7), (7, 3), (5, 5), (2, 10)])
def test_update_moves_reservation_by_delta_only(repo, ids, counters, q1, q2):
    bill_id = _draft(repo, ids, "D1", q1)
    repo.update_draft_bill(bill_id, _revision([_item(ids["prod_A"], q2)], str(q2 * 100)))
    assert counters(ids["prod_A"]) == (10, q2)
    assert [it.quantity for it in repo.list_items(bill_id)] == [q2]


def test_fully_reserved_draft_can_still_be_rewritten(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 10)
    repo.update_draft_bill(bill_id, _revision([_item(ids["prod_A"], 10, price="90.00")], "900"))
    assert counters(ids["prod_A"]) == (10, 10)


def test_update_swapping_products_releases_and_reserves(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 4)
    repo.update_draft_bill(bill_id, _revision([_item(ids["prod_B"], 2, "50.00", "Widget B")], "100"))
    assert counters(ids["prod_A"]) == (10, 0)
    assert counters(ids["prod_B"]) == (5, 2)


def test_update_rejection_leaves_nothing_half_written(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 2)
    rev = _revision([_item(ids["prod_A"], 5), _item(ids["prod_B"], 6, "50.00", "Widget B")], "800")
    with pytest.raises(StockConflictError):
        repo.update_draft_bill(bill_id, rev)
    assert counters(ids["prod_A"]) == (10, 2)
    assert counters(ids["prod_B"]) == (5, 0)
    assert [it.quantity for it in repo.list_items(bill_id)] == [2]


def test_finalize_conservation(repo, ids, counters, conn):
    bill_id = repo.create_draft_bill(
        _header(ids, "D1", "189.00", customer_id=ids["customer"]),
        [_item(ids["prod_A"], 2)],
    )
    _draft(repo, ids, "D2", 3)
    before = counters(ids["prod_A"])
    repo.finalize_draft_bill(bill_id, PaymentFields("due", "partial", Decimal("100"), Decimal("89.00"), "2026-04-01"))
    after = counters(ids["prod_A"])
    assert after == (before[0] - 2, before[1] - 2)

    h = repo.get_header(bill_id)
    assert (h["status"], h["payment_status"], h["due_date"]) == ("completed", "partial", "2026-04-01")
    assert CustomersRepo(conn).get(ids["customer"]).current_due == Decimal("89")


def test_finalize_with_revision_applies_delta_then_converts(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 2)
    repo.finalize_draft_bill(
        bill_id, _cash("400.00"), revision=_revision([_item(ids["prod_A"], 4)], "400.00")
    )
    assert counters(ids["prod_A"]) == (6, 0)
    assert float(repo.get_header(bill_id)["total_amount"]) == 400.0


def test_finalize_refuses_a_snapshot_the_draft_no_longer_matches(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 2)
    repo.update_draft_bill(bill_id, _revision([_item(ids["prod_A"], 3)], "300.00"))

    with pytest.raises(ConflictError, match="changed by someone else"):
        repo.finalize_draft_bill(bill_id, _cash("200.00"), expected_total=Decimal("200.00"))
    # same total, different units
    with pytest.raises(ConflictError, match="changed by someone else"):
        repo.finalize_draft_bill(
            bill_id, _cash("300.00"),
            expected_total=Decimal("300"), expected_units={ids["prod_A"]: 2},
        )
    assert counters(ids["prod_A"]) == (10, 3)
    assert repo.get_header(bill_id)["status"] == "draft"

    repo.finalize_draft_bill(
        bill_id, _cash("300.00"),
        expected_total=Decimal("300"), expected_units={ids["prod_A"]: 3},
    )
    assert counters(ids["prod_A"]) == (7, 0)


def test_completed_bill_requires_paid_plus_due_equal_total(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 1)
    with pytest.raises(sqlite3.IntegrityError):
        repo.finalize_draft_bill(bill_id, PaymentFields("due", "partial", Decimal("10"), Decimal("10")))
    assert counters(ids["prod_A"]) == (10, 1)
    assert repo.get_header(bill_id)["status"] == "draft"


def test_cancel_releases_and_second_cancel_is_rejected(repo, ids, counters):
    bill_id = _draft(repo, ids, "D1", 6)
    repo.cancel_draft_bill(bill_id)
    assert counters(ids["prod_A"]) == (10, 0)
    with pytest.raises(InvalidStateError):
        repo.cancel_draft_bill(bill_id)
    assert counters(ids["prod_A"]) == (10, 0)


def test_terminal_bills_cannot_be_finalized_or_updated(repo, ids):
    bill_id = _draft(repo, ids, "D1", 1)
    repo.cancel_draft_bill(bill_id)
    with pytest.raises(InvalidStateError):
        repo.finalize_draft_bill(bill_id, _cash("100.00"))
    with pytest.raises(InvalidStateError):
        repo.update_draft_bill(bill_id, _revision([_item(ids["prod_A"], 1)], "100"))


def test_reservations_match_open_drafts_after_a_sequence(repo, ids, conn):
    """0 <= reserved <= stock after every step; reserved == sum of open draft lines."""
    d1 = _draft(repo, ids, "D1", 4)
    d2 = _draft(repo, ids, "D2", 5)
    repo.update_draft_bill(d1, _revision([_item(ids["prod_A"], 1)], "100"))
    repo.finalize_draft_bill(d2, _cash("500.00"))
    _draft(repo, ids, "D3", 4)
    repo.cancel_draft_bill(d1)

    stock, reserved = conn.execute(
        "SELECT stock_quantity, reserved_quantity FROM products WHERE product_id=?", (ids["prod_A"],)
    ).fetchone()
    open_lines = conn.execute(
        "SELECT COALESCE(SUM(i.quantity),0) FROM bill_items i JOIN bills b ON b.bill_id=i.bill_id "
        "WHERE b.status='draft' AND i.product_id=?",
        (ids["prod_A"],),
    ).fetchone()[0]
    assert 0 <= reserved <= stock
    assert reserved == open_lines == 4
    assert stock == 5


def test_stock_cannot_drop_below_reserved(repo, ids, conn):
    _draft(repo, ids, "D1", 8)
    with pytest.raises(DomainError):
        ProductsRepo(conn).adjust_stock(ids["prod_A"], -3)
    assert ProductsRepo(conn).adjust_stock(ids["prod_A"], -2) == 8


def test_low_stock_counts_reservations(repo, ids, conn):
    _draft(repo, ids, "D1", 8)
    low = [p.name for p in ProductsRepo(conn).list_low_stock(ids["business_id"])]
    assert "Widget A" in low
    assert "Gadget" in low
    assert "Widget B" not in low
