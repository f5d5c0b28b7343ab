# tests/test_models.py
from __future__ import annotations

from decimal import Decimal

from PySide6.QtCore import Qt

from pos_billing.database.repositories.products_repo import ProductsRepo
from pos_billing.modules.billing.cart import CartBuilder
from pos_billing.modules.billing.model import BillsTableModel, CartItemsModel
from pos_billing.modules.due_bills.controller import DueBill
from pos_billing.modules.due_bills.model import DueBillsTableModel


def test_cart_model_follows_the_cart(conn, ids, qapp, qtbot):
    products = ProductsRepo(conn)
    cart = CartBuilder(products.get)
    model = CartItemsModel(cart)
    assert model.rowCount() == 0
    assert [model.headerData(c, Qt.Horizontal) for c in range(model.columnCount())] == CartItemsModel.HEADERS

    with qtbot.waitSignal(model.modelReset):
        cart.add_line(products.get(ids["prod_A"]), 3)
    assert model.rowCount() == 1
    assert model.data(model.index(0, 1)) == "Widget A"
    assert model.data(model.index(0, 2)) == 3
    assert model.data(model.index(0, 4)) == "300.00"
    assert model.data(model.index(0, 3), Qt.TextAlignmentRole) == Qt.AlignRight | Qt.AlignVCenter

    cart.remove_line(ids["prod_A"])
    assert model.rowCount() == 0


def test_bills_model_shows_walk_in(qapp):
    rows = [
        {"bill_number": "INV03070001", "created_at": "2026-03-07 10:00:00",
         "customer_name": None, "total_amount": 1250.5, "status": "completed"},
    ]
    model = BillsTableModel(rows)
    assert [model.data(model.index(0, c)) for c in range(5)] == [
        "INV03070001", "2026-03-07", "Walk-in", "1,250.50", "completed",
    ]
    model.replace([])
    assert model.rowCount() == 0


def test_due_model_flags_overdue(qapp):
    row = DueBill(
        bill_id=1, bill_number="RK-03010001", customer_id=1, customer_name="Alice",
        total_amount=Decimal("100"), paid_amount=Decimal("40"), due_amount=Decimal("60"),
        due_date="2026-03-01", payment_status="partial", overdue=True,
    )
    model = DueBillsTableModel([row])
    assert model.data(model.index(0, 4)) == "60.00"
    assert model.data(model.index(0, 6)) == "Overdue"
    assert model.data(model.index(0, 6), Qt.ForegroundRole) is not None
    assert model.at(0) is row
