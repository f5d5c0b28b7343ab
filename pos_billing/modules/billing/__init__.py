"""
Billing module package exports.

- BillingController / OperationResult: order lifecycle (checkout, drafts)
- CartBuilder / CartLine: in-memory cart gated by stock availability
- CartItemsModel / BillsTableModel: Qt table models for the billing screens
- DraftBill / CompletedBill / CancelledBill / load_bill: bills by lifecycle state
"""
from .cart import CartBuilder, CartLine
from .controller import BillingController, OperationResult
from .model import BillsTableModel, CartItemsModel
from .orders import CancelledBill, CompletedBill, DraftBill, load_bill

__all__ = [
    "BillingController",
    "OperationResult",
    "CartBuilder",
    "CartLine",
    "CartItemsModel",
    "BillsTableModel",
    "DraftBill",
    "CompletedBill",
    "CancelledBill",
    "load_bill",
]
