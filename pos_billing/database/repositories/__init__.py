# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from pos_billing.database.repositories import (
        # Bills (atomic lifecycle procedures)
        BillsRepo, BillHeader, BillItem, BillTotals, DraftRevision, PaymentFields,
        BillPaymentsRepo,
        # Catalog / parties
        ProductsRepo, Product, CustomersRepo, Customer, UsersRepo, User,
        # Settings
        SettingsRepo, BusinessSettings,
    )
"""

# ------------------ Bills ------------------
from .bills_repo import (
    BillsRepo,
    BillHeader,
    BillItem,
    BillTotals,
    DraftRevision,
    PaymentFields,
    DomainError as BillsDomainError,
    ConflictError,
    StockConflictError,
    DuplicateBillNumberError,
    InvalidStateError,
    NotFoundError,
)
from .bill_payments_repo import BillPaymentsRepo

# ---------------- Customers ----------------
from .customers_repo import (
    CustomersRepo,
    Customer,
    DomainError as CustomersDomainError,
)

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product, DomainError as ProductsDomainError

# ---------------- Settings -----------------
from .settings_repo import SettingsRepo, BusinessSettings

# ------------------ Users ------------------
from .users_repo import UsersRepo, User

__all__ = [
    # bills_repo
    "BillsRepo",
    "BillHeader",
    "BillItem",
    "BillTotals",
    "DraftRevision",
    "PaymentFields",
    "BillsDomainError",
    "ConflictError",
    "StockConflictError",
    "DuplicateBillNumberError",
    "InvalidStateError",
    "NotFoundError",
    # bill_payments_repo
    "BillPaymentsRepo",
    # customers_repo
    "CustomersRepo",
    "Customer",
    "CustomersDomainError",
    # products_repo
    "ProductsRepo",
    "Product",
    "ProductsDomainError",
    # settings_repo
    "SettingsRepo",
    "BusinessSettings",
    # users_repo
    "UsersRepo",
    "User",
]
