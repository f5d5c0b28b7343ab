"""
Client-side refusals raised by the billing module before anything is written.

Storage-boundary errors (conflicts, invalid state) live with the repository in
database/repositories/bills_repo.py.
"""
from __future__ import annotations


class ValidationError(Exception):
    """The request is refused as-is; nothing changed."""
    pass


class StockLimitError(ValidationError):
    def __init__(self, product_name: str, available: int):
        self.product_name = product_name
        self.available = int(available)
        super().__init__(
            f"Stock limit reached for {product_name}. Only {self.available} units available."
        )


class OutOfStockError(ValidationError):
    def __init__(self, product_name: str):
        self.product_name = product_name
        self.available = 0
        super().__init__(f"Out of stock for {product_name}!")


class PermissionDeniedError(Exception):
    pass


class BillNumberAllocationError(Exception):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate bill number after {attempts} attempts.")
