"""
Stock availability checks shared by the cart (optimistic, on every edit) and the
controller (fresh product rows right before a commit).

The repository repeats the same check under the write lock; these functions
only make the refusal early and readable.
"""
from __future__ import annotations

from typing import Mapping

from ...database.repositories.products_repo import Product
from .errors import OutOfStockError, StockLimitError, ValidationError


def available_to_reserve(stock_quantity: int, reserved_quantity: int, held: int = 0) -> int:
    """
    Ceiling for a line's quantity: what nobody holds, plus what this line
    already holds in its own persisted draft.
    """
    return max(0, int(stock_quantity) - int(reserved_quantity)) + max(0, int(held))


def check_quantity(product: Product, quantity: int, held: int = 0, *, new_line: bool = False) -> None:
    """
    Raise if `quantity` units of `product` cannot be held by a line currently
    holding `held` units. Never caps: the caller keeps its old quantity.
    """
    ceiling = available_to_reserve(product.stock_quantity, product.reserved_quantity, held)
    if new_line and ceiling <= 0:
        raise OutOfStockError(product.name)
    if int(quantity) > ceiling:
        raise StockLimitError(product.name, ceiling)


def revalidate(
    required: Mapping[int, int],
    products: Mapping[int, Product],
    held: Mapping[int, int] | None = None,
) -> None:
    """
    Check a whole bill against freshly fetched products.

    `required` is total quantity per product id, `held` what the bill already
    reserves per product id (empty for a new bill).
    """
    held = held or {}
    for pid, qty in required.items():
        p = products.get(pid)
        if p is None or not p.is_active:
            raise ValidationError(f"Product {pid} is no longer available.")
        check_quantity(p, qty, held.get(pid, 0))
