"""
In-memory cart / draft editor.

Nothing here touches the database: stock is read through `product_lookup`
on every quantity change, totals are recomputed after every mutation, and
abandoning a cart (dropping the object, or clear()) has no reservation side
effect. Only the controller persists a cart.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Callable, Iterable, List, Optional

from PySide6.QtCore import QObject, Signal

from ...database.repositories.bills_repo import BillItem
from ...database.repositories.products_repo import Product
from ...utils.helpers import ZERO, fmt_money, to_decimal
from ...utils.validators import parse_quantity
from .calculations import Totals, compute_totals, line_total
from .errors import ValidationError
from .stock import check_quantity

_log = logging.getLogger(__name__)


def _parse_qty(value) -> int:
    try:
        return parse_quantity(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


@dataclass
class CartLine:
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    cost_price: Decimal
    # units this line already holds through its persisted draft
    held: int = 0

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)


class CartBuilder(QObject):
    """
    Signals:
      linesChanged()            after any line add/remove/quantity/price change
      totalsChanged(object)     new Totals after any mutation
      stockLimitReached(str)    a quantity change was refused; message for a toast
      belowCostWarning(str)     a price override needs explicit confirmation
    """

    linesChanged = Signal()
    totalsChanged = Signal(object)
    stockLimitReached = Signal(str)
    belowCostWarning = Signal(str)

    def __init__(
        self,
        product_lookup: Callable[[int], Optional[Product]],
        *,
        tax_rate: Decimal = ZERO,
        tax_enabled: bool = False,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._lookup = product_lookup
        self._lines: List[CartLine] = []
        self._discount_value: Decimal = ZERO
        self._tax_rate = to_decimal(tax_rate)
        self._tax_enabled = bool(tax_enabled)

    # ---------------------------------------------------------------- reads

    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def line(self, product_id: int) -> Optional[CartLine]:
        for ln in self._lines:
            if ln.product_id == product_id:
                return ln
        return None

    def is_empty(self) -> bool:
        return not self._lines

    @property
    def discount_value(self) -> Decimal:
        return self._discount_value

    @property
    def tax_rate(self) -> Decimal:
        return self._tax_rate

    @property
    def tax_enabled(self) -> bool:
        return self._tax_enabled

    def totals(self) -> Totals:
        return compute_totals(self._lines, self._discount_value, self._tax_rate, self._tax_enabled)

    def quantities(self) -> dict[int, int]:
        return {ln.product_id: ln.quantity for ln in self._lines}

    def to_bill_items(self) -> list[BillItem]:
        return [
            BillItem(
                product_id=ln.product_id,
                product_name=ln.product_name,
                quantity=ln.quantity,
                unit_price=ln.unit_price,
                cost_price=ln.cost_price,
            )
            for ln in self._lines
        ]

    # ------------------------------------------------------------ mutations

    def add_line(self, product: Product, quantity=1) -> bool:
        """
        Add `quantity` units of `product`; an existing line grows instead.
        Returns False (and emits stockLimitReached) when stock does not allow it.
        """
        qty = _parse_qty(quantity)
        if qty < 1:
            raise ValidationError("Quantity must be at least 1.")
        existing = self.line(product.product_id)
        if existing is not None:
            return self.set_quantity(product.product_id, existing.quantity + qty)

        fresh = self._lookup(product.product_id) or product
        try:
            check_quantity(fresh, qty, 0, new_line=True)
        except ValidationError as e:
            self._refuse(str(e))
            return False

        self._lines.append(
            CartLine(
                product_id=fresh.product_id,
                product_name=fresh.name,
                quantity=qty,
                unit_price=to_decimal(fresh.selling_price),
                cost_price=to_decimal(fresh.cost_price),
            )
        )
        self._changed()
        return True

    def set_quantity(self, product_id: int, quantity) -> bool:
        """
        Below 1 removes the line. Above the line's ceiling the quantity stays as it was.
        """
        qty = _parse_qty(quantity)
        ln = self.line(product_id)
        if ln is None:
            return False
        if qty < 1:
            return self.remove_line(product_id)
        if qty == ln.quantity:
            return True
        if qty > ln.quantity:
            fresh = self._lookup(product_id)
            if fresh is None:
                self._refuse(f"{ln.product_name} is no longer available.")
                return False
            try:
                check_quantity(fresh, qty, ln.held)
            except ValidationError as e:
                self._refuse(str(e))
                return False
        ln.quantity = qty
        self._changed()
        return True

    def remove_line(self, product_id: int) -> bool:
        before = len(self._lines)
        self._lines = [ln for ln in self._lines if ln.product_id != product_id]
        if len(self._lines) == before:
            return False
        self._changed()
        return True

    def set_unit_price(self, product_id: int, price, confirm_below_cost: bool = False) -> bool:
        """
        Override a line's unit price snapshot. Negative prices become 0.
        A price at or below cost needs confirm_below_cost=True.
        """
        ln = self.line(product_id)
        if ln is None:
            return False
        try:
            new_price = max(ZERO, to_decimal(price))
        except ValueError as e:
            raise ValidationError("Price must be a number.") from e
        if new_price <= ln.cost_price and not confirm_below_cost:
            self.belowCostWarning.emit(
                f"Price {fmt_money(new_price)} for {ln.product_name} is at or below "
                f"cost ({fmt_money(ln.cost_price)})."
            )
            return False
        ln.unit_price = new_price
        self._changed()
        return True

    def set_discount(self, value) -> bool:
        try:
            d = to_decimal(value if value not in (None, "") else 0)
        except ValueError as e:
            raise ValidationError("Discount must be a number.") from e
        self._discount_value = max(ZERO, d)
        self._emit_totals()
        return True

    def set_tax_enabled(self, enabled: bool) -> bool:
        self._tax_enabled = bool(enabled)
        self._emit_totals()
        return True

    def load_items(self, items: Iterable[BillItem], *, held: bool) -> None:
        """Replace the cart with persisted items (held=True for a reopened draft)."""
        self._lines = []
        for it in items:
            existing = self.line(it.product_id)
            if existing is not None:
                existing.quantity += it.quantity
                if held:
                    existing.held += it.quantity
                continue
            self._lines.append(
                CartLine(
                    product_id=it.product_id,
                    product_name=it.product_name,
                    quantity=it.quantity,
                    unit_price=to_decimal(it.unit_price),
                    cost_price=to_decimal(it.cost_price),
                    held=it.quantity if held else 0,
                )
            )
        self._changed()

    def clear(self) -> None:
        self._lines = []
        self._discount_value = ZERO
        self._changed()

    # -------------------------------------------------------------- helpers

    def _refuse(self, message: str) -> None:
        _log.info("Cart change refused: %s", message)
        self.stockLimitReached.emit(message)

    def _changed(self) -> None:
        self.linesChanged.emit()
        self._emit_totals()

    def _emit_totals(self) -> None:
        self.totalsChanged.emit(self.totals())
