"""
Order lifecycle: direct checkout, and draft create / update / finalize / cancel.

Each operation validates locally, then hands one atomic procedure to BillsRepo.
Expected failures come back as OperationResult(success=False, error=...);
nothing here retries except the bounded bill-number allocation.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
import sqlite3
from typing import Callable, Optional

from PySide6.QtCore import Signal

from ..base_module import BaseModule
from .bill_numbers import BillNumberGenerator, bill_prefix
from .calculations import Totals
from .cart import CartBuilder
from .errors import BillNumberAllocationError, PermissionDeniedError, ValidationError
from .model import BillsTableModel
from .orders import DraftBill, load_bill
from .payment_status import PaymentResolution, resolve_payment
from .stock import revalidate
from ...constants import PAYMENT_CASH
from ...database.repositories.bills_repo import (
    BillHeader,
    BillItem,
    BillTotals,
    BillsRepo,
    ConflictError,
    DomainError as BillsDomainError,
    DraftRevision,
    PaymentFields,
)
from ...database.repositories.customers_repo import DomainError as CustomersDomainError
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.settings_repo import SettingsRepo
from ...database.repositories.users_repo import UsersRepo
from ...utils.auth import (
    ActorContext,
    can_apply_discount,
    can_finalize,
    can_modify_draft,
    draft_scope,
)
from ...utils.helpers import ZERO
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import parse_iso_date

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationResult:
    success: bool
    error: Optional[str] = None
    bill_id: Optional[int] = None
    bill_number: Optional[str] = None
    change: Decimal = ZERO

    @classmethod
    def fail(cls, error: str) -> "OperationResult":
        return cls(False, error)


def _quantities(items: list[BillItem]) -> dict[int, int]:
    out: dict[int, int] = {}
    for it in items:
        out[it.product_id] = out.get(it.product_id, 0) + int(it.quantity)
    return out


def _bill_totals(cart: CartBuilder, t: Totals | None = None) -> BillTotals:
    if t is None:
        t = cart.totals()
    return BillTotals(
        subtotal=t.subtotal,
        discount_value=cart.discount_value,
        discount_amount=t.discount_amount,
        tax_amount=t.tax_amount,
        total_amount=t.total,
        tax_rate=cart.tax_rate,
        tax_enabled=cart.tax_enabled,
    )


def _due_date(value) -> Optional[str]:
    try:
        return parse_iso_date(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _payment_fields(r: PaymentResolution, due_date: Optional[str]) -> PaymentFields:
    return PaymentFields(
        payment_type=r.payment_type,
        payment_status=r.payment_status,
        paid_amount=r.paid_amount,
        due_amount=r.due_amount,
        due_date=due_date if r.due_amount > 0 else None,
    )


class BillingController(BaseModule):
    """
    One controller per register session (one acting user, one connection).

    billsChanged fires after every committed operation so screens re-read
    their lists; after a refused operation the caller should re-fetch too,
    since a conflict means local state was stale.
    """

    billsChanged = Signal()

    def __init__(
        self,
        conn: sqlite3.Connection,
        actor: ActorContext,
        *,
        clock: Callable[[], date] = date.today,
        audit_logger: logging.Logger | None = None,
    ):
        super().__init__()
        self.conn = conn
        self.actor = actor
        self.bills = BillsRepo(conn)
        self.products = ProductsRepo(conn)
        self.settings = SettingsRepo(conn)
        self.users = UsersRepo(conn)
        self.numbers = BillNumberGenerator(self.bills, clock)
        self.audit = audit_logger or get_audit_logger()
        self.model = BillsTableModel([])

    # ------------------------------------------------------------------ reads

    def refresh(self) -> None:
        self.model.replace(self.list_drafts())

    def list_drafts(self) -> list:
        return self.bills.list_drafts(self.actor.business_id, created_by=draft_scope(self.actor))

    def new_cart(self) -> CartBuilder:
        s = self.settings.get(self.actor.business_id)
        return CartBuilder(self.products.get, tax_rate=s.tax_rate, tax_enabled=s.apply_tax_by_default)

    def open_draft(self, bill_id: int) -> tuple[DraftBill, CartBuilder]:
        """
        Load a draft for editing. The returned cart knows how many units each
        line already holds, so raising a quantity only competes for the rest,
        and it keeps the tax toggle and rate the draft was saved with.
        """
        bill = load_bill(self.bills, bill_id)
        if bill is None or bill.business_id != self.actor.business_id:
            raise ValidationError("Draft not found.")
        if not isinstance(bill, DraftBill):
            raise ValidationError("This bill is no longer a draft.")
        if not can_modify_draft(self.actor, bill.created_by):
            raise PermissionDeniedError("You can only open your own drafts.")

        cart = CartBuilder(
            self.products.get, tax_rate=bill.totals.tax_rate, tax_enabled=bill.totals.tax_enabled
        )
        cart.load_items(bill.items, held=True)
        cart.set_discount(bill.totals.discount_value)
        return bill, cart

    # --------------------------------------------------------------- helpers

    def _prefix(self) -> str:
        code = self.actor.collector_code or self.users.collector_code(self.actor.user_id)
        return bill_prefix(self.settings.get(self.actor.business_id).bill_prefix, code)

    def _items_of(self, cart: CartBuilder, what: str) -> list[BillItem]:
        items = cart.to_bill_items()
        if not items:
            raise ValidationError(f"Cannot {what} an empty bill.")
        return items

    def _check_discount(self, cart: CartBuilder, previous: Decimal = ZERO) -> None:
        if cart.discount_value > 0 and cart.discount_value != previous and not can_apply_discount(self.actor):
            raise PermissionDeniedError("Only owners, admins and managers can apply a discount.")

    def _revalidate(self, items: list[BillItem], held: dict[int, int]) -> None:
        required = _quantities(items)
        revalidate(required, self.products.get_many(required), held)

    def _on_retry(self, op: str) -> Callable[[str, int], None]:
        def _log_retry(number: str, attempt: int) -> None:
            log_event(
                self.audit, op, "retry", "Bill number collision",
                {"bill_number": number, "attempt": attempt, "user_id": self.actor.user_id},
                level=logging.WARNING,
            )
        return _log_retry

    def _run(self, op: str, extra: dict, fn: Callable[[], OperationResult]) -> OperationResult:
        extra = {"user_id": self.actor.user_id, "role": self.actor.role, **extra}
        try:
            result = fn()
        except (ValidationError, PermissionDeniedError, CustomersDomainError) as e:
            _log.info("%s refused: %s", op, e)
            log_event(self.audit, op, "rejected", str(e), extra)
            return OperationResult.fail(str(e))
        except (ConflictError, BillNumberAllocationError) as e:
            _log.warning("%s conflict: %s", op, e)
            log_event(self.audit, op, "rejected", str(e), extra, level=logging.WARNING)
            return OperationResult.fail(str(e))
        except BillsDomainError as e:
            _log.info("%s refused by storage: %s", op, e)
            log_event(self.audit, op, "rejected", str(e), extra)
            return OperationResult.fail(str(e))
        except Exception as e:
            _log.exception("%s failed unexpectedly", op)
            log_event(self.audit, op, "rejected", f"Unexpected error: {e}", extra, level=logging.ERROR)
            return OperationResult.fail(f"Unexpected error: {e}")

        log_event(
            self.audit, op, "commit", "ok",
            {**extra, "bill_id": result.bill_id, "bill_number": result.bill_number},
        )
        self.billsChanged.emit()
        return result

    # ------------------------------------------------------------ operations

    def checkout(
        self,
        cart: CartBuilder,
        *,
        payment_type: str = PAYMENT_CASH,
        paid_amount=None,
        due_date: str | None = None,
        customer_id: int | None = None,
        customer_name: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """
        Register sale: a completed bill straight away, stock decremented, no reservation.
        """
        def _do() -> OperationResult:
            items = self._items_of(cart, "check out")
            self._check_discount(cart)
            self._revalidate(items, {})
            totals = cart.totals()
            resolution = resolve_payment(totals.total, payment_type, paid_amount)
            payment = _payment_fields(resolution, _due_date(due_date))

            def _insert(number: str) -> int:
                header = BillHeader(
                    business_id=self.actor.business_id,
                    bill_number=number,
                    customer_id=customer_id,
                    created_by=self.actor.user_id,
                    totals=_bill_totals(cart, totals),
                    notes=notes,
                )
                return self.bills.create_completed_bill(
                    header, items, payment, customer_name=customer_name
                )

            number, bill_id = self.numbers.allocate(
                self.actor.business_id, self._prefix(), _insert, self._on_retry("checkout")
            )
            return OperationResult(True, None, bill_id, number, resolution.change)

        return self._run("checkout", {"payment_type": payment_type}, _do)

    def create_draft(
        self,
        cart: CartBuilder,
        *,
        customer_id: int | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """
        Persist the cart as a draft and reserve its units.
        """
        def _do() -> OperationResult:
            items = self._items_of(cart, "save")
            self._check_discount(cart)
            self._revalidate(items, {})
            totals = _bill_totals(cart)

            def _insert(number: str) -> int:
                header = BillHeader(
                    business_id=self.actor.business_id,
                    bill_number=number,
                    customer_id=customer_id,
                    created_by=self.actor.user_id,
                    totals=totals,
                    notes=notes,
                )
                return self.bills.create_draft_bill(header, items)

            number, bill_id = self.numbers.allocate(
                self.actor.business_id, self._prefix(), _insert, self._on_retry("create_draft")
            )
            return OperationResult(True, None, bill_id, number)

        return self._run("create_draft", {}, _do)

    def update_draft(
        self,
        draft: DraftBill,
        cart: CartBuilder,
        *,
        customer_id: int | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """
        Replace a draft's content; storage moves each reservation by the delta only.
        """
        def _do() -> OperationResult:
            self._require_modifiable(draft)
            items = self._items_of(cart, "save")
            self._check_discount(cart, draft.totals.discount_value)
            self._revalidate(items, draft.reserved_units)
            revision = DraftRevision(
                customer_id=customer_id if customer_id is not None else draft.customer_id,
                items=items,
                totals=_bill_totals(cart),
                notes=notes if notes is not None else draft.notes,
            )
            self.bills.update_draft_bill(draft.bill_id, revision)
            return OperationResult(True, None, draft.bill_id, draft.bill_number)

        return self._run("update_draft", self._draft_extra(draft), _do)

    def finalize_draft(
        self,
        draft: DraftBill,
        payment_type: str,
        paid_amount=None,
        due_date: str | None = None,
        *,
        cart: CartBuilder | None = None,
        customer_id: int | None = None,
    ) -> OperationResult:
        """
        Complete a draft. With `cart`, its edited content is saved in the same
        transaction; without, the stored items and totals are finalized as-is.
        """
        def _do() -> OperationResult:
            self._require_own_business(draft)
            if not can_finalize(self.actor):
                raise PermissionDeniedError("Only owners, admins and managers can finalize a bill.")
            due = _due_date(due_date)

            revision = None
            if cart is not None:
                items = self._items_of(cart, "finalize")
                self._check_discount(cart, draft.totals.discount_value)
                totals = _bill_totals(cart)
                revision = DraftRevision(
                    customer_id=customer_id if customer_id is not None else draft.customer_id,
                    items=items,
                    totals=totals,
                    notes=draft.notes,
                )
            else:
                items = list(draft.items)
                if not items:
                    raise ValidationError("Cannot finalize an empty bill.")
                totals = draft.totals

            self._revalidate(items, draft.reserved_units)
            resolution = resolve_payment(totals.total_amount, payment_type, paid_amount)
            self.bills.finalize_draft_bill(
                draft.bill_id,
                _payment_fields(resolution, due),
                revision=revision,
                expected_total=draft.totals.total_amount if revision is None else None,
                expected_units=draft.reserved_units if revision is None else None,
            )
            return OperationResult(True, None, draft.bill_id, draft.bill_number, resolution.change)

        return self._run("finalize", {**self._draft_extra(draft), "payment_type": payment_type}, _do)

    def cancel_draft(self, draft: DraftBill) -> OperationResult:
        """
        Cancel a draft and release everything it reserved. Cancelling twice is refused.
        """
        def _do() -> OperationResult:
            self._require_modifiable(draft)
            self.bills.cancel_draft_bill(draft.bill_id)
            return OperationResult(True, None, draft.bill_id, draft.bill_number)

        return self._run("cancel", self._draft_extra(draft), _do)

    # -------------------------------------------------------------- internal

    def _require_own_business(self, draft: DraftBill) -> None:
        if not isinstance(draft, DraftBill):
            raise ValidationError("This bill is no longer a draft.")
        if draft.business_id != self.actor.business_id:
            raise PermissionDeniedError("This draft belongs to another business.")

    def _require_modifiable(self, draft: DraftBill) -> None:
        self._require_own_business(draft)
        if not can_modify_draft(self.actor, draft.created_by):
            raise PermissionDeniedError("You can only change your own drafts.")

    @staticmethod
    def _draft_extra(draft) -> dict:
        return {
            "bill_id": getattr(draft, "bill_id", None),
            "bill_number": getattr(draft, "bill_number", None),
        }
