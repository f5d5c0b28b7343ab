from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3

from ...constants import DEFAULT_BILL_PREFIX
from ...utils.helpers import to_decimal


@dataclass(frozen=True)
class BusinessSettings:
    business_id: int
    bill_prefix: str = DEFAULT_BILL_PREFIX
    tax_rate: Decimal = Decimal("0")
    apply_tax_by_default: bool = True
    show_discount: bool = True
    currency_symbol: str = "₹"


class SettingsRepo:
    """
    Business-wide billing settings (one row per business).

    A business without a settings row gets the defaults above; callers read
    settings at every operation so a change takes effect on the next bill.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, business_id: int) -> BusinessSettings:
        r = self.conn.execute(
            "SELECT business_id, bill_prefix, tax_rate, apply_tax, show_discount, currency_symbol "
            "FROM business_settings WHERE business_id=?",
            (business_id,),
        ).fetchone()
        if not r:
            return BusinessSettings(business_id=business_id)
        return BusinessSettings(
            business_id=int(r["business_id"]),
            bill_prefix=(r["bill_prefix"] or DEFAULT_BILL_PREFIX).strip() or DEFAULT_BILL_PREFIX,
            tax_rate=to_decimal(r["tax_rate"]),
            apply_tax_by_default=bool(r["apply_tax"]),
            show_discount=bool(r["show_discount"]),
            currency_symbol=r["currency_symbol"],
        )

    def save(self, s: BusinessSettings) -> None:
        if s.tax_rate < 0:
            raise ValueError("Tax rate cannot be negative.")
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO business_settings(
                    business_id, bill_prefix, tax_rate, apply_tax, show_discount, currency_symbol
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(business_id) DO UPDATE SET
                    bill_prefix=excluded.bill_prefix,
                    tax_rate=excluded.tax_rate,
                    apply_tax=excluded.apply_tax,
                    show_discount=excluded.show_discount,
                    currency_symbol=excluded.currency_symbol
                """,
                (
                    s.business_id,
                    s.bill_prefix.strip() or DEFAULT_BILL_PREFIX,
                    str(s.tax_rate),
                    int(s.apply_tax_by_default),
                    int(s.show_discount),
                    s.currency_symbol,
                ),
            )
