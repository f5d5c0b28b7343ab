# pos_billing/utils/helpers.py
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
from typing import Union, Optional

NumberLike = Union[Decimal, float, int, str]

_log = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def now_str() -> str:
    """Timestamp used for created_at/completed_at columns (local time, seconds)."""
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def to_decimal(v: NumberLike | None) -> Decimal:
    """
    Parse a money/number value into a Decimal.

    Floats go through str() so 0.1 stays 0.1 rather than its binary expansion.
    None and unparsable values raise ValueError; callers decide whether that is
    a validation error or a bug.
    """
    if isinstance(v, Decimal):
        return v
    if v is None:
        raise ValueError("Missing numeric value.")
    try:
        return Decimal(str(v).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Could not parse {v!r} as a number.") from e


def round2(v: NumberLike) -> Decimal:
    """Half-up rounding to cents (typical financial rounding)."""
    return to_decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_db(v: NumberLike) -> float:
    """Rounded float for NUMERIC columns; rounding happens only at persistence."""
    return float(round2(v))


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = to_decimal(v)
    except ValueError as e:
        _log.debug("fmt_money: failed to parse %r: %s", v, e)
        if strict:
            raise
        return str(sentinel) if sentinel is not None else str(v)
    q = Decimal(1).scaleb(-places) if places > 0 else Decimal(1)
    return f"{x.quantize(q, rounding=ROUND_HALF_UP):,.{places}f}"
