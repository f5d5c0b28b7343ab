# pos_billing/utils/validators.py
from datetime import date


# ---- Numeric parsing & validators ----

def try_parse_int(x):
    """
    Best-effort parse to a whole number.

    Returns:
        (ok: bool, value: int|None)

    "3", 3 and 3.0 parse; "3.5" and 3.5 do not (quantities are whole units).
    """
    if isinstance(x, bool):
        return False, None
    try:
        f = float(x)
    except (TypeError, ValueError):
        return False, None
    if f != f or not f.is_integer():
        return False, None
    return True, int(f)


def parse_quantity(x) -> int:
    """
    Strict parse to a whole quantity; raises ValueError with a clear message on failure.
    Zero and negatives parse (callers treat < 1 as "remove the line").
    """
    ok, val = try_parse_int(x)
    if not ok:
        raise ValueError(f"Quantity must be a whole number, got '{x}'.")
    return val  # type: ignore[return-value]


def parse_iso_date(x) -> str | None:
    """
    Normalize an optional ISO date ('YYYY-MM-DD'). Empty -> None.
    Raises ValueError for anything that is not a calendar date.
    """
    if x is None:
        return None
    if isinstance(x, date):
        return x.isoformat()
    s = str(x).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s).isoformat()
    except ValueError as e:
        raise ValueError(f"'{s}' is not a valid date (expected YYYY-MM-DD).") from e
