"""
Bill numbers: {prefix}{MM}{DD}{sequence:04d}

The prefix is the acting user's collector code (hyphen-suffixed) when one is
assigned, otherwise the business bill prefix. The sequence continues from the
highest number already issued under today's stem. A uniqueness violation on
insert means another register took the number first; the allocator moves past
it and tries again, a bounded number of times.
"""
from __future__ import annotations

from datetime import date
import logging
from typing import Callable, Optional, Tuple, TypeVar

from ...constants import BILL_SEQUENCE_WIDTH, DEFAULT_BILL_PREFIX, MAX_BILL_NUMBER_ATTEMPTS
from ...database.repositories.bills_repo import BillsRepo, DuplicateBillNumberError
from .errors import BillNumberAllocationError

_log = logging.getLogger(__name__)

T = TypeVar("T")


def bill_prefix(business_prefix: Optional[str], collector_code: Optional[str] = None) -> str:
    code = (collector_code or "").strip()
    if code:
        return code if code.endswith("-") else f"{code}-"
    return (business_prefix or "").strip() or DEFAULT_BILL_PREFIX


def bill_stem(prefix: str, day: date) -> str:
    return f"{prefix}{day.month:02d}{day.day:02d}"


def sequence_of(bill_number: Optional[str], stem: str) -> int:
    """
    Trailing sequence of a number issued under `stem`; 0 when absent or unparsable.

    A tail only counts when it is all digits and either exactly
    BILL_SEQUENCE_WIDTH long or longer with no leading zero.
    """
    if not bill_number or not bill_number.startswith(stem):
        return 0
    tail = bill_number[len(stem):]
    if not tail.isdigit() or len(tail) < BILL_SEQUENCE_WIDTH:
        return 0
    if len(tail) > BILL_SEQUENCE_WIDTH and tail.startswith("0"):
        return 0
    return int(tail)


def format_bill_number(stem: str, sequence: int) -> str:
    return f"{stem}{sequence:0{BILL_SEQUENCE_WIDTH}d}"


class BillNumberGenerator:
    def __init__(self, bills: BillsRepo, clock: Callable[[], date] = date.today):
        self.bills = bills
        self.clock = clock

    def candidate(self, business_id: int, prefix: str, retry: int = 0) -> str:
        stem = bill_stem(prefix, self.clock())
        highest = self.bills.highest_bill_number(business_id, stem)
        return format_bill_number(stem, sequence_of(highest, stem) + 1 + retry)

    def allocate(
        self,
        business_id: int,
        prefix: str,
        insert: Callable[[str], T],
        on_retry: Callable[[str, int], None] | None = None,
    ) -> Tuple[str, T]:
        """
        Call `insert(number)` with successive candidates until it does not raise
        DuplicateBillNumberError. Returns (number, insert's result).
        """
        for retry in range(MAX_BILL_NUMBER_ATTEMPTS):
            number = self.candidate(business_id, prefix, retry)
            try:
                return number, insert(number)
            except DuplicateBillNumberError:
                _log.warning("Bill number %s already taken (attempt %d)", number, retry + 1)
                if on_retry is not None:
                    on_retry(number, retry + 1)
        raise BillNumberAllocationError(MAX_BILL_NUMBER_ATTEMPTS)
