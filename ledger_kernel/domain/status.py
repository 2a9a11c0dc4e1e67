"""
Status -- pure derivation of a document's payment status.

Responsibility:
    Maps (total, paid, due date, today) to one of PENDING, PARTIALLY_PAID,
    PAID, OVERDUE.  The stored ``status`` column of every document is a cache
    of this function over the document's payment ledger.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Precedence:
    1. Fully paid (remaining <= 0)         -> PAID, even past the due date
    2. Past due (due_date < today)         -> OVERDUE, even if partially paid
    3. Something paid                      -> PARTIALLY_PAID
    4. Nothing paid                        -> PENDING

    A partially paid document past its due date is OVERDUE; the amount paid
    is still available from the ledger, it is just not encoded in the status.
"""

from datetime import date, datetime
from enum import Enum

from ledger_kernel.domain.values import Money


class DocumentStatus(str, Enum):
    """Derived payment status of a payable document."""

    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"


def _as_date(value: date | datetime) -> date:
    # datetime is a subclass of date; strip time-of-day
    if isinstance(value, datetime):
        return value.date()
    return value


def derive_status(
    total: Money,
    paid: Money,
    due_date: date | datetime | None,
    today: date | datetime,
) -> DocumentStatus:
    """
    Derive a document's status from its ledger.

    Comparison against the due date is date-only: a document due today is
    not overdue today.
    """
    remaining = total - paid
    if remaining.minor_units <= 0:
        return DocumentStatus.PAID
    if due_date is not None and _as_date(due_date) < _as_date(today):
        return DocumentStatus.OVERDUE
    if paid.is_positive:
        return DocumentStatus.PARTIALLY_PAID
    return DocumentStatus.PENDING
