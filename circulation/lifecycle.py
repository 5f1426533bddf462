"""Loan state machine.

A loan moves forward only::

    active --(due date passes)--> overdue
    active | overdue --(return)--> returned
    active | overdue --(declared lost)--> lost

``returned`` and ``lost`` are terminal. Every transition takes the current
instant explicitly so callers (and tests) control the clock. These functions
mutate the ``Loan`` in memory only; persisting it and reconciling the book and
student counters is the coordinator's job.
"""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from circulation.exceptions import FineNotPayable, LoanNotActive, LoanPastDue, RenewalLimitReached
from circulation.models import (
    OPEN_STATUSES,
    Book,
    FineReason,
    Loan,
    LoanKind,
    LoanStatus,
    Student,
)

LOAN_PERIOD = timedelta(days=14)
MAX_RENEWALS = 3
FINE_RATE_PER_DAY = Decimal("2.00")
NOTES_MAX_LENGTH = 200

_ONE_DAY = timedelta(days=1)
_ZERO = Decimal("0.00")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the DateTime columns store values."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_fine(due_date: datetime, settlement: datetime) -> Decimal:
    """Fine owed when a loan due at ``due_date`` is settled at ``settlement``.

    Any started day counts as a full overdue day.
    """
    overdue_days = math.ceil((settlement - due_date) / _ONE_DAY)
    if overdue_days <= 0:
        return _ZERO
    return FINE_RATE_PER_DAY * overdue_days


def accrue_fine(loan: Loan, now: datetime) -> Decimal:
    """Recompute the overdue fine of ``loan`` from scratch and store it.

    Returned loans settle at their return date, outstanding overdue loans at
    ``now``. Active loans carry no fine. Calling this repeatedly with the same
    inputs always yields the same amount.
    """
    if loan.status == LoanStatus.RETURNED:
        settlement = loan.return_date
    elif loan.status == LoanStatus.OVERDUE:
        settlement = now
    else:
        return loan.fine_amount

    amount = calculate_fine(loan.due_date, settlement)
    loan.fine_amount = amount
    loan.fine_reason = FineReason.OVERDUE if amount > 0 else FineReason.NONE
    return amount


def _touch(loan: Loan, now: datetime) -> None:
    loan.updated_at = now


def _require_open(loan: Loan, action: str) -> None:
    if loan.status not in OPEN_STATUSES:
        raise LoanNotActive(f"Cannot {action} loan {loan.loan_id}: status is {loan.status.value}")


def _merge_notes(current: Optional[str], notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return current
    return notes[:NOTES_MAX_LENGTH]


def open_loan(
    book: Book,
    student: Student,
    now: datetime,
    notes: Optional[str] = None,
    processed_by: Optional[str] = None,
) -> Loan:
    """Create the loan record for an issue. Stock and quota are not checked here."""
    return Loan(
        book_id=book.book_id,
        student_id=student.student_id,
        kind=LoanKind.ISSUE,
        status=LoanStatus.ACTIVE,
        issue_date=now,
        due_date=now + LOAN_PERIOD,
        renewal_count=0,
        fine_amount=_ZERO,
        fine_reason=FineReason.NONE,
        fine_paid=False,
        notes=_merge_notes(None, notes),
        processed_by=processed_by,
        created_at=now,
        updated_at=now,
    )


def renew_loan(loan: Loan, now: datetime) -> Loan:
    """Push the due date ``LOAN_PERIOD`` past ``now``.

    Only open loans under the renewal limit and not yet past due can be
    renewed. A late loan has to be returned, and its accrued fine stays.
    """
    if not loan.is_open:
        raise LoanNotActive(f"Cannot renew loan {loan.loan_id}: status is {loan.status.value}")
    if loan.renewal_count >= MAX_RENEWALS:
        raise RenewalLimitReached(
            f"Loan {loan.loan_id} has reached the maximum of {MAX_RENEWALS} renewals"
        )
    if loan.status == LoanStatus.OVERDUE or loan.due_date < now:
        raise LoanPastDue(f"Loan {loan.loan_id} is past due and must be returned")

    loan.renewal_count += 1
    loan.due_date = now + LOAN_PERIOD
    loan.kind = LoanKind.RENEW
    _touch(loan, now)
    return loan


def flag_overdue(loan: Loan, now: datetime) -> bool:
    """Move an active loan past its due date to ``overdue`` and accrue its fine.

    Returns True if the loan changed state.
    """
    if loan.status != LoanStatus.ACTIVE or not loan.due_date < now:
        return False

    loan.status = LoanStatus.OVERDUE
    accrue_fine(loan, now)
    _touch(loan, now)
    return True


def close_loan(loan: Loan, now: datetime, notes: Optional[str] = None) -> Loan:
    """Mark the loan returned at ``now`` and settle its final fine."""
    _require_open(loan, "return")

    loan.kind = LoanKind.RETURN
    loan.status = LoanStatus.RETURNED
    loan.return_date = now
    loan.notes = _merge_notes(loan.notes, notes)
    accrue_fine(loan, now)
    _touch(loan, now)
    return loan


def declare_lost(
    loan: Loan,
    now: datetime,
    replacement_fee: Decimal = _ZERO,
    notes: Optional[str] = None,
) -> Loan:
    """Close the loan as lost; the fine is the overdue fine so far plus the fee."""
    _require_open(loan, "mark lost")
    if replacement_fee < 0:
        raise ValueError("replacement_fee cannot be negative")

    overdue = calculate_fine(loan.due_date, now)
    loan.status = LoanStatus.LOST
    loan.fine_amount = overdue + Decimal(replacement_fee)
    loan.fine_reason = FineReason.LOST
    loan.notes = _merge_notes(loan.notes, notes)
    _touch(loan, now)
    return loan


def settle_fine(loan: Loan, now: datetime) -> Loan:
    """Flag the fine of a closed loan as paid. Open loans are still accruing."""
    if loan.status in OPEN_STATUSES:
        raise FineNotPayable(f"Loan {loan.loan_id} is still open; its fine is not final")
    if loan.fine_amount is None or loan.fine_amount <= 0:
        raise FineNotPayable(f"Loan {loan.loan_id} has no fine to pay")
    if loan.fine_paid:
        raise FineNotPayable(f"Fine for loan {loan.loan_id} is already paid")

    loan.fine_paid = True
    loan.fine_paid_date = now
    _touch(loan, now)
    return loan
