"""Circulation events: issue, return, renew, lost, fine payment and the overdue sweep.

Each event runs in one database transaction covering the loan, book and
student rows it touches. On any failure the transaction is rolled back, which
undoes counter changes already applied; on an optimistic-lock conflict the
whole event is retried from a fresh read.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from circulation import ledgers, lifecycle, models
from circulation.config import get_config
from circulation.exceptions import (
    BookNotFound,
    ConcurrencyConflict,
    DuplicateActiveLoan,
    LoanNotFound,
    StudentNotFound,
)
from circulation.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def run_event(db: Session, name: str, event: Callable[[], T], retries: Optional[int] = None) -> T:
    """Run ``event`` and commit, retrying on optimistic-lock conflicts."""
    if retries is None:
        retries = get_config().conflict_retries

    for attempt in range(1, retries + 2):
        try:
            result = event()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning("Conflict during %s (attempt %d of %d)", name, attempt, retries + 1)
        except Exception:
            db.rollback()
            raise

    raise ConcurrencyConflict(f"{name} kept conflicting with concurrent updates; try again")


def _open_loan_for_pair(db: Session, book_id: int, student_id: int) -> Optional[models.Loan]:
    return (
        db.query(models.Loan)
        .filter(
            models.Loan.book_id == book_id,
            models.Loan.student_id == student_id,
            models.Loan.status.in_(models.OPEN_STATUSES),
        )
        .first()
    )


def _load_loan(db: Session, loan_id: int) -> models.Loan:
    loan = db.get(models.Loan, loan_id)
    if loan is None:
        raise LoanNotFound(f"Loan {loan_id} not found")
    return loan


def issue_loan(
    db: Session,
    book_id: int,
    student_id: int,
    notes: Optional[str] = None,
    processed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Loan:
    now = now or lifecycle.utcnow()

    def event() -> models.Loan:
        book = db.get(models.Book, book_id)
        if book is None or not book.is_active:
            raise BookNotFound(f"Book {book_id} not found")

        student = db.get(models.Student, student_id)
        if student is None or student.status != models.StudentStatus.ACTIVE:
            raise StudentNotFound(f"Student {student_id} not found")

        if _open_loan_for_pair(db, book_id, student_id) is not None:
            raise DuplicateActiveLoan("Student already has this book issued")

        ledgers.reserve_copy(db, book)
        ledgers.admit_loan(db, student)

        loan = lifecycle.open_loan(book, student, now, notes=notes, processed_by=processed_by)
        db.add(loan)
        try:
            db.flush()
        except IntegrityError as exc:
            # A concurrent issue for the same pair won the race to the unique index
            raise DuplicateActiveLoan("Student already has this book issued") from exc
        return loan

    loan = run_event(db, "issue", event)
    db.refresh(loan)
    logger.info(
        "Issued book %s to student %s as loan %s, due %s",
        book_id,
        student_id,
        loan.loan_id,
        loan.due_date.isoformat(),
    )
    return loan


def return_loan(
    db: Session,
    loan_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Loan:
    now = now or lifecycle.utcnow()

    def event() -> models.Loan:
        loan = _load_loan(db, loan_id)
        lifecycle.close_loan(loan, now, notes=notes)
        ledgers.release_copy(db, loan.book)
        ledgers.release_loan(db, loan.student)
        db.flush()
        return loan

    loan = run_event(db, "return", event)
    db.refresh(loan)
    logger.info("Returned loan %s with fine %s", loan.loan_id, loan.fine_amount)
    return loan


def renew_loan(db: Session, loan_id: int, now: Optional[datetime] = None) -> models.Loan:
    now = now or lifecycle.utcnow()

    def event() -> models.Loan:
        loan = _load_loan(db, loan_id)
        lifecycle.renew_loan(loan, now)
        db.flush()
        return loan

    loan = run_event(db, "renew", event)
    db.refresh(loan)
    logger.info(
        "Renewed loan %s (%d of %d), now due %s",
        loan.loan_id,
        loan.renewal_count,
        lifecycle.MAX_RENEWALS,
        loan.due_date.isoformat(),
    )
    return loan


def mark_lost(
    db: Session,
    loan_id: int,
    replacement_fee: Decimal = Decimal("0.00"),
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Loan:
    """Close a loan whose copy will not come back.

    The student's slot is freed and the copy leaves the book's total.
    """
    now = now or lifecycle.utcnow()

    def event() -> models.Loan:
        loan = _load_loan(db, loan_id)
        lifecycle.declare_lost(loan, now, replacement_fee=replacement_fee, notes=notes)
        ledgers.retire_copy(db, loan.book)
        ledgers.release_loan(db, loan.student)
        db.flush()
        return loan

    loan = run_event(db, "mark lost", event)
    db.refresh(loan)
    logger.info("Loan %s marked lost with fine %s", loan.loan_id, loan.fine_amount)
    return loan


def pay_fine(db: Session, loan_id: int, now: Optional[datetime] = None) -> models.Loan:
    now = now or lifecycle.utcnow()

    def event() -> models.Loan:
        loan = _load_loan(db, loan_id)
        lifecycle.settle_fine(loan, now)
        db.flush()
        return loan

    loan = run_event(db, "fine payment", event)
    db.refresh(loan)
    logger.info("Fine of %s paid for loan %s", loan.fine_amount, loan.loan_id)
    return loan


def sweep_overdue(db: Session, now: Optional[datetime] = None) -> List[models.Loan]:
    """Flag every active loan past its due date as overdue.

    Fines of loans that were already overdue are brought up to ``now`` too.
    Returns only the loans that changed state in this sweep.
    """
    now = now or lifecycle.utcnow()

    def event() -> List[models.Loan]:
        outstanding = (
            db.query(models.Loan)
            .filter(models.Loan.status == models.LoanStatus.OVERDUE)
            .all()
        )
        for loan in outstanding:
            previous = loan.fine_amount
            if lifecycle.accrue_fine(loan, now) != previous:
                loan.updated_at = now

        candidates = (
            db.query(models.Loan)
            .filter(
                models.Loan.status == models.LoanStatus.ACTIVE,
                models.Loan.due_date < now,
            )
            .order_by(models.Loan.due_date.asc())
            .all()
        )
        transitioned = [loan for loan in candidates if lifecycle.flag_overdue(loan, now)]
        db.flush()
        return transitioned

    transitioned = run_event(db, "overdue sweep", event)
    for loan in transitioned:
        db.refresh(loan)
    logger.info("Overdue sweep flagged %d loan(s)", len(transitioned))
    return transitioned


def get_loan(db: Session, loan_id: int) -> models.Loan:
    return _load_loan(db, loan_id)


def list_loans_for_student(db: Session, student_id: int) -> List[models.Loan]:
    if db.get(models.Student, student_id) is None:
        raise StudentNotFound(f"Student {student_id} not found")

    return (
        db.query(models.Loan)
        .filter(models.Loan.student_id == student_id)
        .order_by(models.Loan.created_at.desc(), models.Loan.loan_id.desc())
        .all()
    )
