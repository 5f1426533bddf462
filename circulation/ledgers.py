"""Book inventory and student membership counters.

Each counter change is a single conditional UPDATE whose WHERE clause carries
the invariant, so two concurrent transactions can never both pass the stock
or quota check. A zero row count means the guard failed.
"""

from sqlalchemy import update
from sqlalchemy.orm import Session

from circulation import models
from circulation.exceptions import (
    InventoryOverflow,
    OutOfStock,
    QuotaAdjustmentRejected,
    QuotaExceeded,
    StockAdjustmentRejected,
)
from circulation.logging import get_logger

logger = get_logger(__name__)


def _apply(db: Session, statement, record) -> bool:
    result = db.execute(statement.execution_options(synchronize_session=False))
    # Keep the identity map in step with the row that was just written
    db.expire(record)
    return result.rowcount == 1


# Inventory ledger

def reserve_copy(db: Session, book: models.Book) -> None:
    reserved = _apply(
        db,
        update(models.Book)
        .where(models.Book.book_id == book.book_id, models.Book.available_copies > 0)
        .values(available_copies=models.Book.available_copies - 1),
        book,
    )
    if not reserved:
        raise OutOfStock(f"Book {book.book_id} has no available copies")


def release_copy(db: Session, book: models.Book) -> None:
    released = _apply(
        db,
        update(models.Book)
        .where(
            models.Book.book_id == book.book_id,
            models.Book.available_copies < models.Book.total_copies,
        )
        .values(available_copies=models.Book.available_copies + 1),
        book,
    )
    if not released:
        logger.error(
            "Inventory overflow: release of book %s would exceed its %s copies",
            book.book_id,
            book.total_copies,
        )
        raise InventoryOverflow(f"Book {book.book_id} has no copy on loan to release")


def retire_copy(db: Session, book: models.Book) -> None:
    """Drop a copy that is out on loan from the collection (lost books)."""
    retired = _apply(
        db,
        update(models.Book)
        .where(
            models.Book.book_id == book.book_id,
            models.Book.total_copies > models.Book.available_copies,
        )
        .values(total_copies=models.Book.total_copies - 1),
        book,
    )
    if not retired:
        logger.error("Inventory mismatch: book %s has no copy on loan to retire", book.book_id)
        raise InventoryOverflow(f"Book {book.book_id} has no copy on loan to retire")


def adjust_stock(db: Session, book: models.Book, total_copies: int) -> None:
    """Change the copy count, shifting availability by the same delta.

    Refused when more copies are on loan than the new total allows.
    """
    delta = total_copies - book.total_copies
    if delta == 0:
        return

    adjusted = _apply(
        db,
        update(models.Book)
        .where(
            models.Book.book_id == book.book_id,
            models.Book.total_copies == book.total_copies,
            models.Book.available_copies + delta >= 0,
        )
        .values(
            total_copies=total_copies,
            available_copies=models.Book.available_copies + delta,
        ),
        book,
    )
    if not adjusted:
        raise StockAdjustmentRejected(
            f"Book {book.book_id} cannot go to {total_copies} copies with its current loans"
        )


# Membership ledger

def admit_loan(db: Session, student: models.Student) -> None:
    admitted = _apply(
        db,
        update(models.Student)
        .where(
            models.Student.student_id == student.student_id,
            models.Student.current_books_issued < models.Student.max_books_allowed,
        )
        .values(current_books_issued=models.Student.current_books_issued + 1),
        student,
    )
    if not admitted:
        raise QuotaExceeded(
            f"Student has reached maximum book limit ({student.max_books_allowed} books)"
        )


def release_loan(db: Session, student: models.Student) -> None:
    released = _apply(
        db,
        update(models.Student)
        .where(
            models.Student.student_id == student.student_id,
            models.Student.current_books_issued > 0,
        )
        .values(current_books_issued=models.Student.current_books_issued - 1),
        student,
    )
    if not released:
        logger.warning(
            "Membership counter for student %s already at 0; release clamped",
            student.student_id,
        )


def adjust_quota(db: Session, student: models.Student, max_books_allowed: int) -> None:
    """Change the borrowing limit; refused below the books already issued."""
    adjusted = _apply(
        db,
        update(models.Student)
        .where(
            models.Student.student_id == student.student_id,
            models.Student.current_books_issued <= max_books_allowed,
        )
        .values(max_books_allowed=max_books_allowed),
        student,
    )
    if not adjusted:
        raise QuotaAdjustmentRejected(
            f"Student {student.student_id} has more than {max_books_allowed} books issued"
        )
