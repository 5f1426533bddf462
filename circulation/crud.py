from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from circulation import ledgers, models, schemas
from circulation.exceptions import BookNotFound, RecordInUse, StudentNotFound
from circulation.logging import get_logger

logger = get_logger(__name__)


def create_book(db: Session, book_data: schemas.BookCreate):
    fields = book_data.model_dump()
    new_book = models.Book(**fields, available_copies=fields["total_copies"], is_active=True)
    db.add(new_book)
    db.commit()
    db.refresh(new_book)
    logger.info("Added book %s (%s) with %d copies", new_book.book_id, new_book.isbn, new_book.total_copies)
    return new_book


def get_books(
    db: Session,
    search: Optional[str] = None,
    category: Optional[str] = None,
    available: Optional[bool] = None,
    skip: int = 0,
    limit: int = 10,
):
    query = db.query(models.Book).filter(models.Book.is_active.is_(True))

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            models.Book.book_name.ilike(pattern)
            | models.Book.book_author.ilike(pattern)
            | models.Book.isbn.ilike(pattern)
        )

    if category:
        query = query.filter(models.Book.book_category == category)

    if available is not None:
        if available:
            query = query.filter(models.Book.available_copies > 0)
        else:
            query = query.filter(models.Book.available_copies == 0)

    return query.order_by(models.Book.book_name.asc()).offset(skip).limit(limit).all()


def get_book_by_isbn(db: Session, isbn: str):
    return db.query(models.Book).filter(models.Book.isbn == isbn).first()


def get_book(db: Session, book_id: int):
    book = db.get(models.Book, book_id)
    if book is None or not book.is_active:
        raise BookNotFound(f"Book {book_id} not found")
    return book


def partial_update_book(
        db: Session,
        book_id: int,
        book_data: schemas.BookUpdate,
):
    book = get_book(db, book_id)
    changes = book_data.model_dump(exclude_unset=True, exclude_none=True)
    total_copies = changes.pop("total_copies", None)

    try:
        if total_copies is not None:
            ledgers.adjust_stock(db, book, total_copies)
        for key, value in changes.items():
            setattr(book, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(book)
    return book


def deactivate_book(db: Session, book_id: int):
    book = get_book(db, book_id)
    if book.available_copies < book.total_copies:
        raise RecordInUse(f"Book {book_id} still has copies on loan")

    book.is_active = False
    db.commit()
    logger.info("Deactivated book %s", book_id)
    return {"message": "Book deleted successfully"}


def create_student(db: Session, student_data: schemas.StudentCreate):
    new_student = models.Student(
        **student_data.model_dump(),
        status=models.StudentStatus.ACTIVE,
        current_books_issued=0,
    )
    db.add(new_student)
    db.commit()
    db.refresh(new_student)
    return new_student


def get_student(db: Session, student_id: int):
    student = db.get(models.Student, student_id)
    if student is None:
        raise StudentNotFound(f"Student {student_id} not found")
    return student


def get_student_by_email(db: Session, student_email: str):
    return db.query(models.Student).filter(models.Student.student_email == student_email).first()


def get_student_by_code_or_email(db: Session, student_code: str, student_email: str):
    return (
        db.query(models.Student)
        .filter(or_(models.Student.student_code == student_code, models.Student.student_email == student_email))
        .first()
    )


def get_students(
    db: Session,
    search: Optional[str] = None,
    status: Optional[models.StudentStatus] = models.StudentStatus.ACTIVE,
    skip: int = 0,
    limit: int = 10,
):
    query = db.query(models.Student)

    if status is not None:
        query = query.filter(models.Student.status == status)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            models.Student.student_name.ilike(pattern)
            | models.Student.student_code.ilike(pattern)
            | models.Student.student_email.ilike(pattern)
        )

    return query.order_by(models.Student.student_name.asc()).offset(skip).limit(limit).all()


def partial_update_student(
        db: Session,
        student_id: int,
        student_data: schemas.StudentUpdate,
):
    student = get_student(db, student_id)
    changes = student_data.model_dump(exclude_unset=True, exclude_none=True)
    max_books_allowed = changes.pop("max_books_allowed", None)

    try:
        if max_books_allowed is not None:
            ledgers.adjust_quota(db, student, max_books_allowed)
        for key, value in changes.items():
            setattr(student, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(student)
    return student


def deactivate_student(db: Session, student_id: int):
    student = get_student(db, student_id)
    open_loans = (
        db.query(models.Loan)
        .filter(
            models.Loan.student_id == student_id,
            models.Loan.status.in_(models.OPEN_STATUSES),
        )
        .count()
    )
    if open_loans:
        raise RecordInUse(f"Student {student_id} still has {open_loans} open loan(s)")

    student.status = models.StudentStatus.INACTIVE
    db.commit()
    logger.info("Deactivated student %s", student_id)
    return {"message": "Student deactivated successfully"}


def get_overdue_loans(db: Session) -> List[models.Loan]:
    return (
        db.query(models.Loan)
        .filter(models.Loan.status == models.LoanStatus.OVERDUE)
        .order_by(models.Loan.due_date.asc())
        .all()
    )


def get_loan_history(
    db: Session,
    status: Optional[models.LoanStatus] = None,
    student_id: Optional[int] = None,
    book_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 10,
):
    query = db.query(models.Loan)

    if status is not None:
        query = query.filter(models.Loan.status == status)

    if student_id is not None:
        query = query.filter(models.Loan.student_id == student_id)

    if book_id is not None:
        query = query.filter(models.Loan.book_id == book_id)

    if start is not None and end is not None:
        query = query.filter(models.Loan.created_at >= start, models.Loan.created_at <= end)

    return (
        query.order_by(models.Loan.created_at.desc(), models.Loan.loan_id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
