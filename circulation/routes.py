from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from circulation import coordinator, crud, schemas
from circulation.database import get_db
from circulation.models import LoanStatus, StudentStatus

router = APIRouter()


@router.post("/books/", response_model=schemas.BookConfig, status_code=status.HTTP_201_CREATED)
def create_book(book: schemas.BookCreate, db: Session = Depends(get_db)):
    if crud.get_book_by_isbn(db, book.isbn):
        raise HTTPException(status_code=400, detail="ISBN already registered.")
    return crud.create_book(db, book)


@router.get("/books/", response_model=List[schemas.BookConfig])
def read_books(
    search: Optional[str] = None,
    category: Optional[str] = None,
    available: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return crud.get_books(db, search, category, available, skip, limit)


@router.get("/books/{book_id}", response_model=schemas.BookConfig)
def read_book(book_id: int, db: Session = Depends(get_db)):
    return crud.get_book(db, book_id)


@router.patch("/books/{book_id}", response_model=schemas.BookConfig)
def update_book(
        book_id: int,
        book_data: schemas.BookUpdate,
        db: Session = Depends(get_db),
):
    return crud.partial_update_book(db, book_id, book_data)


@router.delete("/books/{book_id}")
def delete_book(book_id: int, db: Session = Depends(get_db)):
    return crud.deactivate_book(db, book_id)


@router.post("/students/", response_model=schemas.StudentConfig, status_code=status.HTTP_201_CREATED)
def register_student(student: schemas.StudentCreate, db: Session = Depends(get_db)):
    if crud.get_student_by_code_or_email(db, student.student_code, student.student_email):
        raise HTTPException(status_code=400, detail="Student ID or email already registered.")
    return crud.create_student(db, student)


@router.get("/students/", response_model=List[schemas.StudentConfig])
def read_students(
    search: Optional[str] = None,
    student_status: Optional[StudentStatus] = Query(StudentStatus.ACTIVE, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return crud.get_students(db, search, student_status, skip, limit)


@router.get("/students/{student_id}", response_model=schemas.StudentConfig)
def read_student(student_id: int, db: Session = Depends(get_db)):
    return crud.get_student(db, student_id)


@router.patch("/students/{student_id}", response_model=schemas.StudentConfig)
def update_student(
        student_id: int,
        student_data: schemas.StudentUpdate,
        db: Session = Depends(get_db),
):
    if student_data.student_email is not None:
        existing = crud.get_student_by_email(db, student_data.student_email)
        if existing and existing.student_id != student_id:
            raise HTTPException(status_code=400, detail="Student email already registered.")
    return crud.partial_update_student(db, student_id, student_data)


@router.delete("/students/{student_id}")
def deactivate_student(student_id: int, db: Session = Depends(get_db)):
    return crud.deactivate_student(db, student_id)


@router.get("/students/{student_id}/loans", response_model=List[schemas.LoanWithBookStudent])
def read_student_loans(student_id: int, db: Session = Depends(get_db)):
    return coordinator.list_loans_for_student(db, student_id)


@router.post("/loans/issue", response_model=schemas.LoanWithBookStudent, status_code=status.HTTP_201_CREATED)
def issue_book(loan: schemas.LoanIssue, db: Session = Depends(get_db)):
    return coordinator.issue_loan(
        db,
        loan.book_id,
        loan.student_id,
        notes=loan.notes,
        processed_by=loan.processed_by,
    )


@router.post("/loans/sweep", response_model=schemas.SweepResult)
def sweep_overdue_loans(db: Session = Depends(get_db)):
    loans = coordinator.sweep_overdue(db)
    return {"count": len(loans), "loans": loans}


@router.get("/loans/overdue", response_model=List[schemas.LoanWithBookStudent])
def read_overdue_loans(db: Session = Depends(get_db)):
    coordinator.sweep_overdue(db)
    return crud.get_overdue_loans(db)


@router.get("/loans/", response_model=List[schemas.LoanWithBookStudent])
def read_loan_history(
    loan_status: Optional[LoanStatus] = Query(None, alias="status"),
    student_id: Optional[int] = None,
    book_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return crud.get_loan_history(db, loan_status, student_id, book_id, start, end, skip, limit)


@router.get("/loans/{loan_id}", response_model=schemas.LoanWithBookStudent)
def read_loan(loan_id: int, db: Session = Depends(get_db)):
    return coordinator.get_loan(db, loan_id)


@router.post("/loans/{loan_id}/return", response_model=schemas.LoanWithBookStudent)
def return_book(
    loan_id: int,
    return_data: Optional[schemas.LoanReturn] = None,
    db: Session = Depends(get_db),
):
    notes = return_data.notes if return_data else None
    return coordinator.return_loan(db, loan_id, notes=notes)


@router.post("/loans/{loan_id}/renew", response_model=schemas.LoanWithBookStudent)
def renew_book(loan_id: int, db: Session = Depends(get_db)):
    return coordinator.renew_loan(db, loan_id)


@router.post("/loans/{loan_id}/lost", response_model=schemas.LoanWithBookStudent)
def report_lost(
    loan_id: int,
    lost_data: Optional[schemas.LoanLost] = None,
    db: Session = Depends(get_db),
):
    lost_data = lost_data or schemas.LoanLost()
    return coordinator.mark_lost(
        db,
        loan_id,
        replacement_fee=lost_data.replacement_fee,
        notes=lost_data.notes,
    )


@router.post("/loans/{loan_id}/fine/pay", response_model=schemas.LoanWithBookStudent)
def pay_fine(loan_id: int, db: Session = Depends(get_db)):
    return coordinator.pay_fine(db, loan_id)
