from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from circulation.models import FineReason, LoanKind, LoanStatus, StudentStatus


class BookBase(BaseModel):
    isbn: str = Field(pattern=r"^(?:\d{9}[\dX]|\d{13})$")
    book_name: str = Field(max_length=100)
    book_author: str = Field(max_length=50)
    book_category: str = "Other"


class BookCreate(BookBase):
    total_copies: int = Field(ge=1)


class BookUpdate(BaseModel):
    book_name: Optional[str] = Field(default=None, max_length=100)
    book_author: Optional[str] = Field(default=None, max_length=50)
    book_category: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=1)


class BookConfig(BookBase):
    book_id: int
    total_copies: int
    available_copies: int
    is_active: bool

    model_config = {
        "from_attributes": True
    }


class StudentBase(BaseModel):
    student_code: str = Field(max_length=20)
    student_name: str = Field(max_length=50)
    student_email: EmailStr


class StudentCreate(StudentBase):
    max_books_allowed: int = Field(default=3, ge=0)


class StudentUpdate(BaseModel):
    student_name: Optional[str] = Field(default=None, max_length=50)
    student_email: Optional[EmailStr] = None
    max_books_allowed: Optional[int] = Field(default=None, ge=0)


class StudentConfig(StudentBase):
    student_id: int
    status: StudentStatus
    max_books_allowed: int
    current_books_issued: int

    model_config = {
        "from_attributes": True
    }


class FineConfig(BaseModel):
    amount: Decimal
    reason: FineReason
    paid: bool
    paid_date: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class LoanIssue(BaseModel):
    book_id: int
    student_id: int
    notes: Optional[str] = Field(default=None, max_length=200)
    processed_by: Optional[str] = Field(default=None, max_length=64)


class LoanReturn(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=200)


class LoanLost(BaseModel):
    replacement_fee: Decimal = Field(default=Decimal("0.00"), ge=0)
    notes: Optional[str] = Field(default=None, max_length=200)


class LoanConfig(BaseModel):
    loan_id: int
    book_id: int
    student_id: int
    kind: LoanKind
    status: LoanStatus
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    renewal_count: int
    fine: FineConfig
    notes: Optional[str] = None
    processed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }


class LoanWithBookStudent(LoanConfig):
    book: BookConfig
    student: StudentConfig


class SweepResult(BaseModel):
    count: int
    loans: List[LoanWithBookStudent]
