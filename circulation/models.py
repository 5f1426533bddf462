import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from circulation.database import Base


class StudentStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    GRADUATED = "graduated"


class LoanKind(str, enum.Enum):
    ISSUE = "issue"
    RETURN = "return"
    RENEW = "renew"


class LoanStatus(str, enum.Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"


class FineReason(str, enum.Enum):
    OVERDUE = "overdue"
    DAMAGE = "damage"
    LOST = "lost"
    NONE = "none"


OPEN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


def _enum_column(enum_cls, **kwargs):
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


# Book model (a catalog title, not a physical copy)
class Book(Base):
    __tablename__ = "books"

    book_id = Column(Integer, primary_key=True, index=True)
    isbn = Column(String(13), nullable=False, unique=True, index=True)
    book_name = Column(String(100), nullable=False, index=True)
    book_author = Column(String(50), nullable=False)
    book_category = Column(String(30), nullable=False, default="Other")
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    loans = relationship("Loan", back_populates="book")

    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="chk_book_total"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="chk_book_available",
        ),
    )


# Student model (library membership)
class Student(Base):
    __tablename__ = "students"

    student_id = Column(Integer, primary_key=True, index=True)
    student_code = Column(String(20), nullable=False, unique=True, index=True)
    student_name = Column(String(50), nullable=False)
    student_email = Column(String, nullable=False, unique=True)
    status = _enum_column(StudentStatus, nullable=False, default=StudentStatus.ACTIVE)
    max_books_allowed = Column(Integer, nullable=False, default=3)
    current_books_issued = Column(Integer, nullable=False, default=0)

    loans = relationship("Loan", back_populates="student")

    __table_args__ = (
        CheckConstraint("max_books_allowed >= 0", name="chk_student_quota"),
        CheckConstraint("current_books_issued >= 0", name="chk_student_current"),
    )


@dataclass(frozen=True)
class FineRecord:
    amount: Decimal
    reason: FineReason
    paid: bool
    paid_date: Optional[datetime]


# Loan model (one circulation transaction, never deleted)
class Loan(Base):
    __tablename__ = "loans"

    loan_id = Column(Integer, primary_key=True)
    book_id = Column(Integer, ForeignKey("books.book_id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.student_id"), nullable=False)
    kind = _enum_column(LoanKind, nullable=False, default=LoanKind.ISSUE)
    status = _enum_column(LoanStatus, nullable=False, default=LoanStatus.ACTIVE)
    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)
    fine_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    fine_reason = _enum_column(FineReason, nullable=False, default=FineReason.NONE)
    fine_paid = Column(Boolean, nullable=False, default=False)
    fine_paid_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    processed_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    book = relationship("Book", back_populates="loans")
    student = relationship("Student", back_populates="loans")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("renewal_count >= 0 AND renewal_count <= 3", name="chk_loan_renewals"),
        CheckConstraint("fine_amount >= 0", name="chk_loan_fine"),
        Index("ix_loans_student_status", "student_id", "status"),
        Index("ix_loans_book_status", "book_id", "status"),
        Index("ix_loans_due_status", "due_date", "status"),
        Index(
            "uq_loans_open_pair",
            "book_id",
            "student_id",
            unique=True,
            sqlite_where=text("status IN ('active', 'overdue')"),
            postgresql_where=text("status IN ('active', 'overdue')"),
        ),
    )

    @property
    def fine(self) -> FineRecord:
        return FineRecord(
            amount=self.fine_amount,
            reason=self.fine_reason,
            paid=self.fine_paid,
            paid_date=self.fine_paid_date,
        )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
