"""Tests for the book inventory and student membership counters."""

import logging

import pytest

from circulation import ledgers
from circulation.exceptions import (
    InventoryOverflow,
    OutOfStock,
    QuotaAdjustmentRejected,
    QuotaExceeded,
    StockAdjustmentRejected,
)


class TestInventoryLedger:
    def test_reserve_decrements_available(self, db, make_book):
        book = make_book(total_copies=2)

        ledgers.reserve_copy(db, book)
        db.commit()

        assert book.available_copies == 1
        assert book.total_copies == 2

    def test_reserve_with_no_stock_fails(self, db, make_book):
        book = make_book(total_copies=1, available_copies=0)

        with pytest.raises(OutOfStock):
            ledgers.reserve_copy(db, book)
        assert book.available_copies == 0

    def test_release_increments_available(self, db, make_book):
        book = make_book(total_copies=2, available_copies=1)

        ledgers.release_copy(db, book)
        db.commit()

        assert book.available_copies == 2

    def test_double_release_is_overflow(self, db, make_book, caplog):
        book = make_book(total_copies=1)

        with caplog.at_level(logging.ERROR, logger="circulation.ledgers"):
            with pytest.raises(InventoryOverflow):
                ledgers.release_copy(db, book)

        assert book.available_copies == 1
        assert "Inventory overflow" in caplog.text

    def test_counts_stay_in_bounds(self, db, make_book):
        book = make_book(total_copies=2)
        for operation in ["reserve", "reserve", "reserve", "release", "release", "release", "reserve"]:
            try:
                if operation == "reserve":
                    ledgers.reserve_copy(db, book)
                else:
                    ledgers.release_copy(db, book)
            except (OutOfStock, InventoryOverflow):
                db.rollback()
            else:
                db.commit()
            assert 0 <= book.available_copies <= book.total_copies

        assert book.available_copies == 1

    def test_retire_copy_shrinks_total(self, db, make_book):
        book = make_book(total_copies=3, available_copies=2)

        ledgers.retire_copy(db, book)
        db.commit()

        assert book.total_copies == 2
        assert book.available_copies == 2

    def test_retire_copy_needs_a_copy_on_loan(self, db, make_book):
        book = make_book(total_copies=2)

        with pytest.raises(InventoryOverflow):
            ledgers.retire_copy(db, book)

    def test_adjust_stock_shifts_available(self, db, make_book):
        book = make_book(total_copies=3, available_copies=1)

        ledgers.adjust_stock(db, book, 5)
        db.commit()
        assert (book.total_copies, book.available_copies) == (5, 3)

        ledgers.adjust_stock(db, book, 2)
        db.commit()
        assert (book.total_copies, book.available_copies) == (2, 0)

    def test_adjust_stock_below_copies_on_loan_is_rejected(self, db, make_book):
        book = make_book(total_copies=3, available_copies=1)

        with pytest.raises(StockAdjustmentRejected):
            ledgers.adjust_stock(db, book, 1)
        assert book.total_copies == 3


class TestMembershipLedger:
    def test_admit_up_to_quota(self, db, make_student):
        student = make_student(max_books_allowed=2)

        ledgers.admit_loan(db, student)
        ledgers.admit_loan(db, student)
        db.commit()
        assert student.current_books_issued == 2

        with pytest.raises(QuotaExceeded):
            ledgers.admit_loan(db, student)
        assert student.current_books_issued == 2

    def test_release_decrements(self, db, make_student):
        student = make_student(current_books_issued=2)

        ledgers.release_loan(db, student)
        db.commit()

        assert student.current_books_issued == 1

    def test_release_at_zero_is_clamped_and_logged(self, db, make_student, caplog):
        student = make_student()

        with caplog.at_level(logging.WARNING, logger="circulation.ledgers"):
            ledgers.release_loan(db, student)
        db.commit()

        assert student.current_books_issued == 0
        assert "clamped" in caplog.text

    def test_adjust_quota_changes_limit(self, db, make_student):
        student = make_student(max_books_allowed=3, current_books_issued=2)

        ledgers.adjust_quota(db, student, 2)
        db.commit()
        assert student.max_books_allowed == 2

        ledgers.adjust_quota(db, student, 5)
        db.commit()
        assert student.max_books_allowed == 5

    def test_adjust_quota_below_books_issued_is_rejected(self, db, make_student):
        student = make_student(max_books_allowed=3, current_books_issued=2)

        with pytest.raises(QuotaAdjustmentRejected):
            ledgers.adjust_quota(db, student, 1)
        assert student.max_books_allowed == 3
        assert student.current_books_issued == 2
