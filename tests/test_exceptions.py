"""Tests for the circulation exception hierarchy."""

import pytest

from circulation.exceptions import (
    BookNotFound,
    CirculationError,
    ConcurrencyConflict,
    ConsistencyViolation,
    DuplicateActiveLoan,
    FineNotPayable,
    InventoryOverflow,
    LoanNotActive,
    LoanNotFound,
    LoanPastDue,
    NotFoundError,
    OutOfStock,
    PreconditionFailed,
    QuotaAdjustmentRejected,
    QuotaExceeded,
    RecordInUse,
    RenewalLimitReached,
    StockAdjustmentRejected,
    StudentNotFound,
)


@pytest.mark.parametrize("exc", [BookNotFound, StudentNotFound, LoanNotFound])
def test_not_found_family(exc):
    assert isinstance(exc("x"), NotFoundError)
    assert isinstance(exc("x"), CirculationError)


@pytest.mark.parametrize(
    "exc",
    [
        OutOfStock,
        QuotaExceeded,
        DuplicateActiveLoan,
        RenewalLimitReached,
        LoanNotActive,
        LoanPastDue,
        FineNotPayable,
        StockAdjustmentRejected,
        QuotaAdjustmentRejected,
        RecordInUse,
    ],
)
def test_precondition_family(exc):
    assert isinstance(exc("x"), PreconditionFailed)
    assert not isinstance(exc("x"), NotFoundError)


def test_inventory_overflow_is_consistency_violation():
    err = InventoryOverflow("Book 1 has no copy on loan to release")
    assert isinstance(err, ConsistencyViolation)
    assert not isinstance(err, PreconditionFailed)
    assert str(err) == "Book 1 has no copy on loan to release"


def test_concurrency_conflict_stands_alone():
    err = ConcurrencyConflict("retry later")
    assert isinstance(err, CirculationError)
    assert not isinstance(err, (PreconditionFailed, ConsistencyViolation))
