"""Exception hierarchy for the circulation core."""


class CirculationError(Exception):
    """Base exception for all circulation errors."""


class NotFoundError(CirculationError):
    """Raised when a referenced record does not exist."""


class BookNotFound(NotFoundError):
    pass


class StudentNotFound(NotFoundError):
    pass


class LoanNotFound(NotFoundError):
    pass


class PreconditionFailed(CirculationError):
    """Raised when a business rule rejects the operation before any change."""


class OutOfStock(PreconditionFailed):
    pass


class QuotaExceeded(PreconditionFailed):
    pass


class DuplicateActiveLoan(PreconditionFailed):
    pass


class RenewalLimitReached(PreconditionFailed):
    pass


class LoanNotActive(PreconditionFailed):
    pass


class LoanPastDue(LoanNotActive):
    """Raised when a loan past its due date is renewed; it has to be returned."""


class FineNotPayable(PreconditionFailed):
    pass


class StockAdjustmentRejected(PreconditionFailed):
    pass


class QuotaAdjustmentRejected(PreconditionFailed):
    pass


class RecordInUse(PreconditionFailed):
    """Raised when a book or student cannot be retired while loans are open."""


class ConsistencyViolation(CirculationError):
    """Raised when stored counters disagree with loan state."""


class InventoryOverflow(ConsistencyViolation):
    pass


class ConcurrencyConflict(CirculationError):
    """Raised when a circulation event keeps losing optimistic-lock races."""
