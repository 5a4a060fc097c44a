"""Error taxonomy shared by the ledger services and the storage adapter."""


class LedgerError(Exception):
    """Base class for ledger failures."""


class ValidationError(LedgerError, ValueError):
    """Raised when an income source or ledger entry is malformed."""


class NotFoundError(LedgerError, LookupError):
    """Raised when a record does not exist for the current user."""


class DuplicateEntry(LedgerError):
    """Raised when an insert would violate the one-posting-per-day index."""


class RepositoryError(LedgerError):
    """Raised when storage is unreachable, times out or rejects a statement."""


class ArithmeticInvariantViolation(LedgerError):
    """Raised when ledger sums contradict each other. Never recoverable."""
