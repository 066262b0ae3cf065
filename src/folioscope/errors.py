"""Exception hierarchy for portfolio bookkeeping.

External data problems (quote or exchange rate lookups) are not
part of this hierarchy: they degrade to error-marked quotes and fallback rates
instead of being raised to callers.
"""


class FolioscopeError(Exception):
    """Base class for all folioscope errors."""


class ValidationError(FolioscopeError, ValueError):
    """A transaction is malformed (missing field, non-positive quantity or price)."""


class ConsistencyError(ValidationError):
    """A change would leave a ticker's history inconsistent.

    Raised for a SELL larger than the position held at that point in time, a
    delete that would make a later SELL exceed the position, or transactions
    for one ticker recorded in more than one currency.
    """


class StorageError(FolioscopeError):
    """The persistence layer is unavailable or returned unreadable data."""


class TransactionNotFoundError(FolioscopeError, KeyError):
    """No transaction exists with the requested id."""

    def __init__(self, transaction_id: int):
        super().__init__(transaction_id)
        self.transaction_id = transaction_id

    def __str__(self) -> str:
        return f"Transaction {self.transaction_id} not found"
