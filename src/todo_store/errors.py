"""
Error taxonomy for the todo store.

Validation and programming errors are raised eagerly to the caller.
Store-access failures are reduced to negative results by TaskStore and
never reach the presentation layer as exceptions.
"""

from typing import Optional


class TaskStoreError(Exception):
    """Base class for all todo store errors."""


class ValidationError(TaskStoreError, ValueError):
    """Input rejected before any store access (blank title, missing id, None task)."""


class StoreUnavailable(TaskStoreError):
    """The backing database file cannot be opened, created or configured."""


class TransactionError(TaskStoreError):
    """Misuse of the transaction API."""


class TransactionAlreadyOpen(TransactionError):
    """begin_transaction() called while a transaction is already open."""


class TransactionNotOpen(TransactionError):
    """commit() or rollback() called without an open transaction."""


class DecodeError(TaskStoreError, ValueError):
    """A stored row does not match the expected encoding."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column
