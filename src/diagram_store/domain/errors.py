"""Error taxonomy surfaced by repositories.

Adapters translate driver-native errors into these classes and propagate
them. A ``read`` that matches nothing is not an error: it returns ``None``.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base error for repository operations."""


class ConfigurationError(RepositoryError):
    """Raised at construction when required connection settings are missing.

    Not retryable: the process should refuse to start.
    """


class StoreConnectionError(RepositoryError):
    """Raised when the store could not be reached or could not serve a request.

    Retryable at the caller's discretion; adapters do not retry on their own.
    """


class OperationTimeoutError(StoreConnectionError):
    """Raised when a per-call timeout expires before the store answered."""


class WriteFailedError(RepositoryError):
    """Raised when the store rejects an insert or update."""

    def __init__(self, message: str, *, duplicate_key: bool = False) -> None:
        super().__init__(message)
        self.duplicate_key = duplicate_key


class RecordNotFoundError(RepositoryError):
    """Raised by ``update`` when no record matched and no upsert happened."""

    def __init__(self, key: tuple) -> None:
        super().__init__(f"No record matches key {key!r}")
        self.key = key


class InvalidKeyError(RepositoryError, ValueError):
    """Raised before any I/O when key arguments cannot address a record."""


class OperationNotSupportedError(RepositoryError, NotImplementedError):
    """Raised by repositories that do not implement an operation."""

    def __init__(self, operation: str, repository: str) -> None:
        super().__init__(f"{repository} does not support {operation}")
        self.operation = operation


class OperationCancelledError(StoreConnectionError):
    """Raised when the caller's cancel signal fired before the store answered."""
