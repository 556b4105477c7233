"""Adapters layer - Repository implementations.

Following Cosmic Python Chapter 2: Repository Pattern
Callers create, read, update and delete records through the contract and
never build store filters or documents themselves.
"""

from .mongo_repository import MongoRepository
from .repository import (
    AbstractRepository,
    FakeRepository,
    build_key_filter,
    prepare_record,
    resolve_update,
)


__all__ = [
    "AbstractRepository",
    "FakeRepository",
    "MongoRepository",
    "build_key_filter",
    "prepare_record",
    "resolve_update",
]
