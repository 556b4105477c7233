"""Domain model - records, keys and the values every repository returns.

Records are plain mappings of caller-defined shape. A repository handle is
configured with a primary key field and, for composite keys, a secondary key
field; the types here carry key values between callers and adapters.

- ``KeyValue`` pairs a key tuple with the full record. The key tuple is always
  derived from the record itself, so the two never disagree.
- ``CreateRequest`` names the keys a caller supplies to ``create`` explicitly,
  instead of dispatching on argument shape.
- ``KeyRef`` addresses one record in batch operations.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bson import ObjectId

from diagram_store.domain.errors import InvalidKeyError, RepositoryError


# Immutable identity field of every stored document. Never part of an update payload.
IDENTITY_FIELD = "_id"

Record = dict[str, Any]


def new_identifier() -> str:
    """Generate a collision-resistant identifier (timestamp + random + counter)."""
    return str(ObjectId())


def record_key(record: Mapping[str, Any], key1: str, key2: str | None = None) -> tuple:
    """Build the key tuple for ``record`` from the configured key fields.

    The secondary value is included only when a secondary field is configured
    and the record carries it.
    """
    if key1 not in record:
        raise InvalidKeyError(f"Record has no value for key field {key1!r}")
    if key2 is not None and key2 in record:
        return (record[key1], record[key2])
    return (record[key1],)


@dataclass(frozen=True, slots=True)
class KeyValue:
    """A key tuple paired with the full record it addresses."""

    key: tuple
    value: Record

    @classmethod
    def from_record(cls, record: Mapping[str, Any], key1: str, key2: str | None = None) -> KeyValue:
        value = dict(record)
        return cls(key=record_key(value, key1, key2), value=value)

    def to_dict(self) -> dict[str, Any]:
        return {"key": list(self.key), "value": self.value}


@dataclass(frozen=True, slots=True)
class KeyRef:
    """Reference to one record by primary and optional secondary key."""

    primary: Any
    secondary: Any = None

    def as_tuple(self) -> tuple:
        if self.secondary is None:
            return (self.primary,)
        return (self.primary, self.secondary)


@dataclass(frozen=True, slots=True)
class CreateRequest:
    """Options for ``create``.

    Without keys the repository generates an identifier. A supplied
    ``primary_key`` (and ``secondary_key``) is embedded into the stored record
    under the configured key field(s).
    """

    value: Mapping[str, Any]
    primary_key: Any = None
    secondary_key: Any = None

    def __post_init__(self) -> None:
        if self.secondary_key is not None and self.primary_key is None:
            raise InvalidKeyError("A secondary key requires a primary key")

    @property
    def has_key(self) -> bool:
        return self.primary_key is not None


@dataclass(frozen=True, slots=True)
class UpdateItem:
    """One element of a batch update: a partial record and the keys to match."""

    partial: Mapping[str, Any]
    key1: Any = None
    key2: Any = None


@dataclass(slots=True)
class BatchItemResult:
    """Outcome of one element of a batch write, attributable by ``index``."""

    index: int
    result: KeyValue | None = None
    error: RepositoryError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None
