"""Storage-agnostic repository contract and an in-memory implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Mapping, Sequence
import copy
import logging
from typing import Any

from diagram_store.domain.errors import (
    InvalidKeyError,
    OperationCancelledError,
    OperationNotSupportedError,
    RecordNotFoundError,
    WriteFailedError,
)
from diagram_store.domain.model import (
    IDENTITY_FIELD,
    BatchItemResult,
    CreateRequest,
    KeyRef,
    KeyValue,
    Record,
    UpdateItem,
    new_identifier,
)


logger = logging.getLogger(__name__)


def build_key_filter(key1_field: str, key2_field: str | None, key1: Any, key2: Any = None) -> dict[str, Any]:
    """Equality filter on the primary key, ANDed with the secondary key when both are present."""
    query: dict[str, Any] = {key1_field: key1}
    if key2_field is not None and key2 is not None:
        query[key2_field] = key2
    return query


def _embed_key(record: Record, field_name: str, value: Any) -> None:
    if field_name in record and record[field_name] != value:
        raise InvalidKeyError(
            f"Key {value!r} conflicts with {field_name}={record[field_name]!r} already in the record"
        )
    record[field_name] = value


def prepare_record(request: CreateRequest, key1_field: str, key2_field: str | None) -> Record:
    """Build the document to insert for ``request``.

    Supplied keys are embedded under the configured key fields. Every record
    gets an identity value; one the caller already set is kept.
    """
    record = dict(request.value)
    if request.has_key:
        _embed_key(record, key1_field, request.primary_key)
        if request.secondary_key is not None:
            if key2_field is None:
                raise InvalidKeyError("Repository has no secondary key field configured")
            _embed_key(record, key2_field, request.secondary_key)

    record.setdefault(IDENTITY_FIELD, new_identifier())

    if key1_field not in record:
        raise InvalidKeyError(f"Record has no value for key field {key1_field!r}")
    return record


def resolve_update(
    partial: Mapping[str, Any],
    key1_field: str,
    key2_field: str | None,
    key1: Any = None,
    key2: Any = None,
) -> tuple[dict[str, Any], Record]:
    """Return ``(filter, payload)`` for an update.

    The identity field never reaches the payload. Without ``key1`` the
    identity value carried by ``partial`` addresses the record; with neither,
    the update is refused before any I/O.
    """
    payload = {name: value for name, value in partial.items() if name != IDENTITY_FIELD}

    if key1 is not None:
        return build_key_filter(key1_field, key2_field, key1, key2), payload

    if key2 is not None:
        raise InvalidKeyError("A secondary key requires a primary key")

    identity = partial.get(IDENTITY_FIELD)
    if identity is None:
        raise InvalidKeyError(f"update needs key1 or a {IDENTITY_FIELD!r} value in the partial record")
    return {IDENTITY_FIELD: identity}, payload


class AbstractRepository(ABC):
    """Key/value repository over records of arbitrary shape.

    A handle is bound to a primary key field and an optional secondary key
    field for its whole lifetime. Batch writes are optional: the defaults
    raise ``OperationNotSupportedError``.

    Every operation takes an optional ``timeout`` (seconds) and ``cancel``
    event; setting the event abandons the call with ``OperationCancelledError``.
    """

    def __init__(self, key1: str, key2: str | None = None) -> None:
        if not key1:
            raise ValueError("key1 must name a field")
        self._key1 = key1
        self._key2 = key2

    @property
    def key1(self) -> str:
        return self._key1

    @property
    def key2(self) -> str | None:
        return self._key2

    @abstractmethod
    async def create(
        self,
        request: CreateRequest,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue:
        """Insert a record.

        Returns:
            KeyValue wrapping the inserted record

        Raises:
            InvalidKeyError: keys conflict with the record or cannot be stored
            WriteFailedError: the store rejected the insert (e.g. duplicate key)
        """
        raise NotImplementedError

    @abstractmethod
    async def read(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue | None:
        """Read one record. Returns None when nothing matches."""
        raise NotImplementedError

    @abstractmethod
    async def update(
        self,
        partial: Mapping[str, Any],
        key1: Any = None,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue:
        """Merge ``partial`` into the matching record and return the result.

        Raises:
            InvalidKeyError: no usable key was supplied
            RecordNotFoundError: nothing matched and the repository does not upsert
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        """Delete at most one record.

        Returns:
            True if a record was deleted, False if none matched
        """
        raise NotImplementedError

    @abstractmethod
    async def many_read(
        self,
        keys: Sequence[KeyRef] | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[KeyValue]:
        """Read every record, or the union of records matching ``keys``."""
        raise NotImplementedError

    async def many_create(self, requests: Sequence[CreateRequest], **options: Any) -> list[BatchItemResult]:
        raise OperationNotSupportedError("many_create", type(self).__name__)

    async def many_update(self, items: Sequence[UpdateItem], **options: Any) -> list[BatchItemResult]:
        raise OperationNotSupportedError("many_update", type(self).__name__)

    async def many_delete(self, keys: Sequence[KeyRef], **options: Any) -> list[bool]:
        raise OperationNotSupportedError("many_delete", type(self).__name__)

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
        raise NotImplementedError

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _matches(record: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    return all(name in record and record[name] == value for name, value in query.items())


def _check_cancel(operation: str, cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{operation} cancelled before it started")


class FakeRepository(AbstractRepository):
    """In-memory repository for testing.

    Mirrors the document adapter's key and update semantics. Batch writes
    are left to the contract defaults. Calls complete immediately, so
    ``timeout`` is ignored and ``cancel`` only matters when already set.
    """

    def __init__(self, key1: str = IDENTITY_FIELD, key2: str | None = None, *, upsert: bool = False):
        super().__init__(key1, key2)
        self.upsert = upsert
        self._records: list[Record] = []
        self.closed = False

    def _find(self, query: Mapping[str, Any]) -> Record | None:
        return next((record for record in self._records if _matches(record, query)), None)

    def _wrap(self, record: Record) -> KeyValue:
        return KeyValue.from_record(copy.deepcopy(record), self.key1, self.key2)

    async def create(
        self,
        request: CreateRequest,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue:
        record = prepare_record(request, self.key1, self.key2)
        _check_cancel("create", cancel)
        if self._find({IDENTITY_FIELD: record[IDENTITY_FIELD]}) is not None:
            raise WriteFailedError(f"Duplicate {IDENTITY_FIELD} {record[IDENTITY_FIELD]!r}", duplicate_key=True)
        self._records.append(copy.deepcopy(record))
        return self._wrap(record)

    async def read(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue | None:
        _check_cancel("read", cancel)
        record = self._find(build_key_filter(self.key1, self.key2, key1, key2))
        return self._wrap(record) if record is not None else None

    async def update(
        self,
        partial: Mapping[str, Any],
        key1: Any = None,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue:
        query, payload = resolve_update(partial, self.key1, self.key2, key1, key2)
        _check_cancel("update", cancel)
        record = self._find(query)
        if record is None:
            if not (self.upsert and payload):
                raise RecordNotFoundError(tuple(query.values()))
            record = {**query, **copy.deepcopy(payload)}
            record.setdefault(IDENTITY_FIELD, new_identifier())
            self._records.append(record)
        else:
            record.update(copy.deepcopy(payload))
        return self._wrap(record)

    async def delete(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        _check_cancel("delete", cancel)
        record = self._find(build_key_filter(self.key1, self.key2, key1, key2))
        if record is None:
            return False
        self._records.remove(record)
        return True

    async def many_read(
        self,
        keys: Sequence[KeyRef] | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[KeyValue]:
        _check_cancel("many_read", cancel)
        if not keys:
            return [self._wrap(record) for record in self._records]
        queries = [build_key_filter(self.key1, self.key2, ref.primary, ref.secondary) for ref in keys]
        return [
            self._wrap(record)
            for record in self._records
            if any(_matches(record, query) for query in queries)
        ]

    async def close(self) -> None:
        self.closed = True

    def clear(self) -> None:
        """Clear all records (for testing)."""
        self._records.clear()
