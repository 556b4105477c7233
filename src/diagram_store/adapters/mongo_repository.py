"""MongoDB repository implementation on pymongo's asyncio client.

Each logical key maps to an equality filter and each record to one document.
Retries: none in this adapter. The driver's ``retryReads``/``retryWrites``
(``DB_RETRY_READS``/``DB_RETRY_WRITES``, on by default) retry a retryable
operation once after a transient network error; anything that still fails
surfaces as ``StoreConnectionError``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
import contextlib
import logging
from typing import Any, TypeVar

from opentelemetry.trace import SpanKind
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    InvalidOperation,
    OperationFailure,
)

from diagram_store.adapters.repository import (
    AbstractRepository,
    build_key_filter,
    prepare_record,
    resolve_update,
)
from diagram_store.config import MongoSettings, load_mongo_settings
from diagram_store.domain.errors import (
    InvalidKeyError,
    OperationCancelledError,
    OperationTimeoutError,
    RecordNotFoundError,
    StoreConnectionError,
    WriteFailedError,
)
from diagram_store.domain.model import (
    IDENTITY_FIELD,
    BatchItemResult,
    CreateRequest,
    KeyRef,
    KeyValue,
    UpdateItem,
    new_identifier,
)
from diagram_store.observability.context import bound_context
from diagram_store.observability.metrics import REPOSITORY_LATENCY, REPOSITORY_OPERATIONS, track_latency
from diagram_store.observability.tracing import create_span


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Operations whose OperationFailure means the store refused the data
WRITE_OPERATIONS = frozenset({"create", "update"})


class MongoRepository(AbstractRepository):
    """Repository bound to one MongoDB collection.

    The client is created without blocking; the driver queues operations
    issued before the first handshake until a server is selected. The handle
    owns the client: call ``close()`` once when done, or use ``async with``.
    """

    def __init__(
        self,
        db_name: str,
        collection_name: str,
        key1: str,
        key2: str | None = None,
        *,
        upsert: bool = False,
        settings: MongoSettings | None = None,
        client: AsyncMongoClient | None = None,
    ):
        """Bind a collection and its key fields.

        Args:
            db_name: Database name
            collection_name: Collection name
            key1: Primary key field
            key2: Optional secondary key field for composite keys
            upsert: Insert on update when no document matches
            settings: Connection settings (loaded from ``DB_*`` env vars when omitted)
            client: Pre-built client; the repository takes ownership of it

        Raises:
            ConfigurationError: required connection settings are missing
        """
        super().__init__(key1, key2)
        self._settings = settings or load_mongo_settings()
        self._db_name = db_name
        self._collection_name = collection_name
        self._upsert = upsert
        self._client = client or AsyncMongoClient(
            self._settings.connection_uri(),
            **self._settings.client_options(),
        )
        self._collection = self._client.get_database(db_name).get_collection(collection_name)
        self._closed = False
        self._handshake: asyncio.Task | None = None

        if self._settings.connect_on_init:
            self._start_handshake()

    @property
    def db_name(self) -> str:
        return self._db_name

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def upsert(self) -> bool:
        return self._upsert

    @property
    def closed(self) -> bool:
        return self._closed

    def _start_handshake(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the driver connects on the first operation
            return
        self._handshake = loop.create_task(self._announce_connection())

    async def _announce_connection(self) -> None:
        try:
            await self.ping()
        except StoreConnectionError:
            # Already logged by _execute; the next operation surfaces the error
            return
        logger.info("MongoDB connected for %s.%s", self._db_name, self._collection_name)

    async def wait_connected(self) -> None:
        """Wait for the background handshake, if one was started."""
        if self._handshake is not None:
            await asyncio.shield(self._handshake)

    async def ping(self, *, timeout: float | None = None, cancel: asyncio.Event | None = None) -> None:
        """Round-trip to the server; raises StoreConnectionError when unreachable."""
        await self._execute("ping", lambda: self._client.admin.command("ping"), timeout=timeout, cancel=cancel)

    async def _await_call(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: float | None,
        cancel: asyncio.Event | None,
    ) -> T:
        if cancel is None:
            if timeout is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=timeout)

        if cancel.is_set():
            raise OperationCancelledError(f"{operation} on {self._collection_name} cancelled before it started")

        pending = asyncio.ensure_future(call())
        signal = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({pending, signal}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            signal.cancel()
            if not pending.done():
                pending.cancel()

        if pending in done:
            return pending.result()
        if signal in done:
            raise OperationCancelledError(f"{operation} on {self._collection_name} cancelled by caller")
        raise asyncio.TimeoutError

    async def _execute(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> T:
        """Run one driver call with tracing, metrics, a timeout and error translation.

        Setting ``cancel`` abandons the call with ``OperationCancelledError``.
        Cancelling the calling task raises ``asyncio.CancelledError`` as usual.
        """
        effective_timeout = timeout if timeout is not None else self._settings.operation_timeout_seconds
        attributes = {
            "db.system": "mongodb",
            "db.name": self._db_name,
            "db.collection": self._collection_name,
            "db.operation": operation,
        }
        status = "error"
        with bound_context(collection=self._collection_name):
            try:
                return_value = await self._traced_call(operation, call, effective_timeout, cancel, attributes)
                status = "ok"
                return return_value
            except (StoreConnectionError, WriteFailedError) as exc:
                logger.warning(
                    "Repository %s failed",
                    operation,
                    extra={"error_type": type(exc).__name__, "error": str(exc)},
                )
                raise
            finally:
                REPOSITORY_OPERATIONS.labels(
                    collection=self._collection_name, operation=operation, status=status
                ).inc()

    async def _traced_call(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        effective_timeout: float | None,
        cancel: asyncio.Event | None,
        attributes: dict[str, Any],
    ) -> T:
        with (
            create_span(f"repository.{operation}", kind=SpanKind.CLIENT, attributes=attributes),
            track_latency(REPOSITORY_LATENCY, collection=self._collection_name, operation=operation),
        ):
            try:
                return await self._await_call(operation, call, effective_timeout, cancel)
            except (asyncio.TimeoutError, ExecutionTimeout) as exc:
                raise OperationTimeoutError(
                    f"{operation} on {self._collection_name} timed out after {effective_timeout}s"
                ) from exc
            except DuplicateKeyError as exc:
                raise WriteFailedError(
                    f"{operation} on {self._collection_name} rejected: duplicate key", duplicate_key=True
                ) from exc
            except OperationFailure as exc:
                if operation in WRITE_OPERATIONS:
                    raise WriteFailedError(f"{operation} on {self._collection_name} rejected: {exc}") from exc
                raise StoreConnectionError(f"{operation} on {self._collection_name} failed: {exc}") from exc
            except (ConnectionFailure, InvalidOperation) as exc:
                raise StoreConnectionError(
                    f"{operation} on {self._collection_name} could not reach the store: {exc}"
                ) from exc

    def _wrap(self, document: Mapping[str, Any]) -> KeyValue:
        return KeyValue.from_record(document, self.key1, self.key2)

    async def create(
        self,
        request: CreateRequest,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue:
        document = prepare_record(request, self.key1, self.key2)
        # insert_one mutates its argument; keep the returned record independent
        await self._execute(
            "create", lambda: self._collection.insert_one(dict(document)), timeout=timeout, cancel=cancel
        )
        return self._wrap(document)

    async def read(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> KeyValue | None:
        query = build_key_filter(self.key1, self.key2, key1, key2)
        document = await self._execute(
            "read", lambda: self._collection.find_one(query), timeout=timeout, cancel=cancel
        )
        if document is None:
            return None
        return self._wrap(document)

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

        if not payload:
            # Nothing to merge: report the current state
            document = await self._execute(
                "read", lambda: self._collection.find_one(query), timeout=timeout, cancel=cancel
            )
        else:
            changes: dict[str, Any] = {"$set": payload}
            if self._upsert and IDENTITY_FIELD not in query:
                changes["$setOnInsert"] = {IDENTITY_FIELD: new_identifier()}
            document = await self._execute(
                "update",
                lambda: self._collection.find_one_and_update(
                    query,
                    changes,
                    upsert=self._upsert,
                    return_document=ReturnDocument.AFTER,
                ),
                timeout=timeout,
                cancel=cancel,
            )

        if document is None:
            raise RecordNotFoundError(tuple(query.values()))
        return self._wrap(document)

    async def delete(
        self,
        key1: Any,
        key2: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        query = build_key_filter(self.key1, self.key2, key1, key2)
        result = await self._execute(
            "delete", lambda: self._collection.delete_one(query), timeout=timeout, cancel=cancel
        )
        return result.deleted_count > 0

    async def many_read(
        self,
        keys: Sequence[KeyRef] | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[KeyValue]:
        """Read every document, or the union of documents matching ``keys``.

        Documents without the primary key field cannot be addressed; they are
        logged and left out of the result.
        """
        query: dict[str, Any] = {}
        if keys:
            query = {
                "$or": [build_key_filter(self.key1, self.key2, ref.primary, ref.secondary) for ref in keys],
            }
        documents = await self._execute(
            "many_read",
            lambda: self._collection.find(query).to_list(None),
            timeout=timeout,
            cancel=cancel,
        )

        results: list[KeyValue] = []
        for document in documents:
            if self.key1 not in document:
                logger.warning(
                    "Skipping document %s in %s: no %r field",
                    document.get(IDENTITY_FIELD),
                    self._collection_name,
                    self.key1,
                )
                continue
            results.append(self._wrap(document))
        return results

    async def many_create(
        self,
        requests: Sequence[CreateRequest],
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[BatchItemResult]:
        """Create each record independently, in order.

        Rejected records are reported in their result; a connection failure
        (or ``cancel`` firing) aborts the batch, leaving earlier records in place.
        """
        results: list[BatchItemResult] = []
        for index, request in enumerate(requests):
            try:
                created = await self.create(request, timeout=timeout, cancel=cancel)
            except (InvalidKeyError, WriteFailedError) as exc:
                results.append(BatchItemResult(index, error=exc))
            else:
                results.append(BatchItemResult(index, result=created))
        return results

    async def many_update(
        self,
        items: Sequence[UpdateItem],
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[BatchItemResult]:
        """Apply each partial update independently, in order."""
        results: list[BatchItemResult] = []
        for index, item in enumerate(items):
            try:
                updated = await self.update(item.partial, item.key1, item.key2, timeout=timeout, cancel=cancel)
            except (InvalidKeyError, RecordNotFoundError, WriteFailedError) as exc:
                results.append(BatchItemResult(index, error=exc))
            else:
                results.append(BatchItemResult(index, result=updated))
        return results

    async def many_delete(
        self,
        keys: Sequence[KeyRef],
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[bool]:
        """Delete one record per key, in order; False where nothing matched."""
        return [await self.delete(ref.primary, ref.secondary, timeout=timeout, cancel=cancel) for ref in keys]

    async def close(self) -> None:
        """Close the client. Only the first call has an effect."""
        if self._closed:
            logger.debug("Repository for %s already closed", self._collection_name)
            return
        self._closed = True

        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._handshake

        await self._client.close()
        logger.info("MongoDB connection for %s.%s closed", self._db_name, self._collection_name)
