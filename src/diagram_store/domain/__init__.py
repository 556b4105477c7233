"""Domain layer - records, keys, errors and canvas components.

No dependency on a storage engine beyond the identifier type. Repositories
(adapters layer) accept and return these types.
"""

from diagram_store.domain.errors import (
    ConfigurationError,
    InvalidKeyError,
    OperationCancelledError,
    OperationNotSupportedError,
    OperationTimeoutError,
    RecordNotFoundError,
    RepositoryError,
    StoreConnectionError,
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
    record_key,
)


__all__ = [
    "IDENTITY_FIELD",
    "BatchItemResult",
    "ConfigurationError",
    "CreateRequest",
    "InvalidKeyError",
    "KeyRef",
    "KeyValue",
    "OperationCancelledError",
    "OperationNotSupportedError",
    "OperationTimeoutError",
    "Record",
    "RecordNotFoundError",
    "RepositoryError",
    "StoreConnectionError",
    "UpdateItem",
    "WriteFailedError",
    "new_identifier",
    "record_key",
]
