"""On-device persistence: the local store and the operation queue."""

from .local_store import (
    CascadeResult,
    DuplicateKeyError,
    LocalStore,
    LocalStoreError,
    RecordNotFoundError,
    StorageUnavailableError,
    UnknownIndexError,
    UnknownTableError,
    parse_iso_timestamp,
    utcnow_iso,
)
from .operation_queue import (
    ExecutorNotSetError,
    InvalidTransitionError,
    OperationConflictError,
    OperationExecutor,
    OperationNotFoundError,
    OperationQueue,
    OperationQueueError,
    OperationResult,
    RetryPolicy,
)

__all__ = [
    # Local store
    "LocalStore",
    "CascadeResult",
    "utcnow_iso",
    "parse_iso_timestamp",
    "LocalStoreError",
    "StorageUnavailableError",
    "DuplicateKeyError",
    "RecordNotFoundError",
    "UnknownTableError",
    "UnknownIndexError",
    # Operation queue
    "OperationQueue",
    "OperationExecutor",
    "OperationResult",
    "RetryPolicy",
    "OperationQueueError",
    "OperationNotFoundError",
    "OperationConflictError",
    "InvalidTransitionError",
    "ExecutorNotSetError",
]
