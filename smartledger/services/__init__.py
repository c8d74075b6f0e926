"""Services package."""

from smartledger.services.storage import (
    ConnectionError,
    InMemorySnapshotStorage,
    InvalidBackupError,
    JsonFileSnapshotStorage,
    NotFoundError,
    QuotaExceededError,
    SnapshotStorageInterface,
    SpreadsheetSyncInterface,
    StorageError,
)

__all__ = [
    "ConnectionError",
    "InMemorySnapshotStorage",
    "InvalidBackupError",
    "JsonFileSnapshotStorage",
    "NotFoundError",
    "QuotaExceededError",
    "SnapshotStorageInterface",
    "SpreadsheetSyncInterface",
    "StorageError",
]
