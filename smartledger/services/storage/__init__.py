"""
Storage Services Package

Provides abstract interfaces and concrete implementations for persisting
the ledger: a local JSON snapshot as the primary store and a Google
Sheets mirror of the transaction log.
"""

from smartledger.services.storage.interface import (
    ConnectionError,
    NotFoundError,
    QuotaExceededError,
    SnapshotStorageInterface,
    SpreadsheetSyncInterface,
    StorageError,
)
from smartledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerSync,
)
from smartledger.services.storage.json_file import (
    InMemorySnapshotStorage,
    InvalidBackupError,
    JsonFileSnapshotStorage,
    backup_filename,
    backup_to_json,
    fit_to_quota,
    make_backup,
    restore_backup,
    snapshot_from_data,
    snapshot_to_json,
    trim_receipt_images,
)

__all__ = [
    # Interfaces
    "SnapshotStorageInterface",
    "SpreadsheetSyncInterface",
    # Exceptions
    "ConnectionError",
    "InvalidBackupError",
    "NotFoundError",
    "QuotaExceededError",
    "StorageError",
    # Google Sheets sync
    "GoogleSheetsClient",
    "GoogleSheetsLedgerSync",
    # Snapshot storage
    "InMemorySnapshotStorage",
    "JsonFileSnapshotStorage",
    "backup_filename",
    "backup_to_json",
    "fit_to_quota",
    "make_backup",
    "restore_backup",
    "snapshot_from_data",
    "snapshot_to_json",
    "trim_receipt_images",
]
