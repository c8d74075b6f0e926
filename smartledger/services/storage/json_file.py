"""
Local Snapshot Storage

The snapshot is saved as one JSON document in the camelCase shape
{accounts, transactions, recurringTransactions, theme}, so files written
by earlier versions load unchanged.

QUOTA HANDLING:
Receipt images are base64 data URLs and dominate the file size. When a
quota is configured and the serialized snapshot is too large, images are
stripped from the oldest transactions until it fits:
- first attempt keeps the newest (images - margin) images
- each further attempt keeps `trim_step` fewer, down to zero
- transactional fields are never dropped

Trimming only affects what is written. The caller's in-memory snapshot
keeps every image.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from smartledger.config import get_settings
from smartledger.logging_config import get_logger
from smartledger.models.ledger import (
    BackupFile,
    LedgerSnapshot,
    Theme,
    initial_accounts,
)
from smartledger.services.storage.interface import (
    QuotaExceededError,
    SnapshotStorageInterface,
    StorageError,
)


logger = get_logger(__name__)

BACKUP_VERSION = "1.0"


class InvalidBackupError(StorageError):
    """The document is not a ledger snapshot or backup."""
    pass


# =============================================================================
# SERIALIZATION
# =============================================================================

def snapshot_to_json(snapshot: LedgerSnapshot, indent: Optional[int] = None) -> str:
    return json.dumps(snapshot.to_json_dict(), ensure_ascii=False, indent=indent)


def snapshot_from_data(data: Any) -> LedgerSnapshot:
    """
    Build a snapshot from decoded JSON.

    Missing top-level keys take their defaults; a document without an
    accounts list starts from the initial accounts.

    Raises InvalidBackupError if the document does not describe a snapshot.
    """
    if not isinstance(data, dict):
        raise InvalidBackupError("Snapshot must be a JSON object")

    accounts = data.get("accounts")
    if accounts is None:
        accounts = [a.to_json_dict() for a in initial_accounts()]

    payload = {
        "accounts": accounts,
        "transactions": data.get("transactions") or [],
        "recurringTransactions": data.get("recurringTransactions") or [],
        "theme": data.get("theme") or Theme.DEFAULT.value,
    }
    try:
        return LedgerSnapshot.model_validate(payload)
    except ValidationError as e:
        raise InvalidBackupError(f"Invalid snapshot data: {e}") from e


def make_backup(snapshot: LedgerSnapshot, timestamp: Optional[datetime] = None) -> BackupFile:
    """Wrap a snapshot with the backup timestamp and format version."""
    return BackupFile(
        accounts=snapshot.accounts,
        transactions=snapshot.transactions,
        recurring_transactions=snapshot.recurring_transactions,
        theme=snapshot.theme,
        timestamp=timestamp or datetime.now(timezone.utc),
        version=BACKUP_VERSION,
    )


def backup_filename(backup: BackupFile) -> str:
    return f"smartledger_backup_{backup.timestamp.date().isoformat()}.json"


def backup_to_json(backup: BackupFile) -> str:
    return json.dumps(backup.to_json_dict(), ensure_ascii=False, indent=2)


def restore_backup(text: Union[str, bytes]) -> LedgerSnapshot:
    """
    Read a backup file (or a plain saved snapshot) back into a snapshot.

    Raises InvalidBackupError if the text is not valid JSON or lacks the
    accounts and transactions lists.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidBackupError(f"Backup is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("accounts"), list) \
            or not isinstance(data.get("transactions"), list):
        raise InvalidBackupError("Backup must contain accounts and transactions lists")

    return snapshot_from_data(data)


# =============================================================================
# RECEIPT IMAGE TRIMMING
# =============================================================================

def trim_receipt_images(snapshot: LedgerSnapshot, keep: int) -> LedgerSnapshot:
    """Strip receipt images from all but the `keep` newest transactions that have one."""
    with_images = [tx for tx in snapshot.transactions if tx.receipt_image]
    with_images.sort(key=lambda tx: tx.date, reverse=True)
    keep_ids = {tx.id for tx in with_images[:max(keep, 0)]}

    transactions = [
        tx.model_copy(update={"receipt_image": None})
        if tx.receipt_image and tx.id not in keep_ids else tx
        for tx in snapshot.transactions
    ]
    return snapshot.model_copy(update={"transactions": transactions})


def fit_to_quota(
    snapshot: LedgerSnapshot,
    quota: int,
    margin: int = 10,
    step: int = 5,
) -> tuple[str, int]:
    """
    Serialize the snapshot within `quota` bytes.

    Returns:
        (serialized JSON, number of receipt images kept). All images are
        kept when the snapshot already fits.

    Raises:
        QuotaExceededError: If it does not fit even with no images
    """
    image_count = sum(1 for tx in snapshot.transactions if tx.receipt_image)
    text = snapshot_to_json(snapshot)
    if len(text.encode("utf-8")) <= quota:
        return text, image_count

    keep = max(0, image_count - margin)
    while True:
        text = snapshot_to_json(trim_receipt_images(snapshot, keep))
        size = len(text.encode("utf-8"))
        if size <= quota:
            return text, keep
        if keep == 0:
            raise QuotaExceededError(size, quota)
        keep = max(0, keep - step)


# =============================================================================
# STORAGE IMPLEMENTATIONS
# =============================================================================

class JsonFileSnapshotStorage(SnapshotStorageInterface):
    """
    Snapshot storage in a single JSON file.

    Writes go to a temporary file first and replace the target, so an
    interrupted save never leaves a half-written snapshot.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        quota_bytes: Optional[int] = -1,
    ):
        """
        Initialize storage.

        Args:
            path: Snapshot file. Defaults to LEDGER_SNAPSHOT_PATH.
            quota_bytes: Size limit for the written file; None disables it.
                         Defaults to LEDGER_STORAGE_QUOTA_BYTES.
        """
        settings = get_settings().ledger
        self._path = Path(path) if path is not None else settings.snapshot_file
        self._quota = settings.storage_quota_bytes if quota_bytes == -1 else quota_bytes
        self._margin = settings.receipt_images_margin
        self._step = settings.receipt_images_trim_step

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> Optional[LedgerSnapshot]:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read snapshot {self._path}: {e}") from e
        return snapshot_from_data(data)

    async def save(self, snapshot: LedgerSnapshot) -> bool:
        if self._quota is None:
            text = snapshot_to_json(snapshot)
        else:
            text, kept = fit_to_quota(snapshot, self._quota, self._margin, self._step)
            total = sum(1 for tx in snapshot.transactions if tx.receipt_image)
            if kept < total:
                logger.warning(
                    "receipt_images_trimmed",
                    kept=kept,
                    removed=total - kept,
                    quota=self._quota,
                )

        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write snapshot {self._path}: {e}") from e
        return True

    async def clear(self) -> bool:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to remove snapshot {self._path}: {e}") from e
        return True


class InMemorySnapshotStorage(SnapshotStorageInterface):
    """
    Snapshot storage held in memory, for tests and throwaway sessions.

    Stores the serialized form so load() returns an independent copy, the
    same as reading a file back.
    """

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None, quota_bytes: Optional[int] = None):
        self._quota = quota_bytes
        self._data: Optional[str] = snapshot_to_json(snapshot) if snapshot is not None else None
        self.save_count = 0

    async def load(self) -> Optional[LedgerSnapshot]:
        if self._data is None:
            return None
        return snapshot_from_data(json.loads(self._data))

    async def save(self, snapshot: LedgerSnapshot) -> bool:
        if self._quota is None:
            self._data = snapshot_to_json(snapshot)
        else:
            self._data, _ = fit_to_quota(snapshot, self._quota)
        self.save_count += 1
        return True

    async def clear(self) -> bool:
        had_data = self._data is not None
        self._data = None
        return had_data
