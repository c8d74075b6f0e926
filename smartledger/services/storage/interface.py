"""
Abstract Storage Interfaces

DESIGN DECISION: The ledger core never touches storage. It hands a
LedgerSnapshot to whatever implements SnapshotStorageInterface and gets
one back on load. This allows us to:
1. Keep a local JSON file as the primary store
2. Use in-memory storage for testing
3. Mirror the transaction log to a spreadsheet without the core knowing

Two interfaces, because the two backends hold different things:
- SnapshotStorageInterface persists the whole state as one object.
- SpreadsheetSyncInterface holds only transactions, as plain rows grouped
  into pages keyed by month. Rows go through the CSV codec and the import
  reconciler on the way back in.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from smartledger.models.ledger import LedgerSnapshot


Row = Sequence[Union[str, int]]


class SnapshotStorageInterface(ABC):
    """
    Load and save the complete ledger state.

    Implementations must round-trip a snapshot exactly: what save()
    accepted, load() returns.
    """

    @abstractmethod
    async def load(self) -> Optional[LedgerSnapshot]:
        """
        Load the saved snapshot.

        Returns:
            The snapshot, or None if nothing has been saved yet

        Raises:
            StorageError: If saved data exists but cannot be read
        """
        pass

    @abstractmethod
    async def save(self, snapshot: LedgerSnapshot) -> bool:
        """
        Save the snapshot, replacing whatever was saved before.

        Args:
            snapshot: The complete ledger state

        Returns:
            True if saved successfully

        Raises:
            QuotaExceededError: If the snapshot cannot be made to fit
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """
        Remove the saved snapshot, if any.

        Returns:
            True if something was removed
        """
        pass


class SpreadsheetSyncInterface(ABC):
    """
    Page-oriented access to a backup spreadsheet.

    Each page is keyed by month (YYYY-MM) and holds a header row followed
    by one row per transaction.
    """

    @abstractmethod
    async def read_all_rows(self) -> dict[str, list[list[str]]]:
        """
        Read every month page.

        Returns:
            {page key: rows including the header row}

        Raises:
            NotFoundError: If there is no backup spreadsheet yet
            ConnectionError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def write_rows(self, sheet_key: str, rows: list[Row]) -> bool:
        """
        Replace the contents of one page, creating it if needed.

        Args:
            sheet_key: Page key, YYYY-MM
            rows: Header row followed by data rows

        Returns:
            True if written successfully

        Raises:
            StorageError: If the write fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class QuotaExceededError(StorageError):
    """The snapshot does not fit the storage quota even without receipt images."""

    def __init__(self, size: int, quota: int):
        self.size = size
        self.quota = quota
        super().__init__(
            f"Snapshot needs {size} bytes without receipt images; quota is {quota}"
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
