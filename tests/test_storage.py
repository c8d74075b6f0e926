"""Tests for snapshot storage and backups."""

import asyncio
import json
from datetime import date, datetime, timedelta

import pytest

from smartledger.models import (
    Frequency,
    LedgerSnapshot,
    RecurringTransaction,
    Theme,
    Transaction,
    TransactionType,
    initial_accounts,
)
from smartledger.services.storage import (
    InMemorySnapshotStorage,
    InvalidBackupError,
    JsonFileSnapshotStorage,
    QuotaExceededError,
    StorageError,
    backup_filename,
    backup_to_json,
    fit_to_quota,
    make_backup,
    restore_backup,
    snapshot_from_data,
    snapshot_to_json,
    trim_receipt_images,
)


IMAGE = "data:image/jpeg;base64," + "A" * 2000


def sample_snapshot(images=0, plain=3):
    transactions = []
    for day in range(1, images + 1):
        transactions.append(Transaction(
            id=f"img_{day}", date=f"2024-05-{day:02d}", amount=day, type=TransactionType.EXPENSE,
            category="cat_food", account_id="acc_1", receipt_image=IMAGE,
        ))
    for n in range(plain):
        transactions.append(Transaction(
            id=f"tx_{n}", date="2024-04-01", amount=10 + n, type=TransactionType.INCOME,
            category="cat_salary", account_id="acc_2", location="台北",
        ))
    template = RecurringTransaction(
        id="r1", frequency=Frequency.MONTHLY, start_date=date(2024, 1, 31),
        next_due_date=date(2024, 6, 30), amount=800, type=TransactionType.EXPENSE,
        category="cat_bills", account_id="acc_1",
    )
    return LedgerSnapshot(
        accounts=initial_accounts(),
        transactions=transactions,
        recurring_transactions=[template],
        theme=Theme.PURPLE,
    )


def size_of(snapshot):
    return len(snapshot_to_json(snapshot).encode("utf-8"))


class TestSnapshotSerialization:
    """Tests for the persisted JSON shape."""

    def test_camel_case_keys(self):
        """Test the top-level and nested key names."""
        data = json.loads(snapshot_to_json(sample_snapshot(images=1)))
        assert set(data) == {"accounts", "transactions", "recurringTransactions", "theme"}
        assert data["theme"] == "purple"
        assert data["recurringTransactions"][0]["nextDueDate"] == "2024-06-30"
        assert data["transactions"][0]["receiptImage"] == IMAGE

    def test_missing_keys_take_defaults(self):
        """Test loading older or partial data."""
        snapshot = snapshot_from_data({"transactions": []})
        assert [a.id for a in snapshot.accounts] == ["acc_1", "acc_2", "acc_3"]
        assert snapshot.theme == Theme.DEFAULT
        assert snapshot_from_data({"accounts": []}).accounts == []

    def test_invalid_data(self):
        """Test that non-snapshot documents are rejected."""
        with pytest.raises(InvalidBackupError):
            snapshot_from_data([])
        with pytest.raises(InvalidBackupError):
            snapshot_from_data({"accounts": [{"name": "no id"}]})


class TestReceiptImageTrimming:
    """Tests for quota-driven image trimming."""

    def test_trim_keeps_newest(self):
        """Test that the newest images are the ones kept."""
        trimmed = trim_receipt_images(sample_snapshot(images=4), keep=2)
        kept = [t.id for t in trimmed.transactions if t.receipt_image]
        assert kept == ["img_3", "img_4"]
        assert len(trimmed.transactions) == 7

    def test_fits_without_trimming(self):
        """Test that a small snapshot is written whole."""
        snapshot = sample_snapshot(images=3)
        text, kept = fit_to_quota(snapshot, size_of(snapshot))
        assert kept == 3
        assert text == snapshot_to_json(snapshot)

    def test_trim_schedule(self):
        """Test the margin-then-step schedule: 20 images -> 10 -> 5."""
        snapshot = sample_snapshot(images=20)
        quota = size_of(trim_receipt_images(snapshot, 5))
        text, kept = fit_to_quota(snapshot, quota, margin=10, step=5)
        assert kept == 5
        data = json.loads(text)
        with_images = [t["id"] for t in data["transactions"] if "receiptImage" in t]
        assert with_images == [f"img_{day}" for day in range(16, 21)]
        assert len(data["transactions"]) == 23

    def test_margin_larger_than_image_count(self):
        """Test that the first attempt never goes below zero images."""
        snapshot = sample_snapshot(images=3)
        quota = size_of(trim_receipt_images(snapshot, 0))
        assert fit_to_quota(snapshot, quota)[1] == 0

    def test_quota_exceeded(self):
        """Test the error when even the bare snapshot is too large."""
        with pytest.raises(QuotaExceededError) as exc_info:
            fit_to_quota(sample_snapshot(images=2), 100)
        assert exc_info.value.quota == 100


class TestJsonFileSnapshotStorage:
    """Tests for the file-backed store."""

    def test_round_trip(self, tmp_path):
        """Test that what is saved loads back equal."""
        storage = JsonFileSnapshotStorage(tmp_path / "ledger" / "snapshot.json", quota_bytes=None)
        snapshot = sample_snapshot(images=2)

        assert asyncio.run(storage.load()) is None
        assert asyncio.run(storage.save(snapshot)) is True
        assert asyncio.run(storage.load()) == snapshot

    def test_quota_trims_only_the_file(self, tmp_path):
        """Test that trimming affects the written file, not the caller's snapshot."""
        snapshot = sample_snapshot(images=12)
        quota = size_of(trim_receipt_images(snapshot, 2))
        storage = JsonFileSnapshotStorage(tmp_path / "s.json", quota_bytes=quota)

        asyncio.run(storage.save(snapshot))
        loaded = asyncio.run(storage.load())
        assert sum(1 for t in loaded.transactions if t.receipt_image) == 2
        assert sum(1 for t in snapshot.transactions if t.receipt_image) == 12

    def test_quota_exceeded_leaves_file(self, tmp_path):
        """Test that a failed save keeps the previous file."""
        path = tmp_path / "s.json"
        asyncio.run(JsonFileSnapshotStorage(path, quota_bytes=None).save(LedgerSnapshot()))
        storage = JsonFileSnapshotStorage(path, quota_bytes=100)
        with pytest.raises(QuotaExceededError):
            asyncio.run(storage.save(sample_snapshot()))
        assert asyncio.run(storage.load()) == LedgerSnapshot()

    def test_corrupt_file(self, tmp_path):
        """Test that unreadable data raises instead of loading empty."""
        path = tmp_path / "s.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            asyncio.run(JsonFileSnapshotStorage(path).load())

    def test_clear(self, tmp_path):
        """Test removing the saved snapshot."""
        storage = JsonFileSnapshotStorage(tmp_path / "s.json", quota_bytes=None)
        assert asyncio.run(storage.clear()) is False
        asyncio.run(storage.save(LedgerSnapshot()))
        assert asyncio.run(storage.clear()) is True
        assert asyncio.run(storage.load()) is None


class TestInMemorySnapshotStorage:
    """Tests for the in-memory store."""

    def test_load_returns_copy(self):
        """Test that loaded snapshots are independent of the stored one."""
        storage = InMemorySnapshotStorage(sample_snapshot())
        first = asyncio.run(storage.load())
        second = asyncio.run(storage.load())
        assert first == second
        assert first is not second

    def test_save_count(self):
        """Test that saves are counted."""
        storage = InMemorySnapshotStorage()
        asyncio.run(storage.save(LedgerSnapshot()))
        assert storage.save_count == 1


class TestBackups:
    """Tests for backup files."""

    def test_backup_round_trip(self):
        """Test that a backup restores to the same snapshot."""
        snapshot = sample_snapshot(images=1)
        backup = make_backup(snapshot, timestamp=datetime(2024, 5, 1, 12, 0))
        assert backup_filename(backup) == "smartledger_backup_2024-05-01.json"

        text = backup_to_json(backup)
        data = json.loads(text)
        assert data["version"] == "1.0"
        assert data["timestamp"].startswith("2024-05-01T12:00")
        assert restore_backup(text) == snapshot

    def test_default_timestamp_is_utc(self):
        """Test that an unstamped backup records an aware UTC time."""
        backup = make_backup(sample_snapshot())
        assert backup.timestamp.tzinfo is not None
        assert backup.timestamp.utcoffset() == timedelta(0)
        assert json.loads(backup_to_json(backup))["timestamp"].endswith("Z")

    def test_restore_rejects_non_backups(self):
        """Test invalid backup files."""
        with pytest.raises(InvalidBackupError):
            restore_backup("not json")
        with pytest.raises(InvalidBackupError):
            restore_backup('{"accounts": []}')
        with pytest.raises(InvalidBackupError):
            restore_backup("[1, 2]")
