"""
Main Orchestrator for SmartLedger

This module ties together all the components and defines the
end-to-end flows for:
1. Opening a session (load → recurring catch-up → balances)
2. Editing the books (transactions, templates, accounts) and persisting
3. CSV import/export and JSON backup/restore
4. Spreadsheet sync and restore
5. Drafting entries from receipt photos and voice memos

DESIGN DECISION: The orchestrator owns the one mutable thing in the
system, the current LedgerSnapshot. Every ledger function it calls is
pure and returns a new snapshot; the session swaps it in and persists.

- Catch-up always runs before balances are read, so balances include
  today's recurring entries.
- A failed save is logged and reported; the in-memory snapshot stays
  authoritative and the next save retries with the full state.
- Extraction only ever produces a draft. Nothing is saved until the
  caller passes the (possibly edited) draft back to save_transaction.
"""

from datetime import date
from typing import Optional

from smartledger.agents import FieldExtractor, ReceiptFields
from smartledger.ledger import book
from smartledger.ledger.balances import compute_balances, total_balance
from smartledger.ledger.categories import DEFAULT_REGISTRY, CategoryRegistry
from smartledger.ledger.csv_codec import (
    CSV_HEADER,
    export_account_csv,
    export_csv,
    parse_csv,
    rows_by_month,
)
from smartledger.ledger.reconcile import (
    ImportReconciler,
    ReconciliationResult,
    RowLayout,
)
from smartledger.ledger.recurrence import run_catch_up
from smartledger.logging_config import get_logger
from smartledger.models.ledger import LedgerSnapshot, TransactionType
from smartledger.models.validation import ValidationResult
from smartledger.services.storage import (
    SnapshotStorageInterface,
    SpreadsheetSyncInterface,
    StorageError,
    backup_filename,
    backup_to_json,
    make_backup,
    restore_backup,
)
from smartledger.validation import LedgerValidator


logger = get_logger(__name__)


class LedgerSession:
    """
    One user's working session over a snapshot store.

    Optional collaborators (spreadsheet sync, field extractor) are only
    needed by the flows that use them; calling such a flow without one
    raises RuntimeError.
    """

    def __init__(
        self,
        storage: SnapshotStorageInterface,
        sheets: Optional[SpreadsheetSyncInterface] = None,
        extractor: Optional[FieldExtractor] = None,
        registry: CategoryRegistry = DEFAULT_REGISTRY,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._sheets = sheets
        self._extractor = extractor
        self._registry = registry
        self._validator = validator or LedgerValidator()
        self._snapshot: LedgerSnapshot = book.reset_snapshot()

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def balances(self) -> dict[str, int]:
        return compute_balances(self._snapshot.accounts, self._snapshot.transactions)

    @property
    def net_worth(self) -> int:
        return total_balance(self.balances)

    def validate(self) -> ValidationResult:
        return self._validator.validate(self._snapshot)

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    async def open(self, today: Optional[date] = None) -> dict[str, int]:
        """
        Load the saved snapshot and bring recurring templates up to date.

        A store with nothing saved starts a fresh ledger. A store whose
        data cannot be read raises StorageError; the session is left on a
        fresh ledger and nothing is overwritten.

        Returns:
            Current balances by account id
        """
        loaded = await self._storage.load()
        self._snapshot = loaded if loaded is not None else book.reset_snapshot()
        logger.info(
            "session_opened",
            accounts=len(self._snapshot.accounts),
            transactions=len(self._snapshot.transactions),
            templates=len(self._snapshot.recurring_transactions),
            fresh=loaded is None,
        )

        result = self.validate()
        if result.issues:
            logger.warning(
                "snapshot_integrity_issues",
                errors=result.error_count,
                warnings=result.warning_count,
            )

        await self.catch_up(today)
        return self.balances

    async def catch_up(self, today: Optional[date] = None) -> int:
        """Materialize due recurring instances; persists if any were made."""
        result = run_catch_up(self._snapshot, today)
        if result.generated_count:
            self._snapshot = result.snapshot
            await self.persist()
        return result.generated_count

    async def persist(self) -> bool:
        """Save the current snapshot. Failures are logged and reported as False."""
        try:
            return await self._storage.save(self._snapshot)
        except StorageError as e:
            logger.error("snapshot_save_failed", error=str(e))
            return False

    async def _commit(self, snapshot: LedgerSnapshot) -> bool:
        self._snapshot = snapshot
        return await self.persist()

    async def reset(self) -> LedgerSnapshot:
        """Forget everything: clear the store and start a fresh ledger."""
        await self._storage.clear()
        self._snapshot = book.reset_snapshot()
        logger.info("ledger_reset")
        return self._snapshot

    # =========================================================================
    # BOOK OPERATIONS
    # =========================================================================

    async def save_transaction(
        self,
        draft: book.TransactionDraft,
        *,
        editing_id: Optional[str] = None,
        duplicate: bool = False,
        recurring: Optional[book.RecurringOptions] = None,
        today: Optional[date] = None,
    ) -> LedgerSnapshot:
        """
        Save an entry (see book.save_transaction). Creating a recurring
        template runs catch-up right away, so an entry dated today or
        earlier appears immediately.

        Raises LedgerError if the entry is invalid; nothing is saved then.
        """
        snapshot = book.save_transaction(
            self._snapshot,
            draft,
            editing_id=editing_id,
            duplicate=duplicate,
            recurring=recurring,
        )
        await self._commit(snapshot)
        if recurring is not None:
            await self.catch_up(today)
        return self._snapshot

    async def delete_transaction(self, transaction_id: str) -> LedgerSnapshot:
        await self._commit(book.delete_transaction(self._snapshot, transaction_id))
        return self._snapshot

    async def delete_recurring(self, template_id: str) -> LedgerSnapshot:
        await self._commit(book.delete_recurring(self._snapshot, template_id))
        return self._snapshot

    async def update(self, snapshot: LedgerSnapshot) -> LedgerSnapshot:
        """Adopt a snapshot produced by any book operation and persist it."""
        await self._commit(snapshot)
        return self._snapshot

    # =========================================================================
    # CSV AND BACKUP
    # =========================================================================

    async def import_csv(self, text: str) -> ReconciliationResult:
        """
        Import an exported CSV file.

        Raises InvalidCsvError if the file is not an export; individual bad
        rows are skipped and reported in the result.
        """
        rows = parse_csv(text)
        reconciler = ImportReconciler(self._registry, id_prefix="import")
        # Row 1 is the header, so data rows are numbered from 2
        result = reconciler.reconcile(rows, self._snapshot.accounts, RowLayout.FULL, start=2)
        await self._adopt_import(result)
        return result

    async def _adopt_import(self, result: ReconciliationResult) -> None:
        # Nothing imported leaves the ledger and the store untouched
        if result.imported_count == 0:
            return
        await self._commit(book.merge_imported(
            self._snapshot, result.new_transactions, result.updated_accounts
        ))

    def export_csv(self) -> str:
        """All transactions, newest first."""
        ordered = book.sort_transactions(self._snapshot.transactions)
        return export_csv(ordered, self._snapshot.accounts, self._registry)

    def export_account_csv(self, account_id: str) -> str:
        account = self._snapshot.account_by_id(account_id)
        if account is None:
            raise book.LedgerError(f"Account not found: {account_id}")
        return export_account_csv(
            account, self._snapshot.transactions, self._snapshot.accounts, self._registry
        )

    def backup(self) -> tuple[str, str]:
        """Returns (suggested filename, backup JSON)."""
        backup = make_backup(self._snapshot)
        return backup_filename(backup), backup_to_json(backup)

    async def restore_backup(self, text: str, today: Optional[date] = None) -> LedgerSnapshot:
        """
        Replace the ledger with a backup file's contents.

        Raises InvalidBackupError if the file is not a backup; the current
        ledger is untouched then.
        """
        await self._commit(restore_backup(text))
        await self.catch_up(today)
        return self._snapshot

    # =========================================================================
    # SPREADSHEET SYNC
    # =========================================================================

    def _require_sheets(self) -> SpreadsheetSyncInterface:
        if self._sheets is None:
            raise RuntimeError("No spreadsheet sync configured")
        return self._sheets

    async def sync_to_sheets(self) -> list[str]:
        """
        Write every month that has transactions to its own page.

        Returns:
            The page keys written
        """
        sheets = self._require_sheets()
        pages = rows_by_month(self._snapshot.transactions, self._snapshot.accounts, self._registry)
        for key in sorted(pages):
            await sheets.write_rows(key, pages[key])
        logger.info("sheets_synced", pages=len(pages))
        return sorted(pages)

    async def restore_from_sheets(self) -> ReconciliationResult:
        """
        Append every row of the backup spreadsheet to the ledger.

        Rows are reconciled like a CSV import: account names that do not
        exist become new accounts. Restoring twice appends twice.
        """
        sheets = self._require_sheets()
        pages = await sheets.read_all_rows()

        rows = []
        for key in sorted(pages):
            page = pages[key]
            if page and [str(cell).strip() for cell in page[0]] == CSV_HEADER:
                page = page[1:]
            rows.extend(row for row in page if any(str(cell).strip() for cell in row))

        reconciler = ImportReconciler(self._registry, id_prefix="restored")
        result = reconciler.reconcile(rows, self._snapshot.accounts, RowLayout.FULL)
        await self._adopt_import(result)
        return result

    # =========================================================================
    # RECEIPT AND VOICE DRAFTING
    # =========================================================================

    def _require_extractor(self) -> FieldExtractor:
        if self._extractor is None:
            raise RuntimeError("No field extractor configured")
        return self._extractor

    def _draft_from_fields(
        self,
        fields: ReceiptFields,
        tx_type: TransactionType = TransactionType.EXPENSE,
        location: Optional[str] = None,
        receipt_image: Optional[str] = None,
    ) -> book.TransactionDraft:
        if not self._snapshot.accounts:
            raise book.LedgerError("Add an account before drafting entries")
        return book.TransactionDraft(
            date=fields.date,
            amount=fields.amount,
            type=tx_type,
            category=fields.category,
            description=fields.description,
            location=location,
            account_id=self._snapshot.accounts[0].id,
            receipt_image=receipt_image,
        )

    async def draft_from_receipt(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
        receipt_image: Optional[str] = None,
    ) -> book.TransactionDraft:
        """
        Read a receipt into an unsaved expense draft on the first account.

        Raises ExtractionFailedError if the receipt could not be read.
        """
        fields = await self._require_extractor().extract_receipt_fields(image, mime_type)
        return self._draft_from_fields(fields, receipt_image=receipt_image)

    async def draft_from_voice(self, audio: bytes, mime_type: str) -> book.TransactionDraft:
        """
        Turn a voice memo into an unsaved draft on the first account.

        Raises ExtractionFailedError if the memo could not be understood.
        """
        fields = await self._require_extractor().extract_voice_fields(audio, mime_type)
        return self._draft_from_fields(fields, fields.type, fields.location)
