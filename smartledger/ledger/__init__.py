"""
Ledger Engine Package

Pure functions over the ledger models: balance derivation, recurring
catch-up, import reconciliation, the CSV contract and book operations.
Nothing here performs I/O.
"""

from smartledger.ledger.balances import (
    account_transactions,
    compute_balances,
    total_balance,
    transfers_missing_destination,
)
from smartledger.ledger.book import (
    LedgerError,
    MonthSummary,
    MoveDirection,
    RecurringOptions,
    SortDirection,
    SortKey,
    TransactionDraft,
    TransactionFilter,
    add_account,
    delete_account,
    delete_recurring,
    delete_transaction,
    filter_transactions,
    merge_imported,
    month_summary,
    move_account,
    reorder_account,
    reset_snapshot,
    save_transaction,
    set_theme,
    shift_month,
    sort_transactions,
    update_account,
)
from smartledger.ledger.categories import (
    DEFAULT_REGISTRY,
    CategoryRegistry,
    fallback_category_id,
)
from smartledger.ledger.csv_codec import (
    CSV_HEADER,
    InvalidCsvError,
    export_account_csv,
    export_csv,
    parse_csv,
    rows_by_month,
)
from smartledger.ledger.reconcile import (
    ImportedRow,
    ImportReconciler,
    ReconciliationResult,
    RowLayout,
    SkippedRow,
    reconcile,
)
from smartledger.ledger.recurrence import (
    CatchUpResult,
    RecurrenceResult,
    advance,
    run_catch_up,
    step_date,
    template_from_transaction,
)

__all__ = [
    # Balances
    "account_transactions",
    "compute_balances",
    "total_balance",
    "transfers_missing_destination",
    # Book operations
    "LedgerError",
    "MonthSummary",
    "MoveDirection",
    "RecurringOptions",
    "SortDirection",
    "SortKey",
    "TransactionDraft",
    "TransactionFilter",
    "add_account",
    "delete_account",
    "delete_recurring",
    "delete_transaction",
    "filter_transactions",
    "merge_imported",
    "month_summary",
    "move_account",
    "reorder_account",
    "reset_snapshot",
    "save_transaction",
    "set_theme",
    "shift_month",
    "sort_transactions",
    "update_account",
    # Categories
    "DEFAULT_REGISTRY",
    "CategoryRegistry",
    "fallback_category_id",
    # CSV
    "CSV_HEADER",
    "InvalidCsvError",
    "export_account_csv",
    "export_csv",
    "parse_csv",
    "rows_by_month",
    # Reconciliation
    "ImportedRow",
    "ImportReconciler",
    "ReconciliationResult",
    "RowLayout",
    "SkippedRow",
    "reconcile",
    # Recurrence
    "CatchUpResult",
    "RecurrenceResult",
    "advance",
    "run_catch_up",
    "step_date",
    "template_from_transaction",
]
