"""
Data Models Package

This package contains all Pydantic models used by SmartLedger.
Everything the ledger reads, derives or persists conforms to these schemas.
"""

from smartledger.models.ledger import (
    ACCOUNT_COLORS,
    PRESET_BANKS,
    Account,
    AccountType,
    BackupFile,
    CategoryOption,
    Frequency,
    LedgerSnapshot,
    RecurringTransaction,
    Theme,
    Transaction,
    TransactionType,
    initial_accounts,
    parse_amount,
    round_amount,
)
from smartledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Ledger models
    "ACCOUNT_COLORS",
    "PRESET_BANKS",
    "Account",
    "AccountType",
    "BackupFile",
    "CategoryOption",
    "Frequency",
    "LedgerSnapshot",
    "RecurringTransaction",
    "Theme",
    "Transaction",
    "TransactionType",
    "initial_accounts",
    "parse_amount",
    "round_amount",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
