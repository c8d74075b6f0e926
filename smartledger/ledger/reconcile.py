"""
Import Reconciler

Turns rows from outside the ledger (CSV files, restored spreadsheet pages)
into transactions that reference our own account and category ids.

GUARANTEES:
- Each row is handled on its own. A bad row becomes a SkippedRow with a
  reason; it never aborts the batch and never creates accounts.
- Account names are resolved against a working copy of the account list
  that grows during the run, so two rows naming the same unknown account
  share one synthesized account.
- Unknown category names fall back to the "other" category of the row's
  type. Categories are never created.
- Inputs are not modified; new lists are returned.

Running the same rows twice imports them twice (with new ids). There is
no cross-run deduplication.
"""

import re
from datetime import date
from enum import Enum
from typing import Annotated, Callable, Iterable, Literal, Optional, Sequence, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from smartledger.ledger.categories import DEFAULT_REGISTRY, CategoryRegistry
from smartledger.logging_config import get_logger
from smartledger.models.ledger import (
    ACCOUNT_COLORS,
    Account,
    AccountType,
    Transaction,
    TransactionType,
    parse_amount,
)


logger = get_logger(__name__)

INCOME_LABELS = {"收入", "INCOME"}
TRANSFER_LABELS = {"轉帳", "轉入", "轉出", "TRANSFER"}

_DATE_SEPARATORS = re.compile(r"[_/.]")
_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")


class RowLayout(str, Enum):
    """Field layout of incoming rows."""
    # date, type, amount, category, description, location, account, to-account
    FULL = "full"
    # date, amount, description, category
    COMPACT = "compact"


class ImportedRow(BaseModel):
    status: Literal["imported"] = "imported"
    row_number: int
    transaction: Transaction


class SkippedRow(BaseModel):
    status: Literal["skipped"] = "skipped"
    row_number: int
    reason: str
    raw: list[str] = Field(default_factory=list)


RowOutcome = Annotated[Union[ImportedRow, SkippedRow], Field(discriminator="status")]


class ReconciliationResult(BaseModel):
    """Per-row outcomes plus the account list extended with any new accounts."""

    outcomes: list[RowOutcome] = Field(default_factory=list)
    updated_accounts: list[Account] = Field(default_factory=list)
    created_accounts: list[Account] = Field(default_factory=list)

    @property
    def new_transactions(self) -> list[Transaction]:
        return [o.transaction for o in self.outcomes if isinstance(o, ImportedRow)]

    @property
    def skipped(self) -> list[SkippedRow]:
        return [o for o in self.outcomes if isinstance(o, SkippedRow)]

    @property
    def imported_count(self) -> int:
        return len(self.new_transactions)


class _RowSkipped(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def normalize_date(raw: str) -> str:
    """
    Normalize a date to YYYY-MM-DD.

    Accepts '-', '/', '.' and '_' as separators and one- or two-digit
    month and day ("2024/5/1", "2024.05.01"). A trailing time part is
    ignored. Anything that does not parse is returned unchanged.
    """
    value = raw.strip()
    match = _DATE_PATTERN.match(_DATE_SEPARATORS.sub("-", value))
    if not match:
        return raw
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return raw


def resolve_type(label: str) -> TransactionType:
    """Map a localized type label to a TransactionType. Unknown labels mean EXPENSE."""
    label = label.strip()
    if label in INCOME_LABELS:
        return TransactionType.INCOME
    if label in TRANSFER_LABELS:
        return TransactionType.TRANSFER
    return TransactionType.EXPENSE


def parse_import_amount(raw: str) -> Optional[int]:
    """Parse an amount cell, ignoring thousands separators. None if not a number."""
    return parse_amount(str(raw).replace(",", "").strip())


class AccountResolver:
    """
    Name → id lookup over a growing working copy of the account list.

    Unknown names get a new CASH account with a zero opening balance, a
    deterministic id (acc_import_1, acc_import_2, ... skipping ids already
    taken) and the next color in the fixed rotation not yet in use.
    """

    def __init__(self, accounts: Iterable[Account], id_prefix: str = "acc_import"):
        self.accounts: list[Account] = list(accounts)
        self.created: list[Account] = []
        self._id_prefix = id_prefix

    def find(self, name: str) -> Optional[Account]:
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    def resolve(self, name: str) -> str:
        existing = self.find(name)
        if existing:
            return existing.id

        account = Account(
            id=self._next_id(),
            name=name,
            type=AccountType.CASH,
            initial_balance=0,
            color=self._next_color(),
        )
        self.accounts.append(account)
        self.created.append(account)
        return account.id

    def checkpoint(self) -> int:
        return len(self.created)

    def rollback(self, checkpoint: int) -> None:
        """Forget accounts created after `checkpoint`."""
        for account in self.created[checkpoint:]:
            self.accounts.remove(account)
        del self.created[checkpoint:]

    def _next_id(self) -> str:
        taken = {account.id for account in self.accounts}
        n = 1
        while f"{self._id_prefix}_{n}" in taken:
            n += 1
        return f"{self._id_prefix}_{n}"

    def _next_color(self) -> str:
        used = {account.color for account in self.accounts}
        start = len(self.accounts) % len(ACCOUNT_COLORS)
        for offset in range(len(ACCOUNT_COLORS)):
            color = ACCOUNT_COLORS[(start + offset) % len(ACCOUNT_COLORS)]
            if color not in used:
                return color
        return ACCOUNT_COLORS[start]


def _cell(row: Sequence[str], index: int) -> str:
    try:
        value = row[index]
    except IndexError:
        return ""
    return "" if value is None else str(value).strip()


class ImportReconciler:
    """
    Reconciles raw rows against an account list and a category registry.

    One instance can be reused; all per-run state lives in reconcile().
    """

    def __init__(
        self,
        registry: CategoryRegistry = DEFAULT_REGISTRY,
        id_prefix: str = "import",
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._registry = registry
        self._id_factory = id_factory or (lambda: f"{id_prefix}_{uuid4().hex}")

    def reconcile(
        self,
        rows: Iterable[Sequence[str]],
        existing_accounts: Sequence[Account],
        layout: RowLayout = RowLayout.FULL,
        start: int = 1,
    ) -> ReconciliationResult:
        """
        Reconcile rows in order. `start` is the number reported for the first row.
        """
        resolver = AccountResolver(existing_accounts)
        default_account_id = existing_accounts[0].id if existing_accounts else None
        outcomes: list[RowOutcome] = []

        for row_number, row in enumerate(rows, start=start):
            checkpoint = resolver.checkpoint()
            try:
                if layout == RowLayout.COMPACT:
                    tx = self._compact_row(row, default_account_id)
                else:
                    tx = self._full_row(row, resolver, default_account_id)
            except _RowSkipped as skip:
                resolver.rollback(checkpoint)
                outcomes.append(self._skip(row_number, row, skip.reason))
                continue
            except ValidationError as exc:
                resolver.rollback(checkpoint)
                outcomes.append(self._skip(row_number, row, f"invalid row: {exc.errors()[0]['msg']}"))
                continue
            outcomes.append(ImportedRow(row_number=row_number, transaction=tx))

        result = ReconciliationResult(
            outcomes=outcomes,
            updated_accounts=resolver.accounts,
            created_accounts=resolver.created,
        )
        logger.info(
            "import_reconciled",
            imported=result.imported_count,
            skipped=len(result.skipped),
            accounts_created=len(result.created_accounts),
        )
        return result

    def _skip(self, row_number: int, row: Sequence[str], reason: str) -> SkippedRow:
        logger.info("import_row_skipped", row=row_number, reason=reason)
        return SkippedRow(
            row_number=row_number,
            reason=reason,
            raw=["" if v is None else str(v) for v in row],
        )

    def _common_fields(self, raw_date: str, raw_amount: str) -> tuple[str, int]:
        if not raw_date:
            raise _RowSkipped("missing date")
        amount = parse_import_amount(raw_amount)
        if amount is None:
            raise _RowSkipped(f"amount is not a number: {raw_amount!r}")
        if amount < 0:
            raise _RowSkipped(f"negative amount: {raw_amount!r}")
        return normalize_date(raw_date), amount

    def _full_row(
        self,
        row: Sequence[str],
        resolver: AccountResolver,
        default_account_id: Optional[str],
    ) -> Transaction:
        if len(row) < 3:
            raise _RowSkipped("too few fields")

        tx_date, amount = self._common_fields(_cell(row, 0), _cell(row, 2))
        tx_type = resolve_type(_cell(row, 1))
        account_name = _cell(row, 6)
        to_account_name = _cell(row, 7) if tx_type == TransactionType.TRANSFER else ""

        if to_account_name and to_account_name == account_name:
            raise _RowSkipped("transfer source and destination are the same account")
        if not account_name and default_account_id is None:
            raise _RowSkipped("no account named and no accounts to fall back to")

        account_id = resolver.resolve(account_name) if account_name else default_account_id
        to_account_id = resolver.resolve(to_account_name) if to_account_name else None
        if to_account_id == account_id:
            raise _RowSkipped("transfer source and destination are the same account")

        return Transaction(
            id=self._id_factory(),
            date=tx_date,
            amount=amount,
            type=tx_type,
            category=self._registry.resolve_name(_cell(row, 3), tx_type),
            description=_cell(row, 4),
            location=_cell(row, 5) or None,
            account_id=account_id,
            to_account_id=to_account_id,
        )

    def _compact_row(
        self,
        row: Sequence[str],
        default_account_id: Optional[str],
    ) -> Transaction:
        if len(row) < 2:
            raise _RowSkipped("too few fields")
        tx_date, amount = self._common_fields(_cell(row, 0), _cell(row, 1))
        if default_account_id is None:
            raise _RowSkipped("no accounts to assign the row to")

        return Transaction(
            id=self._id_factory(),
            date=tx_date,
            amount=amount,
            type=TransactionType.EXPENSE,
            category=self._registry.resolve_name(_cell(row, 3), TransactionType.EXPENSE),
            description=_cell(row, 2),
            account_id=default_account_id,
        )


def reconcile(
    rows: Iterable[Sequence[str]],
    existing_accounts: Sequence[Account],
    registry: CategoryRegistry = DEFAULT_REGISTRY,
    layout: RowLayout = RowLayout.FULL,
) -> ReconciliationResult:
    """Reconcile rows with a default ImportReconciler."""
    return ImportReconciler(registry).reconcile(rows, existing_accounts, layout=layout)
