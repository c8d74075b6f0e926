"""
Ledger Book Operations

Every change to the application state goes through a function here that
takes a LedgerSnapshot and returns a new one. Nothing is mutated in place
and there is no module-level state: the caller owns the current snapshot
and decides when to persist it.
"""

from datetime import date
from enum import Enum
from typing import Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from smartledger.ledger.categories import DEFAULT_REGISTRY, CategoryRegistry
from smartledger.ledger.recurrence import template_from_transaction
from smartledger.models.ledger import (
    ACCOUNT_COLORS,
    Account,
    AccountType,
    Frequency,
    LedgerSnapshot,
    Theme,
    Transaction,
    TransactionType,
    initial_accounts,
    parse_amount,
)


class LedgerError(ValueError):
    """A requested change would break a ledger invariant."""
    pass


class TransactionDraft(BaseModel):
    """What the entry form (or an extraction result) submits."""

    date: str
    amount: int = Field(default=0, ge=0)
    type: TransactionType = TransactionType.EXPENSE
    category: str
    description: str = ""
    location: Optional[str] = None
    account_id: str
    to_account_id: Optional[str] = None
    receipt_image: Optional[str] = None


class RecurringOptions(BaseModel):
    """Set when the entry form's "recurring" switch is on."""

    frequency: Frequency = Frequency.MONTHLY
    end_date: Optional[date] = None


class MoveDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class SortKey(str, Enum):
    DATE = "date"
    AMOUNT = "amount"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TransactionFilter(BaseModel):
    """Criteria for the history view. Empty fields don't filter."""

    search: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None


class MonthSummary(BaseModel):
    month: str
    income: int = 0
    expense: int = 0
    expense_by_category: list[tuple[str, int]] = Field(
        default_factory=list,
        description="(category name, total) pairs, largest first"
    )
    transactions: list[Transaction] = Field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.transactions)

    @property
    def net(self) -> int:
        return self.income - self.expense


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _check_accounts(snapshot: LedgerSnapshot, draft: TransactionDraft) -> None:
    if snapshot.account_by_id(draft.account_id) is None:
        raise LedgerError(f"Unknown account: {draft.account_id}")
    if draft.type == TransactionType.TRANSFER:
        if not draft.to_account_id:
            raise LedgerError("A transfer needs a destination account")
        if draft.to_account_id == draft.account_id:
            raise LedgerError("A transfer needs two different accounts")
        if snapshot.account_by_id(draft.to_account_id) is None:
            raise LedgerError(f"Unknown account: {draft.to_account_id}")


def _draft_fields(draft: TransactionDraft) -> dict:
    fields = draft.model_dump()
    if draft.type != TransactionType.TRANSFER:
        fields["to_account_id"] = None
    return fields


def save_transaction(
    snapshot: LedgerSnapshot,
    draft: TransactionDraft,
    *,
    editing_id: Optional[str] = None,
    duplicate: bool = False,
    recurring: Optional[RecurringOptions] = None,
) -> LedgerSnapshot:
    """
    Save an entry from the form.

    - New entry: a transaction is prepended to the log.
    - `editing_id`: the transaction with that id is replaced, keeping its id.
    - `editing_id` with `duplicate=True`: a new copy is prepended instead.
    - `recurring`: a template is created. A brand new recurring entry
      creates no transaction of its own; the template is due on the entry
      date and the next catch-up pass produces it. When an existing
      transaction is edited into a template, the template starts at the
      following cycle so that date is not booked twice.

    Raises LedgerError for unknown accounts or an invalid transfer, and
    when `editing_id` does not exist.
    """
    _check_accounts(snapshot, draft)
    editing = editing_id is not None and not duplicate

    transactions = list(snapshot.transactions)
    templates = list(snapshot.recurring_transactions)

    if editing and not any(tx.id == editing_id for tx in transactions):
        raise LedgerError(f"Transaction not found: {editing_id}")

    if recurring is not None:
        seed = Transaction(id="draft", **_draft_fields(draft))
        try:
            template = template_from_transaction(
                seed,
                recurring.frequency,
                end_date=recurring.end_date,
                start_next_cycle=editing,
            )
        except ValueError as exc:
            raise LedgerError(f"Recurring entries need an ISO date: {draft.date!r}") from exc
        templates.append(template)

    if recurring is None or editing_id is not None:
        if editing:
            transactions = [
                tx.model_copy(update=_draft_fields(draft)) if tx.id == editing_id else tx
                for tx in transactions
            ]
        else:
            new_tx = Transaction(id=f"tx_{uuid4().hex}", **_draft_fields(draft))
            transactions.insert(0, new_tx)

    return snapshot.model_copy(update={
        "transactions": transactions,
        "recurring_transactions": templates,
    })


def delete_transaction(snapshot: LedgerSnapshot, transaction_id: str) -> LedgerSnapshot:
    return snapshot.model_copy(update={
        "transactions": [tx for tx in snapshot.transactions if tx.id != transaction_id],
    })


def delete_recurring(snapshot: LedgerSnapshot, template_id: str) -> LedgerSnapshot:
    """Stop a template. Instances it already produced stay in the log."""
    return snapshot.model_copy(update={
        "recurring_transactions": [
            rt for rt in snapshot.recurring_transactions if rt.id != template_id
        ],
    })


def merge_imported(
    snapshot: LedgerSnapshot,
    transactions: Iterable[Transaction],
    accounts: list[Account],
) -> LedgerSnapshot:
    """Append imported transactions and adopt the reconciled account list."""
    return snapshot.model_copy(update={
        "accounts": list(accounts),
        "transactions": list(snapshot.transactions) + list(transactions),
    })


# =============================================================================
# ACCOUNTS
# =============================================================================

def add_account(
    snapshot: LedgerSnapshot,
    name: str,
    account_type: AccountType = AccountType.CASH,
    initial_balance: int = 0,
    color: Optional[str] = None,
) -> LedgerSnapshot:
    account = Account(
        id=f"acc_{uuid4().hex[:12]}",
        name=name,
        type=account_type,
        initial_balance=initial_balance,
        color=color or ACCOUNT_COLORS[0],
    )
    return snapshot.model_copy(update={"accounts": list(snapshot.accounts) + [account]})


def update_account(snapshot: LedgerSnapshot, account_id: str, **changes) -> LedgerSnapshot:
    """
    Edit an account's name, type, initial balance or color. The id is immutable.

    Raises LedgerError for an unknown account or an attempt to change the id.
    """
    if "id" in changes:
        raise LedgerError("Account ids cannot be changed")
    if snapshot.account_by_id(account_id) is None:
        raise LedgerError(f"Account not found: {account_id}")

    accounts = []
    for account in snapshot.accounts:
        if account.id == account_id:
            account = Account.model_validate({**account.model_dump(), **changes})
        accounts.append(account)
    return snapshot.model_copy(update={"accounts": accounts})


def delete_account(snapshot: LedgerSnapshot, account_id: str) -> LedgerSnapshot:
    """
    Remove an account.

    Transactions that reference it are kept; they no longer contribute to
    any balance and the integrity validator reports them.
    """
    return snapshot.model_copy(update={
        "accounts": [a for a in snapshot.accounts if a.id != account_id],
    })


def move_account(snapshot: LedgerSnapshot, index: int, direction: MoveDirection) -> LedgerSnapshot:
    """Swap an account with its neighbour. Moves past either end do nothing."""
    target = index - 1 if direction == MoveDirection.UP else index + 1
    accounts = list(snapshot.accounts)
    if not (0 <= index < len(accounts)) or not (0 <= target < len(accounts)):
        return snapshot
    accounts[index], accounts[target] = accounts[target], accounts[index]
    return snapshot.model_copy(update={"accounts": accounts})


def reorder_account(snapshot: LedgerSnapshot, from_index: int, to_index: int) -> LedgerSnapshot:
    """Drag-and-drop: take the account at from_index and insert it at to_index."""
    accounts = list(snapshot.accounts)
    if from_index == to_index or not (0 <= from_index < len(accounts)):
        return snapshot
    moved = accounts.pop(from_index)
    accounts.insert(max(0, min(to_index, len(accounts))), moved)
    return snapshot.model_copy(update={"accounts": accounts})


# =============================================================================
# WHOLE-STATE OPERATIONS
# =============================================================================

def reset_snapshot() -> LedgerSnapshot:
    """A fresh ledger: default accounts, no transactions or templates."""
    return LedgerSnapshot(accounts=initial_accounts())


def set_theme(snapshot: LedgerSnapshot, theme: Theme) -> LedgerSnapshot:
    return snapshot.model_copy(update={"theme": theme})


# =============================================================================
# QUERIES
# =============================================================================

def filter_transactions(
    transactions: Iterable[Transaction],
    criteria: TransactionFilter,
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> list[Transaction]:
    """Search text matches description, location or category name, case-insensitively."""
    term = criteria.search.strip().lower()
    result = []
    for tx in transactions:
        if term and not (
            term in tx.description.lower()
            or (tx.location and term in tx.location.lower())
            or term in registry.name_for(tx.category).lower()
        ):
            continue
        if criteria.start_date and tx.date < criteria.start_date:
            continue
        if criteria.end_date and tx.date > criteria.end_date:
            continue
        if criteria.type and tx.type != criteria.type:
            continue
        if criteria.category_id and tx.category != criteria.category_id:
            continue

        amount = tx.numeric_amount
        if criteria.min_amount is not None and (amount is None or amount < criteria.min_amount):
            continue
        if criteria.max_amount is not None and (amount is None or amount > criteria.max_amount):
            continue
        result.append(tx)
    return result


def sort_transactions(
    transactions: Iterable[Transaction],
    key: SortKey = SortKey.DATE,
    direction: SortDirection = SortDirection.DESC,
) -> list[Transaction]:
    """Stable sort by date or amount. Corrupt amounts sort as zero."""
    if key == SortKey.DATE:
        sort_key = lambda tx: tx.date
    else:
        sort_key = lambda tx: tx.numeric_amount or 0
    return sorted(transactions, key=sort_key, reverse=direction == SortDirection.DESC)


def month_summary(
    transactions: Iterable[Transaction],
    month: str,
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> MonthSummary:
    """
    Income, expense and expense-by-category totals for a YYYY-MM month.

    Transactions whose date is not a valid calendar date are left out.
    Transfers count as neither income nor expense.
    """
    monthly = [
        tx for tx in transactions
        if tx.parsed_date is not None and tx.month_key == month
    ]
    monthly.sort(key=lambda tx: tx.date, reverse=True)

    income = 0
    expense = 0
    by_category: dict[str, int] = {}
    for tx in monthly:
        amount = parse_amount(tx.amount) or 0
        if tx.type == TransactionType.INCOME:
            income += amount
        elif tx.type == TransactionType.EXPENSE:
            expense += amount
            category = registry.get(tx.category)
            if category is None or category.type != TransactionType.EXPENSE:
                name = "其他"
            else:
                name = category.name
            by_category[name] = by_category.get(name, 0) + amount

    return MonthSummary(
        month=month,
        income=income,
        expense=expense,
        expense_by_category=sorted(by_category.items(), key=lambda item: item[1], reverse=True),
        transactions=monthly,
    )


def shift_month(month: str, delta: int) -> str:
    """Move a YYYY-MM key by `delta` months."""
    year, mon = (int(part) for part in month.split("-"))
    total = year * 12 + (mon - 1) + delta
    return f"{total // 12:04d}-{total % 12 + 1:02d}"
