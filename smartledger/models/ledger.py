"""
Core Data Models for SmartLedger

These models define the schemas for everything the ledger engine reads
and writes:
1. Accounts, transactions and recurring templates
2. The snapshot handed to the persistence layer
3. The backup file format

Field names serialize as camelCase (initialBalance, accountId, ...) so a
snapshot keeps the exact JSON shape of existing saved data. Python code
uses the snake_case attribute names; both spellings are accepted on input.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Kind of money movement."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class AccountType(str, Enum):
    """Kind of account. Purely descriptive, no effect on balances."""
    CASH = "CASH"
    BANK = "BANK"
    CREDIT = "CREDIT"
    E_WALLET = "E-WALLET"
    OTHER = "OTHER"


class Frequency(str, Enum):
    """
    How often a recurring template fires.

    BI_MONTHLY_ODD fires in January, March, May, ...
    BI_MONTHLY_EVEN fires in February, April, June, ...
    """
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    BI_MONTHLY_ODD = "BI_MONTHLY_ODD"
    BI_MONTHLY_EVEN = "BI_MONTHLY_EVEN"
    YEARLY = "YEARLY"


class Theme(str, Enum):
    DEFAULT = "default"
    PURPLE = "purple"
    COFFEE = "coffee"
    GREEN = "green"


# =============================================================================
# AMOUNT HELPERS
# =============================================================================

def round_amount(value: Any) -> int:
    """
    Round a numeric value half-up to a whole amount.

    Raises ValueError for anything that is not a finite number, or one
    too large to hold as a whole amount (more than 28 digits).
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    try:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc


def parse_amount(value: Any) -> Optional[int]:
    """Like round_amount, but returns None instead of raising."""
    try:
        return round_amount(value)
    except ValueError:
        return None


def _empty_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class LedgerModel(BaseModel):
    """Base for all persisted ledger records."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict:
        """Dump in the persisted camelCase shape, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# CORE LEDGER MODELS
# =============================================================================

class Account(LedgerModel):
    """
    A user-defined account.

    `id` is the only stable cross-reference key. List order is display
    order and has no effect on balances.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., description="Display name, used to match imported rows")
    type: AccountType = AccountType.CASH
    initial_balance: int = Field(
        default=0,
        description="Opening balance; may be negative (credit cards)"
    )
    color: str = Field(default="bg-orange-500")

    @field_validator("initial_balance", mode="before")
    @classmethod
    def round_initial_balance(cls, v: Any) -> int:
        return round_amount(v)


class Transaction(LedgerModel):
    """
    A single money movement.

    `date` stays a plain string: imported rows whose date could not be
    normalized keep their raw value rather than getting a made-up date.

    `amount` is a non-negative whole number. A non-numeric value found in
    loaded data is kept as its raw string so the balance ledger can skip
    it instead of refusing to load the whole snapshot.
    """

    id: str = Field(..., min_length=1)
    date: str
    amount: Union[int, str]
    type: TransactionType
    category: str
    description: str = ""
    location: Optional[str] = None
    account_id: str
    to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account, TRANSFER only"
    )
    receipt_image: Optional[str] = Field(
        default=None,
        description="Opaque image reference (base64 data URL)"
    )
    is_recurring_instance: Optional[bool] = None

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, v: Any) -> Union[int, str]:
        if isinstance(v, str):
            parsed = parse_amount(v)
            if parsed is None:
                return v
            v = parsed
        amount = round_amount(v)
        if amount < 0:
            raise ValueError("Amount must not be negative")
        return amount

    @field_validator("to_account_id", "location", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _empty_to_none(v)

    @property
    def numeric_amount(self) -> Optional[int]:
        """The amount as an int, or None when the stored value is corrupt."""
        if isinstance(self.amount, int):
            return self.amount
        return parse_amount(self.amount)

    @property
    def parsed_date(self) -> Optional[date]:
        try:
            return date.fromisoformat(self.date)
        except ValueError:
            return None

    @property
    def month_key(self) -> str:
        """YYYY-MM bucket this transaction belongs to."""
        return self.date[:7]


class RecurringTransaction(LedgerModel):
    """
    A template that spawns concrete transactions on a schedule.

    Only `next_due_date` and `last_generated` move during normal
    operation. A template whose `next_due_date` has passed `end_date` is
    dormant: it is kept but never fires again.
    """

    id: str = Field(..., min_length=1)
    frequency: Frequency
    start_date: date
    next_due_date: date
    end_date: Optional[date] = None
    last_generated: Optional[date] = None

    # Template data
    amount: int = Field(..., ge=0)
    type: TransactionType
    category: str
    description: str = ""
    location: Optional[str] = None
    account_id: str
    to_account_id: Optional[str] = None

    @field_validator("end_date", "last_generated", "to_account_id", "location", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _empty_to_none(v)

    @field_validator("amount", mode="before")
    @classmethod
    def round_template_amount(cls, v: Any) -> int:
        return round_amount(v)

    @property
    def is_dormant(self) -> bool:
        return self.end_date is not None and self.next_due_date > self.end_date


class LedgerSnapshot(LedgerModel):
    """
    The whole application state.

    This is threaded explicitly through the ledger, scheduler and
    reconciler; every operation returns a new snapshot.
    """

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    recurring_transactions: list[RecurringTransaction] = Field(default_factory=list)
    theme: Theme = Theme.DEFAULT

    def account_by_id(self, account_id: str) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None


class BackupFile(LedgerSnapshot):
    """A downloadable backup: a snapshot plus when and in which format it was made."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0"

    def to_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            accounts=self.accounts,
            transactions=self.transactions,
            recurring_transactions=self.recurring_transactions,
            theme=self.theme,
        )


class CategoryOption(BaseModel):
    """A selectable category. Categories are fixed; imports never create new ones."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    type: TransactionType


# =============================================================================
# DEFAULTS
# =============================================================================

# Fixed color rotation for accounts, in the order new accounts receive them.
ACCOUNT_COLORS = [
    "bg-orange-500", "bg-blue-500", "bg-purple-500",
    "bg-green-500", "bg-red-500", "bg-teal-500",
    "bg-indigo-500", "bg-pink-500", "bg-gray-600",
]

PRESET_BANKS = ["LINE Bank", "台新銀行", "元大銀行", "台灣銀行", "台北富邦", "郵局"]


def initial_accounts() -> list[Account]:
    """The accounts a fresh (or reset) ledger starts with."""
    return [
        Account(id="acc_1", name="現金錢包", type=AccountType.CASH,
                initial_balance=2000, color="bg-orange-500"),
        Account(id="acc_2", name="銀行帳戶", type=AccountType.BANK,
                initial_balance=150000, color="bg-blue-500"),
        Account(id="acc_3", name="信用卡", type=AccountType.CREDIT,
                initial_balance=-5000, color="bg-purple-500"),
    ]
