"""
Category Registry

Categories are a fixed catalogue scoped by transaction type. Lookups by
display name are used when reading external rows (CSV, spreadsheet);
lookups by id are used when writing them. A name that matches nothing
falls back to the "other" category of the row's type; the registry never
grows at runtime.
"""

from typing import Iterable, Optional

from smartledger.models.ledger import CategoryOption, TransactionType


OTHER_EXPENSE_ID = "cat_other_exp"
OTHER_INCOME_ID = "cat_other_inc"
TRANSFER_ID = "cat_transfer"

EXPENSE_CATEGORIES = (
    CategoryOption(id="cat_food", name="餐飲", icon="fork-knife", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_transport", name="交通", icon="car", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_shopping", name="購物", icon="shopping-bag", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_bills", name="帳單", icon="receipt", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_entertainment", name="娛樂", icon="film-strip", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_health", name="醫療保健", icon="first-aid", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_education", name="教育", icon="graduation-cap", type=TransactionType.EXPENSE),
    CategoryOption(id="cat_travel", name="旅行", icon="airplane-tilt", type=TransactionType.EXPENSE),
    CategoryOption(id=OTHER_EXPENSE_ID, name="其他", icon="dots-three", type=TransactionType.EXPENSE),
)

INCOME_CATEGORIES = (
    CategoryOption(id="cat_salary", name="薪資", icon="money", type=TransactionType.INCOME),
    CategoryOption(id="cat_investment", name="投資", icon="chart-line-up", type=TransactionType.INCOME),
    CategoryOption(id="cat_gift", name="禮金", icon="gift", type=TransactionType.INCOME),
    CategoryOption(id=OTHER_INCOME_ID, name="其他", icon="dots-three", type=TransactionType.INCOME),
)

TRANSFER_CATEGORY = CategoryOption(
    id=TRANSFER_ID, name="轉帳", icon="arrows-left-right", type=TransactionType.TRANSFER,
)

# Keyword hints (lowercase) from free-text category guesses to expense ids.
# Checked in order; the first id with a matching keyword wins.
CATEGORY_HINTS = (
    ("cat_food", ("food", "restaurant", "dining", "meal", "drink")),
    ("cat_transport", ("transport", "gas", "uber", "taxi", "bus")),
    ("cat_shopping", ("shopping", "retail", "clothing", "store")),
    ("cat_bills", ("bill", "utility", "electric", "water", "internet")),
    ("cat_entertainment", ("movie", "entertainment", "game", "cinema")),
    ("cat_health", ("health", "medical", "doctor", "pharmacy", "drug")),
    ("cat_education", ("education", "school", "tuition", "book", "course")),
    ("cat_travel", ("travel", "flight", "hotel", "trip", "airbnb")),
)


class CategoryRegistry:
    """
    Read-only lookup over a fixed set of categories.

    The default instance holds the built-in catalogue; tests and callers
    may build one over any iterable of CategoryOption.
    """

    def __init__(self, categories: Optional[Iterable[CategoryOption]] = None):
        if categories is None:
            categories = (*EXPENSE_CATEGORIES, *INCOME_CATEGORIES, TRANSFER_CATEGORY)
        self._categories = tuple(categories)
        self._by_id = {cat.id: cat for cat in self._categories}

    def __iter__(self):
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def get(self, category_id: str) -> Optional[CategoryOption]:
        return self._by_id.get(category_id)

    def for_type(self, transaction_type: TransactionType) -> list[CategoryOption]:
        """Categories selectable for a transaction type, in catalogue order."""
        return [cat for cat in self._categories if cat.type == transaction_type]

    def name_for(self, category_id: str) -> str:
        """Display name for an id; unknown ids are returned unchanged."""
        category = self._by_id.get(category_id)
        return category.name if category else category_id

    def find_by_name(self, name: str) -> Optional[CategoryOption]:
        """
        First category whose display name matches exactly.

        Names are not unique across types ("其他" exists for both income
        and expense); the first match in catalogue order wins.
        """
        for cat in self._categories:
            if cat.name == name:
                return cat
        return None

    def resolve_name(self, name: str, transaction_type: TransactionType) -> str:
        """
        Map a display name to a category id.

        A category of the same transaction type wins over an earlier one of
        another type, so "其他" on an income row resolves to the income
        "other". Unmatched names fall back by transaction type.
        """
        for cat in self.for_type(transaction_type):
            if cat.name == name:
                return cat.id
        found = self.find_by_name(name)
        if found:
            return found.id
        return fallback_category_id(transaction_type)

    def from_hint(self, hint: Optional[str]) -> str:
        """
        Map a free-text category guess (e.g. from receipt extraction) to an
        expense category id. Matches an exact id or name first, then
        keyword hints, then falls back to the "other" expense category.
        """
        if not hint:
            return OTHER_EXPENSE_ID
        if hint in self._by_id:
            return hint
        by_name = self.find_by_name(hint)
        if by_name:
            return by_name.id

        lowered = hint.lower()
        for category_id, keywords in CATEGORY_HINTS:
            if category_id in self._by_id and any(k in lowered for k in keywords):
                return category_id
        return OTHER_EXPENSE_ID


def fallback_category_id(transaction_type: TransactionType) -> str:
    if transaction_type == TransactionType.INCOME:
        return OTHER_INCOME_ID
    if transaction_type == TransactionType.TRANSFER:
        return TRANSFER_ID
    return OTHER_EXPENSE_ID


DEFAULT_REGISTRY = CategoryRegistry()
