"""Tests for book operations over snapshots."""

from datetime import date

import pytest

from smartledger.ledger.book import (
    LedgerError,
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
from smartledger.models import (
    AccountType,
    Frequency,
    LedgerSnapshot,
    Theme,
    Transaction,
    TransactionType,
)


def draft(**overrides):
    fields = dict(
        date="2024-05-01", amount=120, type=TransactionType.EXPENSE,
        category="cat_food", description="Lunch", account_id="acc_1",
    )
    fields.update(overrides)
    return TransactionDraft(**fields)


def tx(tx_id, tx_date="2024-05-01", amount=100, tx_type=TransactionType.EXPENSE,
       category="cat_food", description="", location=None, account_id="acc_1"):
    return Transaction(
        id=tx_id, date=tx_date, amount=amount, type=tx_type, category=category,
        description=description, location=location, account_id=account_id,
    )


class TestSaveTransaction:
    """Tests for saving entries from the form."""

    def test_new_entry_prepended(self):
        """Test that a new entry goes to the front of the log."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("old")]})
        saved = save_transaction(snapshot, draft())
        assert len(saved.transactions) == 2
        assert saved.transactions[0].description == "Lunch"
        assert saved.transactions[1].id == "old"
        assert snapshot.transactions == [tx("old")]

    def test_edit_replaces_in_place(self):
        """Test that editing keeps the id and position."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("a"), tx("b")]})
        saved = save_transaction(snapshot, draft(amount=999), editing_id="b")
        assert [t.id for t in saved.transactions] == ["a", "b"]
        assert saved.transactions[1].amount == 999

    def test_duplicate_adds_copy(self):
        """Test that duplicating leaves the original alone."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("a")]})
        saved = save_transaction(snapshot, draft(amount=5), editing_id="a", duplicate=True)
        assert len(saved.transactions) == 2
        assert saved.transactions[1] == tx("a")
        assert saved.transactions[0].amount == 5

    def test_edit_unknown_id(self):
        """Test that editing a missing transaction is an error."""
        with pytest.raises(LedgerError):
            save_transaction(reset_snapshot(), draft(), editing_id="nope")

    def test_unknown_account_rejected(self):
        """Test that entries must reference an existing account."""
        with pytest.raises(LedgerError):
            save_transaction(reset_snapshot(), draft(account_id="ghost"))

    def test_transfer_validation(self):
        """Test that transfers need a different, existing destination."""
        snapshot = reset_snapshot()
        with pytest.raises(LedgerError):
            save_transaction(snapshot, draft(type=TransactionType.TRANSFER))
        with pytest.raises(LedgerError):
            save_transaction(snapshot, draft(type=TransactionType.TRANSFER, to_account_id="acc_1"))
        saved = save_transaction(
            snapshot, draft(type=TransactionType.TRANSFER, category="cat_transfer", to_account_id="acc_2")
        )
        assert saved.transactions[0].to_account_id == "acc_2"

    def test_non_transfer_drops_destination(self):
        """Test that an expense never keeps a destination account."""
        saved = save_transaction(reset_snapshot(), draft(to_account_id="acc_2"))
        assert saved.transactions[0].to_account_id is None

    def test_new_recurring_creates_template_only(self):
        """Test that a new recurring entry waits for catch-up to create it."""
        saved = save_transaction(
            reset_snapshot(), draft(date="2024-01-31"),
            recurring=RecurringOptions(frequency=Frequency.MONTHLY),
        )
        assert saved.transactions == []
        template = saved.recurring_transactions[0]
        assert template.next_due_date == date(2024, 1, 31)
        assert template.amount == 120

    def test_edit_into_recurring_starts_next_cycle(self):
        """Test that converting an existing entry keeps it and schedules the next one."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("a", "2024-01-31")]})
        saved = save_transaction(
            snapshot, draft(date="2024-01-31"), editing_id="a",
            recurring=RecurringOptions(frequency=Frequency.MONTHLY, end_date=date(2024, 12, 31)),
        )
        assert [t.id for t in saved.transactions] == ["a"]
        template = saved.recurring_transactions[0]
        assert template.next_due_date == date(2024, 2, 29)
        assert template.end_date == date(2024, 12, 31)

    def test_recurring_needs_iso_date(self):
        """Test that a template cannot start on an unparseable date."""
        with pytest.raises(LedgerError):
            save_transaction(reset_snapshot(), draft(date="soon"), recurring=RecurringOptions())


class TestDeleteOperations:
    """Tests for deleting transactions and templates."""

    def test_delete_transaction(self):
        """Test removing one transaction."""
        snapshot = LedgerSnapshot(transactions=[tx("a"), tx("b")])
        assert [t.id for t in delete_transaction(snapshot, "a").transactions] == ["b"]

    def test_delete_recurring_keeps_instances(self):
        """Test that stopping a template keeps what it generated."""
        snapshot = save_transaction(
            reset_snapshot(), draft(), recurring=RecurringOptions(frequency=Frequency.WEEKLY)
        )
        snapshot = snapshot.model_copy(update={"transactions": [tx("auto_1")]})
        template_id = snapshot.recurring_transactions[0].id
        cleared = delete_recurring(snapshot, template_id)
        assert cleared.recurring_transactions == []
        assert [t.id for t in cleared.transactions] == ["auto_1"]


class TestAccountOperations:
    """Tests for account management."""

    def test_add_account(self):
        """Test that new accounts are appended with fresh ids."""
        snapshot = add_account(reset_snapshot(), "郵局", AccountType.BANK, initial_balance="12.5")
        added = snapshot.accounts[-1]
        assert added.name == "郵局"
        assert added.type == AccountType.BANK
        assert added.initial_balance == 13
        assert added.id not in {"acc_1", "acc_2", "acc_3"}

    def test_update_account(self):
        """Test editing an account's fields."""
        snapshot = update_account(reset_snapshot(), "acc_1", name="Wallet", initial_balance=10)
        account = snapshot.account_by_id("acc_1")
        assert account.name == "Wallet"
        assert account.initial_balance == 10

    def test_update_account_errors(self):
        """Test that ids are immutable and must exist."""
        with pytest.raises(LedgerError):
            update_account(reset_snapshot(), "acc_1", id="acc_9")
        with pytest.raises(LedgerError):
            update_account(reset_snapshot(), "ghost", name="x")

    def test_delete_account_keeps_transactions(self):
        """Test that deleting an account leaves its transactions in the log."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("a")]})
        deleted = delete_account(snapshot, "acc_1")
        assert [a.id for a in deleted.accounts] == ["acc_2", "acc_3"]
        assert len(deleted.transactions) == 1

    def test_move_account(self):
        """Test swapping with a neighbour and ignoring moves off either end."""
        snapshot = reset_snapshot()
        moved = move_account(snapshot, 1, MoveDirection.UP)
        assert [a.id for a in moved.accounts] == ["acc_2", "acc_1", "acc_3"]
        moved = move_account(snapshot, 1, MoveDirection.DOWN)
        assert [a.id for a in moved.accounts] == ["acc_1", "acc_3", "acc_2"]
        assert move_account(snapshot, 0, MoveDirection.UP) is snapshot
        assert move_account(snapshot, 2, MoveDirection.DOWN) is snapshot

    def test_reorder_account(self):
        """Test drag-and-drop reordering."""
        snapshot = reset_snapshot()
        assert [a.id for a in reorder_account(snapshot, 0, 2).accounts] == ["acc_2", "acc_3", "acc_1"]
        assert [a.id for a in reorder_account(snapshot, 2, 0).accounts] == ["acc_3", "acc_1", "acc_2"]
        assert reorder_account(snapshot, 5, 0) is snapshot

    def test_merge_imported(self):
        """Test that imported transactions are appended."""
        snapshot = reset_snapshot().model_copy(update={"transactions": [tx("a")]})
        merged = merge_imported(snapshot, [tx("b")], snapshot.accounts)
        assert [t.id for t in merged.transactions] == ["a", "b"]


class TestWholeState:
    """Tests for reset and theme."""

    def test_reset_snapshot(self):
        """Test a fresh ledger."""
        snapshot = reset_snapshot()
        assert [a.id for a in snapshot.accounts] == ["acc_1", "acc_2", "acc_3"]
        assert snapshot.transactions == []
        assert snapshot.theme == Theme.DEFAULT

    def test_set_theme(self):
        """Test changing the theme."""
        assert set_theme(reset_snapshot(), Theme.COFFEE).theme == Theme.COFFEE


class TestQueries:
    """Tests for filtering, sorting and summaries."""

    transactions = [
        tx("t1", "2024-05-01", 120, description="Lunch", location="台北"),
        tx("t2", "2024-05-10", 30000, TransactionType.INCOME, "cat_salary", "May pay"),
        tx("t3", "2024-04-20", 80, category="cat_transport"),
        tx("t4", "2024-05-15", 500, TransactionType.TRANSFER, "cat_transfer"),
        tx("t5", "2024-05-20", 60, category="cat_food"),
    ]

    def ids(self, transactions):
        return [t.id for t in transactions]

    def test_search_matches_description_location_category(self):
        """Test free-text search over several fields."""
        assert self.ids(filter_transactions(self.transactions, TransactionFilter(search="lunch"))) == ["t1"]
        assert self.ids(filter_transactions(self.transactions, TransactionFilter(search="台北"))) == ["t1"]
        assert self.ids(filter_transactions(self.transactions, TransactionFilter(search="交通"))) == ["t3"]

    def test_date_type_category_amount_filters(self):
        """Test the structured filters together."""
        criteria = TransactionFilter(
            start_date="2024-05-01", end_date="2024-05-31",
            type=TransactionType.EXPENSE, min_amount=100,
        )
        assert self.ids(filter_transactions(self.transactions, criteria)) == ["t1"]
        by_category = TransactionFilter(category_id="cat_food", max_amount=100)
        assert self.ids(filter_transactions(self.transactions, by_category)) == ["t5"]

    def test_empty_filter_keeps_everything(self):
        """Test that a blank filter changes nothing."""
        assert len(filter_transactions(self.transactions, TransactionFilter())) == 5

    def test_sort(self):
        """Test sorting by date and amount."""
        assert self.ids(sort_transactions(self.transactions)) == ["t5", "t4", "t2", "t1", "t3"]
        by_amount = sort_transactions(self.transactions, SortKey.AMOUNT, SortDirection.ASC)
        assert self.ids(by_amount) == ["t5", "t3", "t1", "t4", "t2"]

    def test_month_summary(self):
        """Test monthly totals; transfers count as neither side."""
        summary = month_summary(self.transactions, "2024-05")
        assert summary.income == 30000
        assert summary.expense == 180
        assert summary.net == 29820
        assert summary.expense_by_category == [("餐飲", 180)]
        assert [t.id for t in summary.transactions] == ["t5", "t4", "t2", "t1"]

    def test_month_summary_empty(self):
        """Test a month without data."""
        summary = month_summary(self.transactions, "2023-01")
        assert not summary.has_data
        assert summary.expense_by_category == []

    def test_shift_month(self):
        """Test month navigation across year boundaries."""
        assert shift_month("2024-01", -1) == "2023-12"
        assert shift_month("2024-12", 1) == "2025-01"
        assert shift_month("2024-05", 0) == "2024-05"
