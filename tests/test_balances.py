"""Tests for balance derivation."""

import random

from smartledger.ledger.balances import (
    account_transactions,
    compute_balances,
    total_balance,
    transfers_missing_destination,
)
from smartledger.models import Account, Transaction, TransactionType


def account(account_id, initial):
    return Account(id=account_id, name=account_id, initial_balance=initial)


def tx(tx_id, tx_type, amount, account_id, to_account_id=None, tx_date="2024-05-01"):
    return Transaction(
        id=tx_id, date=tx_date, amount=amount, type=tx_type,
        category="cat_other_exp", account_id=account_id, to_account_id=to_account_id,
    )


class TestComputeBalances:
    """Tests for compute_balances."""

    def test_expense_and_transfer_example(self):
        """Test the reference example from the ledger documentation."""
        accounts = [account("a1", 2000), account("a2", 150000)]
        transactions = [
            tx("t1", TransactionType.EXPENSE, 500, "a1"),
            tx("t2", TransactionType.TRANSFER, 1000, "a1", "a2"),
        ]
        assert compute_balances(accounts, transactions) == {"a1": 500, "a2": 151000}

    def test_income_adds(self):
        """Test that income increases the account."""
        balances = compute_balances(
            [account("a1", 0)], [tx("t1", TransactionType.INCOME, 300, "a1")]
        )
        assert balances == {"a1": 300}

    def test_every_account_present(self):
        """Test that accounts without transactions keep their opening balance."""
        balances = compute_balances([account("a1", 10), account("a2", -5000)], [])
        assert balances == {"a1": 10, "a2": -5000}

    def test_order_independent(self):
        """Test that shuffling the log does not change balances."""
        accounts = [account("a1", 1000), account("a2", 0), account("a3", 50)]
        transactions = [
            tx("t1", TransactionType.INCOME, 700, "a1"),
            tx("t2", TransactionType.EXPENSE, 120, "a2"),
            tx("t3", TransactionType.TRANSFER, 300, "a1", "a3"),
            tx("t4", TransactionType.TRANSFER, 40, "a3", "a2"),
            tx("t5", TransactionType.EXPENSE, 9, "a1"),
        ]
        expected = compute_balances(accounts, transactions)
        rng = random.Random(7)
        for _ in range(10):
            shuffled = transactions[:]
            rng.shuffle(shuffled)
            assert compute_balances(accounts, shuffled) == expected

    def test_transfer_preserves_total(self):
        """Test that a complete transfer leaves the net total unchanged."""
        accounts = [account("a1", 2000), account("a2", 150000)]
        before = total_balance(compute_balances(accounts, []))
        after = total_balance(compute_balances(
            accounts, [tx("t1", TransactionType.TRANSFER, 1234, "a1", "a2")]
        ))
        assert before == after

    def test_transfer_without_destination_debits_source(self):
        """Test the documented fallback for a transfer missing its destination."""
        balances = compute_balances(
            [account("a1", 100), account("a2", 0)],
            [tx("t1", TransactionType.TRANSFER, 40, "a1")],
        )
        assert balances == {"a1": 60, "a2": 0}

    def test_unknown_accounts_ignored(self):
        """Test that references to missing accounts contribute nothing."""
        balances = compute_balances(
            [account("a1", 100)],
            [
                tx("t1", TransactionType.EXPENSE, 40, "ghost"),
                tx("t2", TransactionType.TRANSFER, 30, "a1", "ghost"),
            ],
        )
        assert balances == {"a1": 70}

    def test_corrupt_amount_skipped(self):
        """Test that a non-numeric amount is left out."""
        balances = compute_balances(
            [account("a1", 100)],
            [tx("t1", TransactionType.EXPENSE, "abc", "a1")],
        )
        assert balances == {"a1": 100}

    def test_inputs_not_mutated(self):
        """Test that computing balances leaves accounts untouched."""
        accounts = [account("a1", 100)]
        compute_balances(accounts, [tx("t1", TransactionType.EXPENSE, 40, "a1")])
        assert accounts[0].initial_balance == 100


class TestBalanceQueries:
    """Tests for per-account views."""

    def test_account_transactions_both_sides_newest_first(self):
        """Test that an account sees transfers in and out, newest first."""
        transactions = [
            tx("t1", TransactionType.EXPENSE, 1, "a1", tx_date="2024-05-01"),
            tx("t2", TransactionType.TRANSFER, 2, "a2", "a1", tx_date="2024-05-03"),
            tx("t3", TransactionType.EXPENSE, 3, "a2", tx_date="2024-05-02"),
        ]
        assert [t.id for t in account_transactions("a1", transactions)] == ["t2", "t1"]

    def test_transfers_missing_destination(self):
        """Test that only destination-less transfers are reported."""
        transactions = [
            tx("t1", TransactionType.TRANSFER, 1, "a1"),
            tx("t2", TransactionType.TRANSFER, 1, "a1", "a2"),
            tx("t3", TransactionType.EXPENSE, 1, "a1"),
        ]
        assert [t.id for t in transfers_missing_destination(transactions)] == ["t1"]
