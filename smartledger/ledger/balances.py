"""
Balance Ledger

Balances are derived, never stored. Every call replays the full
transaction log from each account's initial balance, so a cached total
can never drift from the log. The replay is O(n) and order-independent.
"""

from typing import Iterable, Mapping

from smartledger.models.ledger import Account, Transaction, TransactionType


def compute_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> dict[str, int]:
    """
    Compute the current balance of every account.

    - INCOME adds to `account_id`, EXPENSE subtracts from it.
    - TRANSFER subtracts from `account_id` and adds to `to_account_id`.
      A transfer without a destination still debits its source.
    - Transactions whose amount is not a number are skipped.
    - Contributions to ids that are not in `accounts` are ignored; the
      integrity validator reports them.

    Every account appears in the result, including ones with no
    transactions.
    """
    balances = {account.id: account.initial_balance for account in accounts}

    for tx in transactions:
        amount = tx.numeric_amount
        if amount is None:
            continue

        if tx.type == TransactionType.INCOME:
            _apply(balances, tx.account_id, amount)
        elif tx.type == TransactionType.EXPENSE:
            _apply(balances, tx.account_id, -amount)
        elif tx.type == TransactionType.TRANSFER:
            _apply(balances, tx.account_id, -amount)
            if tx.to_account_id:
                _apply(balances, tx.to_account_id, amount)

    return balances


def _apply(balances: dict[str, int], account_id: str, delta: int) -> None:
    if account_id in balances:
        balances[account_id] += delta


def total_balance(balances: Mapping[str, int]) -> int:
    """Net worth across all accounts."""
    return sum(balances.values())


def account_transactions(
    account_id: str,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Transactions touching an account on either side, newest first."""
    touching = [
        tx for tx in transactions
        if tx.account_id == account_id or tx.to_account_id == account_id
    ]
    touching.sort(key=lambda tx: tx.date, reverse=True)
    return touching


def transfers_missing_destination(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Transfers that only debit their source. A data-integrity warning, not an error."""
    return [
        tx for tx in transactions
        if tx.type == TransactionType.TRANSFER and not tx.to_account_id
    ]
