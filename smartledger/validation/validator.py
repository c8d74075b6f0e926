"""
Snapshot Integrity Validator

The ledger tolerates imperfect data instead of refusing to load it: a
transfer without a destination still debits its source, a transaction
pointing at a deleted account simply contributes nothing, a corrupt amount
is skipped. Those fallbacks keep the books usable, but the user should
hear about them. This module finds them.

Checks run in two groups:

RECORD CHECKS (one transaction or template at a time):
- Transfer without a destination account
- Transfer whose source and destination are the same account
- References to accounts that do not exist
- Amounts that are not numbers
- Dates that are not ISO calendar dates

STRUCTURAL CHECKS (the snapshot as a whole):
- Duplicate account ids (error: balances become ambiguous)
- Duplicate transaction ids

IMPORTANT: Validation NEVER fixes anything and NEVER raises.
It reports issues for the caller to show.
"""

from typing import Iterable, Optional

from smartledger.logging_config import get_logger
from smartledger.models.ledger import (
    LedgerSnapshot,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from smartledger.models.validation import ValidationIssue, ValidationResult


logger = get_logger(__name__)


class LedgerValidator:
    """Checks a LedgerSnapshot for data-integrity problems."""

    def validate(self, snapshot: LedgerSnapshot) -> ValidationResult:
        account_ids = {account.id for account in snapshot.accounts}
        issues: list[ValidationIssue] = []

        issues.extend(self._check_accounts(snapshot))
        for tx in snapshot.transactions:
            issues.extend(self._check_transaction(tx, account_ids))
        for template in snapshot.recurring_transactions:
            issues.extend(self._check_template(template, account_ids))
        issues.extend(self._check_duplicate_transaction_ids(snapshot.transactions))

        result = ValidationResult(issues=issues)
        if issues:
            logger.info(
                "snapshot_validated",
                errors=result.error_count,
                warnings=result.warning_count,
            )
        return result

    def _check_accounts(self, snapshot: LedgerSnapshot) -> list[ValidationIssue]:
        issues = []
        seen: set[str] = set()
        for account in snapshot.accounts:
            if account.id in seen:
                issues.append(ValidationIssue(
                    field="id",
                    issue_type="duplicate",
                    message=f"Account id '{account.id}' is used by more than one account",
                    severity="error",
                    record_id=account.id,
                ))
            seen.add(account.id)
        return issues

    def _check_transaction(self, tx: Transaction, account_ids: set[str]) -> list[ValidationIssue]:
        issues = self._check_references(
            tx.id, tx.type, tx.account_id, tx.to_account_id, account_ids
        )

        if tx.numeric_amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount '{tx.amount}' is not a number; it is left out of balances",
                severity="warning",
                record_id=tx.id,
            ))

        if tx.parsed_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Date '{tx.date}' is not a YYYY-MM-DD date",
                severity="warning",
                record_id=tx.id,
            ))

        return issues

    def _check_template(
        self,
        template: RecurringTransaction,
        account_ids: set[str],
    ) -> list[ValidationIssue]:
        issues = self._check_references(
            template.id, template.type, template.account_id,
            template.to_account_id, account_ids,
        )
        if template.is_dormant:
            issues.append(ValidationIssue(
                field="endDate",
                issue_type="dormant",
                message="Recurring entry has ended and will not fire again",
                severity="info",
                record_id=template.id,
            ))
        return issues

    def _check_references(
        self,
        record_id: str,
        tx_type: TransactionType,
        account_id: str,
        to_account_id: Optional[str],
        account_ids: set[str],
    ) -> list[ValidationIssue]:
        issues = []

        if account_id not in account_ids:
            issues.append(ValidationIssue(
                field="accountId",
                issue_type="dangling_reference",
                message=f"Account '{account_id}' does not exist; this entry affects no balance",
                severity="warning",
                record_id=record_id,
            ))

        if tx_type != TransactionType.TRANSFER:
            return issues

        if not to_account_id:
            issues.append(ValidationIssue(
                field="toAccountId",
                issue_type="missing",
                message="Transfer has no destination; only the source account is debited",
                severity="warning",
                record_id=record_id,
            ))
        elif to_account_id == account_id:
            issues.append(ValidationIssue(
                field="toAccountId",
                issue_type="same_account",
                message="Transfer source and destination are the same account",
                severity="warning",
                record_id=record_id,
            ))
        elif to_account_id not in account_ids:
            issues.append(ValidationIssue(
                field="toAccountId",
                issue_type="dangling_reference",
                message=f"Destination account '{to_account_id}' does not exist",
                severity="warning",
                record_id=record_id,
            ))

        return issues

    def _check_duplicate_transaction_ids(
        self,
        transactions: Iterable[Transaction],
    ) -> list[ValidationIssue]:
        issues = []
        seen: set[str] = set()
        for tx in transactions:
            if tx.id in seen:
                issues.append(ValidationIssue(
                    field="id",
                    issue_type="duplicate",
                    message=f"Transaction id '{tx.id}' appears more than once",
                    severity="warning",
                    record_id=tx.id,
                ))
            seen.add(tx.id)
        return issues
