"""
CSV and spreadsheet row codec.

The export format is a fixed contract shared by the CSV download and the
per-month spreadsheet backup:

    <BOM>日期,類型,金額,分類,備註,地點,帳戶,轉入帳戶
    "2024-05-01","支出","120","餐飲","Lunch","","現金錢包",""

Every data field is double-quoted with embedded quotes doubled, rows are
separated by a bare newline, and amounts are whole numbers. Import
accepts only files whose header is exactly the one above.
"""

import csv
from io import StringIO
from typing import Iterable, Optional, Sequence, Union

from smartledger.ledger.categories import DEFAULT_REGISTRY, CategoryRegistry
from smartledger.models.ledger import Account, Transaction, TransactionType


BOM = "\ufeff"

CSV_HEADER = ["日期", "類型", "金額", "分類", "備註", "地點", "帳戶", "轉入帳戶"]
ACCOUNT_CSV_HEADER = ["日期", "類型", "金額", "分類", "備註", "地點", "對方帳戶"]

TYPE_LABELS = {
    TransactionType.INCOME: "收入",
    TransactionType.EXPENSE: "支出",
    TransactionType.TRANSFER: "轉帳",
}
TRANSFER_IN_LABEL = "轉入"
TRANSFER_OUT_LABEL = "轉出"

Cell = Union[str, int]


class InvalidCsvError(ValueError):
    """The file is not a ledger CSV export."""
    pass


def _account_names(accounts: Iterable[Account]) -> dict[str, str]:
    return {account.id: account.name for account in accounts}


def transaction_row(
    tx: Transaction,
    account_names: dict[str, str],
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> list[Cell]:
    """One transaction in export field order. Unknown account ids export as ''."""
    return [
        tx.date,
        TYPE_LABELS[tx.type],
        tx.numeric_amount if tx.numeric_amount is not None else tx.amount,
        registry.name_for(tx.category),
        tx.description,
        tx.location or "",
        account_names.get(tx.account_id, ""),
        account_names.get(tx.to_account_id, "") if tx.to_account_id else "",
    ]


def _write(header: Sequence[str], rows: Iterable[Sequence[Cell]]) -> str:
    output = StringIO()
    output.write(BOM)
    csv.writer(output, lineterminator="\n").writerow(header)
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if value is None else str(value) for value in row])
    # Rows are joined by newlines; there is no trailing one.
    return output.getvalue()[:-1]


def export_csv(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> str:
    """Export transactions in the order given."""
    names = _account_names(accounts)
    return _write(CSV_HEADER, (transaction_row(tx, names, registry) for tx in transactions))


def export_account_csv(
    account: Account,
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> str:
    """
    Statement for a single account, newest first.

    Transfers are labelled 轉入/轉出 from this account's point of view and
    the last column names the other account ('-' for non-transfers).
    """
    names = _account_names(accounts)
    touching = [
        tx for tx in transactions
        if tx.account_id == account.id or tx.to_account_id == account.id
    ]
    touching.sort(key=lambda tx: tx.date, reverse=True)

    rows = []
    for tx in touching:
        label = TYPE_LABELS[tx.type]
        other = "-"
        if tx.type == TransactionType.TRANSFER:
            incoming = tx.to_account_id == account.id
            label = TRANSFER_IN_LABEL if incoming else TRANSFER_OUT_LABEL
            other_id = tx.account_id if incoming else tx.to_account_id
            other = names.get(other_id, "") if other_id else ""
        amount = tx.numeric_amount
        rows.append([
            tx.date,
            label,
            amount if amount is not None else tx.amount,
            registry.name_for(tx.category),
            tx.description,
            tx.location or "",
            other,
        ])
    return _write(ACCOUNT_CSV_HEADER, rows)


def parse_csv(text: str) -> list[list[str]]:
    """
    Split an exported CSV into raw string rows (header excluded).

    Quoted commas, doubled quotes and CRLF line endings are handled; blank
    lines are dropped; every cell is whitespace-stripped.

    Raises InvalidCsvError if the header is not the export header or the
    file cannot be split into rows (e.g. a field over the csv field limit).
    """
    if text.startswith(BOM):
        text = text[len(BOM):]

    reader = csv.reader(StringIO(text))
    try:
        header: Optional[list[str]] = next(reader, None)
        if header is None or [cell.strip() for cell in header] != CSV_HEADER:
            raise InvalidCsvError(
                "File format not recognised: expected header " + ",".join(CSV_HEADER)
            )

        rows = []
        for raw in reader:
            row = [cell.strip() for cell in raw]
            if not any(row):
                continue
            rows.append(row)
    except csv.Error as e:
        raise InvalidCsvError(f"Malformed CSV at line {reader.line_num}: {e}") from e
    return rows


def rows_by_month(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    registry: CategoryRegistry = DEFAULT_REGISTRY,
) -> dict[str, list[list[Cell]]]:
    """
    Group transactions into spreadsheet pages keyed YYYY-MM.

    Each page starts with the export header followed by that month's rows,
    newest first, in the same field order as the CSV.
    """
    names = _account_names(accounts)
    grouped: dict[str, list[Transaction]] = {}
    for tx in transactions:
        grouped.setdefault(tx.month_key, []).append(tx)

    pages: dict[str, list[list[Cell]]] = {}
    for month, month_txs in grouped.items():
        month_txs.sort(key=lambda tx: tx.date, reverse=True)
        pages[month] = [list(CSV_HEADER)] + [
            transaction_row(tx, names, registry) for tx in month_txs
        ]
    return pages
