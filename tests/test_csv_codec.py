"""Tests for the CSV export/import contract."""

import pytest

from smartledger.ledger.csv_codec import (
    BOM,
    CSV_HEADER,
    InvalidCsvError,
    export_account_csv,
    export_csv,
    parse_csv,
    rows_by_month,
)
from smartledger.ledger.reconcile import reconcile
from smartledger.models import Transaction, TransactionType, initial_accounts


HEADER_LINE = "日期,類型,金額,分類,備註,地點,帳戶,轉入帳戶"


def tx(tx_id, tx_date, tx_type, amount, category, account_id, to_account_id=None,
       description="", location=None):
    return Transaction(
        id=tx_id, date=tx_date, amount=amount, type=tx_type, category=category,
        description=description, location=location,
        account_id=account_id, to_account_id=to_account_id,
    )


class TestExportCsv:
    """Tests for the full export."""

    def test_exact_bytes(self):
        """Test the exact text of a one-row export."""
        text = export_csv(
            [tx("t1", "2024-05-01", TransactionType.EXPENSE, 120, "cat_food", "acc_1", description="Lunch")],
            initial_accounts(),
        )
        assert text == (
            BOM + HEADER_LINE + "\n"
            + '"2024-05-01","支出","120","餐飲","Lunch","","現金錢包",""'
        )

    def test_header_only(self):
        """Test that an empty log still gets a header and no trailing newline."""
        assert export_csv([], initial_accounts()) == BOM + HEADER_LINE

    def test_quotes_and_commas_escaped(self):
        """Test that embedded quotes are doubled and commas stay in one field."""
        text = export_csv(
            [tx("t1", "2024-05-01", TransactionType.EXPENSE, 1, "cat_food", "acc_1",
                description='say "hi", ok')],
            initial_accounts(),
        )
        assert '"say ""hi"", ok"' in text

    def test_transfer_and_unknown_names(self):
        """Test transfer columns, unknown categories and unknown accounts."""
        text = export_csv(
            [
                tx("t1", "2024-05-02", TransactionType.TRANSFER, 1000, "cat_transfer", "acc_1", "acc_2"),
                tx("t2", "2024-05-03", TransactionType.INCOME, 5, "cat_custom", "ghost"),
            ],
            initial_accounts(),
        )
        lines = text.split("\n")
        assert lines[1] == '"2024-05-02","轉帳","1000","轉帳","","","現金錢包","銀行帳戶"'
        assert lines[2] == '"2024-05-03","收入","5","cat_custom","","","",""'


class TestExportAccountCsv:
    """Tests for the per-account statement."""

    def test_transfer_direction_labels(self):
        """Test 轉入/轉出 labels and the other-party column."""
        accounts = initial_accounts()
        transactions = [
            tx("t1", "2024-05-01", TransactionType.TRANSFER, 100, "cat_transfer", "acc_1", "acc_2"),
            tx("t2", "2024-05-02", TransactionType.TRANSFER, 50, "cat_transfer", "acc_2", "acc_1"),
            tx("t3", "2024-05-03", TransactionType.EXPENSE, 10, "cat_food", "acc_1"),
            tx("t4", "2024-05-04", TransactionType.EXPENSE, 99, "cat_food", "acc_3"),
        ]
        lines = export_account_csv(accounts[0], transactions, accounts).split("\n")
        assert lines[0] == BOM + "日期,類型,金額,分類,備註,地點,對方帳戶"
        assert lines[1] == '"2024-05-03","支出","10","餐飲","","","-"'
        assert lines[2] == '"2024-05-02","轉入","50","轉帳","","","銀行帳戶"'
        assert lines[3] == '"2024-05-01","轉出","100","轉帳","","","銀行帳戶"'
        assert len(lines) == 4


class TestParseCsv:
    """Tests for reading an export back."""

    def test_header_required(self):
        """Test that other files are rejected."""
        with pytest.raises(InvalidCsvError):
            parse_csv("date,amount\n2024-05-01,100")
        with pytest.raises(InvalidCsvError):
            parse_csv("")

    def test_bom_crlf_and_blank_lines(self):
        """Test BOM stripping, CRLF endings and blank-line skipping."""
        text = BOM + HEADER_LINE + "\r\n" + '"2024-05-01","支出"," 120 ","餐飲","a, b","","現金錢包",""' + "\r\n\r\n"
        assert parse_csv(text) == [["2024-05-01", "支出", "120", "餐飲", "a, b", "", "現金錢包", ""]]

    def test_header_without_bom(self):
        """Test that the BOM is optional."""
        assert parse_csv(HEADER_LINE) == []

    def test_oversized_field_rejected(self):
        """Test that a field beyond the csv field limit is an InvalidCsvError."""
        huge = "x" * 200_000
        text = HEADER_LINE + "\n" + f'"2024-05-01","支出","1","餐飲","{huge}","","現金錢包",""'
        with pytest.raises(InvalidCsvError):
            parse_csv(text)


class TestRoundTrip:
    """Tests for export -> parse -> reconcile."""

    def test_fields_survive(self):
        """Test that a round trip keeps every exported field."""
        accounts = initial_accounts()
        original = [
            tx("t1", "2024-05-01", TransactionType.EXPENSE, 120, "cat_food", "acc_1",
               description='Lunch, "set"', location="台北"),
            tx("t2", "2024-05-02", TransactionType.INCOME, 30000, "cat_other_inc", "acc_2"),
            tx("t3", "2024-05-03", TransactionType.TRANSFER, 1000, "cat_transfer", "acc_2", "acc_3"),
        ]
        result = reconcile(parse_csv(export_csv(original, accounts)), accounts)

        assert result.skipped == []
        assert result.created_accounts == []
        for before, after in zip(original, result.new_transactions):
            assert after.date == before.date
            assert after.amount == before.amount
            assert after.type == before.type
            assert after.category == before.category
            assert after.description == before.description
            assert after.location == before.location
            assert after.account_id == before.account_id
            assert after.to_account_id == before.to_account_id


class TestRowsByMonth:
    """Tests for spreadsheet page grouping."""

    def test_grouped_newest_first(self):
        """Test that each month page has the header and rows newest first."""
        pages = rows_by_month(
            [
                tx("t1", "2024-05-01", TransactionType.EXPENSE, 1, "cat_food", "acc_1"),
                tx("t2", "2024-04-30", TransactionType.EXPENSE, 2, "cat_food", "acc_1"),
                tx("t3", "2024-05-20", TransactionType.EXPENSE, 3, "cat_food", "acc_1"),
            ],
            initial_accounts(),
        )
        assert sorted(pages) == ["2024-04", "2024-05"]
        assert pages["2024-05"][0] == CSV_HEADER
        assert [row[0] for row in pages["2024-05"][1:]] == ["2024-05-20", "2024-05-01"]
        assert pages["2024-04"][1][2] == 2
