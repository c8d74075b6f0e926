"""
Google Sheets Backup Sync

DESIGN DECISION: The spreadsheet is a human-readable mirror of the
transaction log, not a database:
1. One worksheet per month, titled YYYY-MM
2. Each worksheet holds the CSV export header and that month's rows
3. A sync rewrites every month page that has transactions
4. A restore reads every page back as raw rows for the import reconciler

TRADEOFFS:
- Account balances, templates and the theme are not in the spreadsheet;
  the JSON snapshot remains the primary store.
- Rows carry display names, not ids, so a restore goes through the same
  reconciliation as a CSV import.

All gspread calls go through GoogleSheetsClient, which retries transient
API failures with tenacity.
"""

from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smartledger.config import get_settings
from smartledger.config.settings import GoogleSheetsSettings
from smartledger.logging_config import get_logger
from smartledger.services.storage.interface import (
    ConnectionError,
    NotFoundError,
    Row,
    SpreadsheetSyncInterface,
    StorageError,
)


logger = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]

# Columns A..H hold the eight export fields
PAGE_COLUMNS = 8
PAGE_RANGE = "A:H"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, finds the backup spreadsheet by name (or id
    when configured) and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def find_spreadsheet(self) -> Optional[gspread.Spreadsheet]:
        """The backup spreadsheet, or None if it does not exist yet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                if self._settings.spreadsheet_id:
                    self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
                else:
                    self._spreadsheet = client.open(self._settings.spreadsheet_name)
            except gspread.SpreadsheetNotFound:
                return None
        return self._spreadsheet

    def get_or_create_spreadsheet(self) -> gspread.Spreadsheet:
        spreadsheet = self.find_spreadsheet()
        if spreadsheet is None:
            logger.info("backup_spreadsheet_created", title=self._settings.spreadsheet_name)
            spreadsheet = self.connect().create(self._settings.spreadsheet_name)
            self._spreadsheet = spreadsheet
        return spreadsheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(NotFoundError),
        reraise=True,
    )
    def read_pages(self) -> dict[str, list[list[str]]]:
        spreadsheet = self.find_spreadsheet()
        if spreadsheet is None:
            raise NotFoundError(
                f"Backup spreadsheet not found: {self._settings.spreadsheet_name}"
            )
        return {
            worksheet.title: worksheet.get_all_values()
            for worksheet in spreadsheet.worksheets()
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def replace_page(self, title: str, rows: list[list]) -> None:
        """Clear columns A..H of a worksheet and write `rows` from A1."""
        spreadsheet = self.get_or_create_spreadsheet()
        try:
            worksheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            worksheet = spreadsheet.add_worksheet(
                title=title,
                rows=max(len(rows), 100),
                cols=PAGE_COLUMNS,
            )
        worksheet.batch_clear([PAGE_RANGE])
        worksheet.update(
            values=rows,
            range_name="A1",
            value_input_option="USER_ENTERED",
        )


class GoogleSheetsLedgerSync(SpreadsheetSyncInterface):
    """
    Google Sheets implementation of spreadsheet sync.

    Pages are keyed by worksheet title. Cell values are read back as the
    strings the sheet displays.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def read_all_rows(self) -> dict[str, list[list[str]]]:
        """Read every worksheet of the backup spreadsheet."""
        try:
            pages = self._client.read_pages()
        except (NotFoundError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to read backup spreadsheet: {e}")

        logger.info("backup_pages_read", pages=len(pages))
        return pages

    async def write_rows(self, sheet_key: str, rows: list[Row]) -> bool:
        """Replace one month page."""
        values = [["" if cell is None else cell for cell in row] for row in rows]
        try:
            self._client.replace_page(sheet_key, values)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write page {sheet_key}: {e}")

        logger.info("backup_page_written", sheet=sheet_key, rows=len(values))
        return True
