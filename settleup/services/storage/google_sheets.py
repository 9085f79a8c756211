"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets can back the key-value store because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each key gets its own worksheet. Row 1 is a header, every following row
holds one JSON-encoded array element in column A.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (a whole collection is rewritten on every set)
- Every read fetches the full sheet
"""

import json
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from settleup.config import get_settings
from settleup.services.storage.interface import (
    ConnectionError,
    KeyValueStore,
    StorageError,
)


HEADER_ROW = ["record_json"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

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
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def find_worksheet(self, title: str) -> Optional[gspread.Worksheet]:
        """Get a worksheet by title, or None if it doesn't exist yet."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            return None

    def get_or_create_worksheet(self, title: str) -> gspread.Worksheet:
        """Get or create a worksheet with the record header."""
        sheet = self.find_worksheet(title)
        if sheet is None:
            sheet = self.get_spreadsheet().add_worksheet(
                title=title,
                rows=1000,
                cols=len(HEADER_ROW),
            )
            sheet.append_row(HEADER_ROW)
        return sheet


class GoogleSheetsKeyValueStore(KeyValueStore):
    """
    Google Sheets implementation of the key-value store.

    Storage keys are mapped to worksheet titles; unmapped keys use the key
    itself as the title.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        sheet_names: Optional[dict[str, str]] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._sheet_names = sheet_names or {}

    def _title_for(self, key: str) -> str:
        return self._sheet_names.get(key, key)

    @staticmethod
    def _rows_to_value(rows: list[list[str]]) -> list[Any]:
        """Decode data rows (header excluded) into array elements."""
        value = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            value.append(json.loads(row[0]))
        return value

    @staticmethod
    def _value_to_rows(value: list[Any]) -> list[list[str]]:
        return [[json.dumps(item, ensure_ascii=False)] for item in value]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get(self, key: str) -> Optional[list[Any]]:
        """Read every record row of the key's worksheet."""
        try:
            sheet = self._client.find_worksheet(self._title_for(key))
            if sheet is None:
                return None
            return self._rows_to_value(sheet.get_all_values()[1:])
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {key}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set(self, key: str, value: list[Any]) -> None:
        """
        Rewrite the key's worksheet with the given records.

        New rows overwrite the old ones in place and leftover rows are
        cleared afterwards, so a failed write leaves the previous records
        readable.
        """
        rows = [HEADER_ROW] + self._value_to_rows(value)
        try:
            sheet = self._client.get_or_create_worksheet(self._title_for(key))
            previous_count = len(sheet.get_all_values())
            if len(rows) > sheet.row_count:
                sheet.resize(rows=len(rows))
            sheet.update(range_name="A1", values=rows, value_input_option="RAW")
            if previous_count > len(rows):
                sheet.batch_clear([f"A{len(rows) + 1}:A{previous_count}"])
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write {key}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            sheet = self._client.find_worksheet(self._title_for(key))
            if sheet is None:
                return False
            self._client.get_spreadsheet().del_worksheet(sheet)
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {key}: {e}")
