"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The treasurer can view and fix data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a club ledger is small)
- No transactions (services order their writes and revert by hand)
- Limited query capabilities (we filter in Python)

One worksheet per table, one row per record. Row 1 holds the field
names, so columns may be reordered by hand without breaking reads.
Structured fields (lists, nested models, undo data) are JSON cells.
"""

import json
from typing import Any, Optional, Union, get_args, get_origin
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clubdues.config import GoogleSheetsSettings, get_settings
from clubdues.models.audit import LogEntry
from clubdues.models.bill import PayableBill
from clubdues.models.ledger import (
    Account,
    Category,
    Payee,
    Project,
    Tag,
    Transaction,
)
from clubdues.models.member import Leave, Member, Payment
from clubdues.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    LogRepository,
    ModelT,
    NotFoundError,
    Repositories,
    Repository,
    SchemaUnavailableError,
    StorageError,
)


logger = structlog.get_logger()


# =============================================================================
# ROW CODEC
# =============================================================================

def _is_text_field(model: type[BaseModel], column: str) -> bool:
    annotation = model.model_fields[column].annotation
    if annotation is str:
        return True
    if get_origin(annotation) is Union:
        args = [a for a in get_args(annotation) if a is not type(None)]
        return args == [str]
    return False


def record_to_row(record: BaseModel, columns: list[str]) -> list[str]:
    """Convert a record to a spreadsheet row in the given column order."""
    data = record.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, str):
            row.append(value)
        else:
            row.append(json.dumps(value))
    return row


def row_to_record(model: type[ModelT], header: list[str], row: list[str]) -> ModelT:
    """
    Convert a spreadsheet row back to a record.

    Empty cells fall back to the field default. JSON is only decoded for
    non-text fields, so a description starting with "[" stays a string.
    Everything else is left to pydantic's lax parsing.
    """
    data: dict[str, Any] = {}
    for column, cell in zip(header, row):
        if column not in model.model_fields or cell == "":
            continue
        if cell[:1] in ("[", "{") and not _is_text_field(model, column):
            data[column] = json.loads(cell)
        else:
            data[column] = cell
    return model.model_validate(data)


# =============================================================================
# CLIENT
# =============================================================================

class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
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

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        create_missing: bool = True,
    ) -> gspread.Worksheet:
        """
        Get a worksheet, creating it with a header row when allowed.

        Raises:
            SchemaUnavailableError: If the sheet is missing and may not be created
        """
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if not create_missing:
                raise SchemaUnavailableError(f"Worksheet not found: {title}")
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", worksheet=title)
            return sheet


# =============================================================================
# REPOSITORIES
# =============================================================================

class GoogleSheetsRepository(Repository[ModelT]):
    """
    Google Sheets implementation of one table.

    Rows are located by the id in the "id" column.
    """

    def __init__(
        self,
        model: type[ModelT],
        sheet_name: str,
        client: Optional[GoogleSheetsClient] = None,
        create_missing: bool = True,
    ):
        super().__init__(model)
        self._sheet_name = sheet_name
        self._client = client or GoogleSheetsClient()
        self._create_missing = create_missing
        self._columns = list(model.model_fields)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._sheet_name, self._columns, self._create_missing
        )

    def _read(self) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._sheet()
        values = sheet.get_all_values()
        header = values[0] if values else list(self._columns)
        return sheet, header, values[1:]

    def _parse_rows(self, header: list[str], rows: list[list[str]]) -> list[ModelT]:
        records = []
        for index, row in enumerate(rows, start=2):
            if not any(row):
                continue
            try:
                records.append(row_to_record(self.model, header, row))
            except (ValidationError, ValueError) as e:
                logger.warning(
                    "sheet_row_skipped",
                    worksheet=self._sheet_name,
                    row=index,
                    error=str(e),
                )
        return records

    @staticmethod
    def _find_row(header: list[str], rows: list[list[str]], record_id: UUID) -> Optional[int]:
        """1-based sheet row number of the record, or None."""
        id_col = header.index("id")
        for idx, row in enumerate(rows, start=2):
            if len(row) > id_col and row[id_col] == str(record_id):
                return idx
        return None

    async def get(self, record_id: UUID) -> Optional[ModelT]:
        try:
            _, header, rows = self._read()
            row_number = self._find_row(header, rows, record_id)
            if row_number is None:
                return None
            return row_to_record(self.model, header, rows[row_number - 2])
        except (SchemaUnavailableError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {self.table}: {e}")

    async def list_all(self) -> list[ModelT]:
        try:
            _, header, rows = self._read()
            return self._parse_rows(header, rows)
        except (SchemaUnavailableError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {self.table}: {e}")

    @retry(
        retry=retry_if_not_exception_type((DuplicateError, SchemaUnavailableError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert(self, record: ModelT) -> ModelT:
        try:
            sheet, header, rows = self._read()
            if self._find_row(header, rows, record.id) is not None:
                raise DuplicateError(f"{self.table} {record.id} already exists")
            sheet.append_row(record_to_row(record, header), value_input_option="RAW")
            return record
        except (DuplicateError, SchemaUnavailableError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {self.table}: {e}")

    async def update(self, record: ModelT) -> ModelT:
        try:
            sheet, header, rows = self._read()
            row_number = self._find_row(header, rows, record.id)
            if row_number is None:
                raise NotFoundError(f"{self.table} {record.id} not found")

            # RAW: cells keep the exact encoded text
            sheet.update(
                range_name=rowcol_to_a1(row_number, 1),
                values=[record_to_row(record, header)],
                value_input_option="RAW",
            )
            return record
        except (NotFoundError, SchemaUnavailableError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self.table}: {e}")

    async def delete(self, record_id: UUID) -> None:
        try:
            sheet, header, rows = self._read()
            row_number = self._find_row(header, rows, record_id)
            if row_number is None:
                raise NotFoundError(f"{self.table} {record_id} not found")
            sheet.delete_rows(row_number)
        except (NotFoundError, SchemaUnavailableError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {self.table}: {e}")


class GoogleSheetsLogRepository(LogRepository):
    """
    Google Sheets implementation of audit log storage.

    Log entries are append-only, apart from the undone marker.
    """

    def __init__(self, sheet_name: str, client: Optional[GoogleSheetsClient] = None):
        self._rows = GoogleSheetsRepository(LogEntry, sheet_name, client)

    async def append(self, entry: LogEntry) -> LogEntry:
        return await self._rows.insert(entry)

    async def get(self, entry_id: UUID) -> Optional[LogEntry]:
        return await self._rows.get(entry_id)

    async def list_recent(self, limit: int = 100) -> list[LogEntry]:
        entries = await self._rows.list_all()
        entries = sorted(reversed(entries), key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    async def update_description(self, entry_id: UUID, description: str) -> LogEntry:
        entry = await self._rows.require(entry_id)
        return await self._rows.update(
            entry.model_copy(update={"description": description})
        )


def create_sheets_repositories(
    client: Optional[GoogleSheetsClient] = None,
) -> Repositories:
    """
    Build every repository over one spreadsheet.

    The leaves sheet is optional: it is only created automatically when
    auto_create_optional_sheets is set.
    """
    client = client or GoogleSheetsClient()
    s = client.settings
    return Repositories(
        members=GoogleSheetsRepository(Member, s.members_sheet_name, client),
        leaves=GoogleSheetsRepository(
            Leave,
            s.leaves_sheet_name,
            client,
            create_missing=s.auto_create_optional_sheets,
        ),
        payments=GoogleSheetsRepository(Payment, s.payments_sheet_name, client),
        transactions=GoogleSheetsRepository(Transaction, s.transactions_sheet_name, client),
        bills=GoogleSheetsRepository(PayableBill, s.bills_sheet_name, client),
        accounts=GoogleSheetsRepository(Account, s.accounts_sheet_name, client),
        categories=GoogleSheetsRepository(Category, s.categories_sheet_name, client),
        payees=GoogleSheetsRepository(Payee, s.payees_sheet_name, client),
        tags=GoogleSheetsRepository(Tag, s.tags_sheet_name, client),
        projects=GoogleSheetsRepository(Project, s.projects_sheet_name, client),
        logs=GoogleSheetsLogRepository(s.logs_sheet_name, client),
    )
