"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted backend because:
1. Household members can look at the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for a household)
- No transactions: multi-step writes (transaction + splits) are
  compensated by the finance service, not by the backend
- Limited query capabilities (we join and sort in Python)

Each entity lives in its own worksheet, one row per record, with a
header row. Amounts are written as plain decimal strings and parsed back
into Decimal by the models.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from homeledger.config import GoogleSheetsSettings, get_settings
from homeledger.models.ledger import Category, Member, Split, Transaction, utcnow
from homeledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from homeledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerDataSource,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


MEMBER_COLUMNS = ["id", "name", "created_at"]

CATEGORY_COLUMNS = ["id", "name", "icon", "created_at"]

TRANSACTION_COLUMNS = [
    "id",
    "type",
    "title",
    "amount",
    "payer_id",
    "receiver_id",
    "category_id",
    "date",
    "notes",
    "created_at",
]

SPLIT_COLUMNS = ["transaction_id", "member_id", "split_amount", "split_percentage"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _parse_timestamp(value: str) -> datetime:
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _find_rows(all_rows: list[list], value: str, column: int = 0) -> list[int]:
    """1-based sheet row numbers (header is row 1) whose column matches."""
    return [
        idx
        for idx, row in enumerate(all_rows[1:], start=2)
        if len(row) > column and row[column] == value
    ]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_members_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.members_sheet_name, MEMBER_COLUMNS, 100)

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.categories_sheet_name, CATEGORY_COLUMNS, 100)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 1000
        )

    def get_splits_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.splits_sheet_name, SPLIT_COLUMNS, 3000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsLedgerDataSource(LedgerDataSource):
    """
    Google Sheets implementation of the ledger data source.

    Reads are retried; writes are not, since an append that timed out
    may still have landed and retrying it would duplicate the row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- Row conversion ------------------------------------------------------

    @staticmethod
    def _member_to_row(member: Member) -> list:
        return [member.id, member.name, member.created_at.isoformat()]

    @staticmethod
    def _row_to_member(row: list) -> Member:
        return Member(
            id=_safe_get(row, 0),
            name=_safe_get(row, 1),
            created_at=_parse_timestamp(_safe_get(row, 2)),
        )

    @staticmethod
    def _category_to_row(category: Category) -> list:
        return [
            category.id,
            category.name,
            category.icon or "",
            category.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_category(row: list) -> Category:
        return Category(
            id=_safe_get(row, 0),
            name=_safe_get(row, 1),
            icon=_safe_get(row, 2) or None,
            created_at=_parse_timestamp(_safe_get(row, 3)),
        )

    @staticmethod
    def _transaction_to_row(transaction: Transaction) -> list:
        return [
            transaction.id,
            transaction.type.value,
            transaction.title or "",
            str(transaction.amount),
            transaction.payer_id,
            transaction.receiver_id or "",
            transaction.category_id or "",
            transaction.date.isoformat(),
            transaction.notes or "",
            transaction.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        return Transaction(
            id=_safe_get(row, 0),
            type=_safe_get(row, 1),
            title=_safe_get(row, 2) or None,
            amount=_safe_get(row, 3),
            payer_id=_safe_get(row, 4),
            receiver_id=_safe_get(row, 5) or None,
            category_id=_safe_get(row, 6) or None,
            date=_safe_get(row, 7),
            notes=_safe_get(row, 8) or None,
            created_at=_parse_timestamp(_safe_get(row, 9)),
        )

    @staticmethod
    def _split_to_row(transaction_id: str, split: Split) -> list:
        return [
            transaction_id,
            split.member_id,
            str(split.split_amount),
            str(split.split_percentage) if split.split_percentage is not None else "",
        ]

    @staticmethod
    def _row_to_split(row: list) -> Split:
        return Split(
            member_id=_safe_get(row, 1),
            split_amount=_safe_get(row, 2),
            split_percentage=_safe_get(row, 3) or None,
        )

    def _parse_rows(self, rows: list[list], parser, sheet: str) -> list:
        parsed = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                parsed.append(parser(row))
            except (ValueError, IndexError) as e:
                logger.warning("malformed_row_skipped", sheet=sheet, row_id=row[0], error=str(e))
        return parsed

    # -- Members -------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_members(self) -> list[Member]:
        try:
            rows = self._client.get_members_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to fetch members: {e}")
        members = self._parse_rows(rows, self._row_to_member, "members")
        members.sort(key=lambda m: m.created_at)
        return members

    async def insert_member(self, member: Member) -> Member:
        try:
            sheet = self._client.get_members_sheet()
            sheet.append_row(self._member_to_row(member), value_input_option="RAW")
            return member
        except Exception as e:
            raise StorageError(f"Failed to save member: {e}")

    async def update_member(self, member_id: str, name: str) -> None:
        try:
            sheet = self._client.get_members_sheet()
            all_rows = sheet.get_all_values()
            matches = _find_rows(all_rows, member_id)
            if not matches:
                raise NotFoundError(f"Member not found: {member_id}")
            idx = matches[0]
            member = self._row_to_member(all_rows[idx - 1]).model_copy(update={"name": name})
            sheet.update(range_name=f"A{idx}", values=[self._member_to_row(member)])
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update member: {e}")

    async def delete_member(self, member_id: str) -> None:
        try:
            sheet = self._client.get_members_sheet()
            for idx in reversed(_find_rows(sheet.get_all_values(), member_id)):
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete member: {e}")

    # -- Categories ----------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_categories(self) -> list[Category]:
        try:
            rows = self._client.get_categories_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to fetch categories: {e}")
        categories = self._parse_rows(rows, self._row_to_category, "categories")
        categories.sort(key=lambda c: c.name)
        return categories

    async def insert_category(self, category: Category) -> Category:
        try:
            sheet = self._client.get_categories_sheet()
            sheet.append_row(self._category_to_row(category), value_input_option="RAW")
            return category
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def insert_categories(self, categories: list[Category]) -> list[Category]:
        try:
            sheet = self._client.get_categories_sheet()
            sheet.append_rows(
                [self._category_to_row(c) for c in categories],
                value_input_option="RAW",
            )
            return list(categories)
        except Exception as e:
            raise StorageError(f"Failed to save categories: {e}")

    async def update_category(
        self,
        category_id: str,
        name: str,
        icon: Optional[str],
    ) -> None:
        try:
            sheet = self._client.get_categories_sheet()
            all_rows = sheet.get_all_values()
            matches = _find_rows(all_rows, category_id)
            if not matches:
                raise NotFoundError(f"Category not found: {category_id}")
            idx = matches[0]
            category = self._row_to_category(all_rows[idx - 1]).model_copy(
                update={"name": name, "icon": icon}
            )
            sheet.update(range_name=f"A{idx}", values=[self._category_to_row(category)])
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update category: {e}")

    async def delete_category(self, category_id: str) -> None:
        try:
            sheet = self._client.get_categories_sheet()
            for idx in reversed(_find_rows(sheet.get_all_values(), category_id)):
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    # -- Transactions --------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_transactions(self) -> list[Transaction]:
        try:
            transaction_rows = self._client.get_transactions_sheet().get_all_values()[1:]
            split_rows = self._client.get_splits_sheet().get_all_values()[1:]
            member_rows = self._client.get_members_sheet().get_all_values()[1:]
            category_rows = self._client.get_categories_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to fetch transactions: {e}")

        members = {
            m.id: m for m in self._parse_rows(member_rows, self._row_to_member, "members")
        }
        categories = {
            c.id: c for c in self._parse_rows(category_rows, self._row_to_category, "categories")
        }

        splits_by_transaction: dict[str, list[Split]] = {}
        for row in split_rows:
            if not row or not row[0]:
                continue
            try:
                split = self._row_to_split(row)
            except (ValueError, IndexError) as e:
                logger.warning("malformed_row_skipped", sheet="splits", row_id=row[0], error=str(e))
                continue
            splits_by_transaction.setdefault(row[0], []).append(split)

        transactions = []
        for t in self._parse_rows(transaction_rows, self._row_to_transaction, "transactions"):
            payer = members.get(t.payer_id)
            receiver = members.get(t.receiver_id) if t.receiver_id else None
            category = categories.get(t.category_id) if t.category_id else None
            transactions.append(t.model_copy(update={
                "splits": splits_by_transaction.get(t.id, []),
                "payer_name": payer.name if payer else None,
                "receiver_name": receiver.name if receiver else None,
                "category_name": category.name if category else None,
                "category_icon": category.icon if category else None,
            }))

        # Sort by date, then creation time, newest first
        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return transaction.model_copy(update={"splits": []})
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def insert_splits(self, transaction_id: str, splits: list[Split]) -> None:
        if not splits:
            return
        try:
            sheet = self._client.get_splits_sheet()
            sheet.append_rows(
                [self._split_to_row(transaction_id, s) for s in splits],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to save splits: {e}")

    async def update_transaction(
        self,
        transaction_id: str,
        fields: dict[str, Any],
    ) -> None:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            matches = _find_rows(all_rows, transaction_id)
            if not matches:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            idx = matches[0]
            current = self._row_to_transaction(all_rows[idx - 1])
            data = current.model_dump()
            data.update(fields)
            updated = Transaction(**data)
            sheet.update(range_name=f"A{idx}", values=[self._transaction_to_row(updated)])
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def replace_splits(self, transaction_id: str, splits: list[Split]) -> None:
        try:
            sheet = self._client.get_splits_sheet()
            # Delete bottom-up so earlier row numbers stay valid
            for idx in reversed(_find_rows(sheet.get_all_values(), transaction_id)):
                sheet.delete_rows(idx)
            if splits:
                sheet.append_rows(
                    [self._split_to_row(transaction_id, s) for s in splits],
                    value_input_option="RAW",
                )
        except Exception as e:
            raise StorageError(f"Failed to replace splits: {e}")

    async def delete_transaction(self, transaction_id: str) -> None:
        try:
            sheet = self._client.get_transactions_sheet()
            for idx in reversed(_find_rows(sheet.get_all_values(), transaction_id)):
                sheet.delete_rows(idx)

            splits_sheet = self._client.get_splits_sheet()
            for idx in reversed(_find_rows(splits_sheet.get_all_values(), transaction_id)):
                splits_sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=_parse_timestamp(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, IndexError):
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_event_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
