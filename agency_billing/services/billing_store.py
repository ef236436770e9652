"""
Billing store: the only code that talks to the database for billing data.

Every public method:
- checks the caller holds the admin capability before touching the database
- bounds each round trip with STORE_TIMEOUT_SECONDS
- maps backend failures to StoreError / StoreTimeoutError without leaking internals
- returns validated records, never ORM rows; an unexpected row shape is a StoreError

Write methods flush but never commit. Callers group writes with
``async with store.transaction():`` so multi-step operations commit or roll
back as a unit.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agency_billing.config import settings
from agency_billing.core.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    NotFoundError,
    StoreError,
    StoreTimeoutError,
)
from agency_billing.core.permissions import Caller
from agency_billing.models.billing import (
    BusinessSettings,
    Invoice,
    InvoiceItem,
    Quotation,
    QuotationItem,
    utc_now,
)
from agency_billing.schemas.billing import BusinessSettingsRecord, InvoiceRecord, QuotationRecord


logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    QUOTATION = "quotation"
    INVOICE = "invoice"


@dataclass(frozen=True)
class _DocumentTable:
    label: str
    model: Type[Any]
    item_model: Type[Any]
    number_column: str
    expiry_column: str
    record: Type[BaseModel]


TABLES: Dict[DocumentKind, _DocumentTable] = {
    DocumentKind.QUOTATION: _DocumentTable(
        label="Quotation",
        model=Quotation,
        item_model=QuotationItem,
        number_column="quotation_number",
        expiry_column="valid_until",
        record=QuotationRecord,
    ),
    DocumentKind.INVOICE: _DocumentTable(
        label="Invoice",
        model=Invoice,
        item_model=InvoiceItem,
        number_column="invoice_number",
        expiry_column="due_date",
        record=InvoiceRecord,
    ),
}

ITEM_FIELDS = ("service_name", "description", "quantity", "rate", "amount")


def escape_like(text: str) -> str:
    """Make %, _ and the escape character itself match literally in LIKE patterns."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive UTC; Postgres hands back aware values
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def same_instant(stored: datetime, expected: datetime) -> bool:
    return _as_naive_utc(stored) == _as_naive_utc(expected)


class BillingStore:
    """Persistence boundary for quotations, invoices, items and business settings."""

    def __init__(self, db: AsyncSession, caller: Caller, timeout: Optional[float] = None):
        self.db = db
        self.caller = caller
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS

    # ==================== Infrastructure ====================

    def require_admin(self) -> None:
        if not self.caller.is_admin:
            logger.warning(f"Billing access denied for user {self.caller.user_id}")
            raise AuthorizationError()

    async def _call(self, operation: str, awaitable):
        """Run one database round trip with the store timeout and error mapping."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Billing store {operation} timed out after {self.timeout}s")
            raise StoreTimeoutError(operation) from e
        except SQLAlchemyError as e:
            logger.error(f"Billing store {operation} failed: {e}")
            raise StoreError() from e

    @asynccontextmanager
    async def transaction(self):
        """Commit on success, roll back on any failure."""
        self.require_admin()
        try:
            yield self
            await self._call("commit", self.db.commit())
        except Exception:
            await self.db.rollback()
            raise

    def _to_record(self, kind: DocumentKind, row: Any):
        table = TABLES[kind]
        try:
            return table.record.model_validate(row)
        except PydanticValidationError as e:
            logger.error(f"Unexpected {table.label.lower()} row shape for {getattr(row, 'id', '?')}: {e}")
            raise StoreError(f"{table.label} data is malformed") from e

    @staticmethod
    def _as_uuid(kind_label: str, value: Union[uuid.UUID, str]) -> uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise NotFoundError(kind_label, value)

    async def _load(self, kind: DocumentKind, document_id: Union[uuid.UUID, str], for_update: bool = False):
        table = TABLES[kind]
        doc_id = self._as_uuid(table.label, document_id)
        query = (
            select(table.model)
            .options(selectinload(table.model.items))
            .where(table.model.id == doc_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self._call(f"load {kind.value}", self.db.execute(query))
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(table.label, doc_id)
        return row

    @staticmethod
    def _build_items(table: _DocumentTable, items: Sequence[Mapping[str, Any]]) -> List[Any]:
        # Position in the list is the display order
        return [
            table.item_model(
                sort_order=index,
                **{field: item[field] for field in ITEM_FIELDS},
            )
            for index, item in enumerate(items)
        ]

    # ==================== Documents ====================

    async def get_document(self, kind: DocumentKind, document_id: Union[uuid.UUID, str]):
        """Fetch a quotation or invoice with its ordered items."""
        self.require_admin()
        row = await self._load(kind, document_id)
        return self._to_record(kind, row)

    async def insert_document(
        self,
        kind: DocumentKind,
        header: Mapping[str, Any],
        items: Sequence[Mapping[str, Any]],
    ):
        """Insert a header row and its items. Items get sort_order = list index."""
        self.require_admin()
        table = TABLES[kind]

        row = table.model(**header)
        if row.created_by is None:
            row.created_by = self.caller.user_id
        row.items = self._build_items(table, items)
        self.db.add(row)
        await self._call(f"insert {kind.value}", self.db.flush())

        logger.info(f"Inserted {kind.value} {getattr(row, table.number_column)} with {len(items)} items")
        return await self.get_document(kind, row.id)

    async def update_document(
        self,
        kind: DocumentKind,
        document_id: Union[uuid.UUID, str],
        header: Mapping[str, Any],
        items: Optional[Sequence[Mapping[str, Any]]] = None,
        expected_updated_at: Optional[datetime] = None,
    ):
        """
        Update header fields and, when items is non-empty, replace all items.

        Replacement deletes every stored item and inserts the new list, so
        saving the same list twice leaves exactly one copy.
        """
        self.require_admin()
        table = TABLES[kind]
        row = await self._load(kind, document_id, for_update=expected_updated_at is not None)

        if expected_updated_at is not None and not same_instant(row.updated_at, expected_updated_at):
            logger.info(f"Stale save rejected for {kind.value} {row.id}")
            raise ConcurrencyConflictError(table.label)

        for key, value in header.items():
            setattr(row, key, value)
        row.updated_at = utc_now()

        if items:
            await self._replace_items(kind, row, items)

        await self._call(f"update {kind.value}", self.db.flush())
        return await self.get_document(kind, row.id)

    async def _replace_items(self, kind: DocumentKind, row: Any, items: Sequence[Mapping[str, Any]]) -> None:
        table = TABLES[kind]
        # Deletes must reach the database before the new rows reuse sort_order values
        row.items.clear()
        await self._call(f"clear {kind.value} items", self.db.flush())
        row.items.extend(self._build_items(table, items))

    async def delete_document(self, kind: DocumentKind, document_id: Union[uuid.UUID, str]) -> None:
        """Delete a document; its items go with it."""
        self.require_admin()
        row = await self._load(kind, document_id)

        if kind == DocumentKind.INVOICE:
            # Free the source quotation for a fresh conversion
            await self._call(
                "unlink quotation",
                self.db.execute(
                    update(Quotation)
                    .where(Quotation.invoice_id == row.id)
                    .values(invoice_id=None, converted_to_invoice=False, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                ),
            )

        await self._call(f"delete {kind.value}", self.db.delete(row))
        await self._call(f"delete {kind.value}", self.db.flush())
        logger.info(f"Deleted {kind.value} {row.id}")

    async def list_documents(
        self,
        kind: DocumentKind,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list, int]:
        """Newest first, optionally filtered by status and a client/number search."""
        self.require_admin()
        table = TABLES[kind]
        model = table.model

        filters = []
        if status:
            filters.append(model.status == str(getattr(status, "value", status)))
        if search and search.strip():
            pattern = f"%{escape_like(search.strip())}%"
            filters.append(or_(
                model.client_name.ilike(pattern, escape="\\"),
                model.client_business_name.ilike(pattern, escape="\\"),
                getattr(model, table.number_column).ilike(pattern, escape="\\"),
            ))

        count_query = select(func.count()).select_from(model).where(*filters)
        total_result = await self._call(f"count {kind.value}", self.db.execute(count_query))
        total = total_result.scalar() or 0

        query = (
            select(model)
            .options(selectinload(model.items))
            .where(*filters)
            .order_by(model.created_at.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._call(f"list {kind.value}", self.db.execute(query))
        rows = result.scalars().all()
        return [self._to_record(kind, row) for row in rows], total

    async def find_past_due(
        self,
        kind: DocumentKind,
        statuses: Iterable[str],
        today: date,
    ) -> list:
        """
        Documents in one of the statuses whose validity/due date is before today.

        Invoices must also still have a balance outstanding.
        """
        self.require_admin()
        table = TABLES[kind]
        model = table.model
        status_values = [str(getattr(s, "value", s)) for s in statuses]

        query = (
            select(model)
            .options(selectinload(model.items))
            .where(
                model.status.in_(status_values),
                getattr(model, table.expiry_column) < today,
            )
            .execution_options(populate_existing=True)
        )
        if kind == DocumentKind.INVOICE:
            query = query.where(model.balance_due > 0)

        result = await self._call(f"find past due {kind.value}", self.db.execute(query))
        return [self._to_record(kind, row) for row in result.scalars().all()]

    async def document_stats(self, kind: DocumentKind) -> List[Dict[str, Any]]:
        """Per-status count and totals."""
        self.require_admin()
        model = TABLES[kind].model

        columns = [
            model.status,
            func.count(model.id),
            func.coalesce(func.sum(model.grand_total), 0),
        ]
        if kind == DocumentKind.INVOICE:
            columns += [
                func.coalesce(func.sum(model.amount_paid), 0),
                func.coalesce(func.sum(model.balance_due), 0),
            ]

        query = select(*columns).group_by(model.status)
        result = await self._call(f"stats {kind.value}", self.db.execute(query))

        buckets = []
        for row in result.all():
            bucket = {
                "status": row[0],
                "count": int(row[1]),
                "total": Decimal(str(row[2])),
            }
            if kind == DocumentKind.INVOICE:
                bucket["paid"] = Decimal(str(row[3]))
                bucket["outstanding"] = Decimal(str(row[4]))
            buckets.append(bucket)
        return buckets

    # ==================== Business Settings ====================

    async def _business_settings_row(self) -> Optional[BusinessSettings]:
        result = await self._call(
            "load business settings",
            self.db.execute(
                select(BusinessSettings)
                .order_by(BusinessSettings.created_at)
                .limit(1)
                .execution_options(populate_existing=True)
            ),
        )
        return result.scalar_one_or_none()

    def _settings_record(self, row: Optional[BusinessSettings]) -> BusinessSettingsRecord:
        if row is None:
            return BusinessSettingsRecord()
        try:
            return BusinessSettingsRecord.model_validate(row)
        except PydanticValidationError as e:
            logger.error(f"Unexpected business settings row shape: {e}")
            raise StoreError("Business settings data is malformed") from e

    async def get_business_settings(self) -> BusinessSettingsRecord:
        """The singleton settings row, or defaults when none has been saved."""
        self.require_admin()
        return self._settings_record(await self._business_settings_row())

    async def upsert_business_settings(self, values: Mapping[str, Any]) -> BusinessSettingsRecord:
        """Create the settings row on first save, update it afterwards."""
        self.require_admin()
        row = await self._business_settings_row()
        if row is None:
            row = BusinessSettings()
            self.db.add(row)

        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = utc_now()

        await self._call("save business settings", self.db.flush())
        return self._settings_record(await self._business_settings_row())
