"""
Numbering counters for quotations and invoices.

One row per (document type, calendar year). The counter only ever moves
forward and never resets within a year; the service bumps it with a single
UPDATE ... RETURNING so two callers can never read the same value.

    quotation  ->  QT-2026-0001
    invoice    ->  INV-2026-0001
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agency_billing.database import Base
from agency_billing.db_types import UUIDType
from agency_billing.models.billing import utc_now


class DocumentType(str, Enum):
    QUOTATION = "quotation"
    INVOICE = "invoice"


class DocumentSequence(Base):
    """
    Last number handed out for a document type in a given year.

    With prefix "INV", year 2026 and current_number 42 the next reservation
    returns INV-2026-0043.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("document_type", "year", name="uq_document_sequences_type_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    document_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="quotation, invoice"
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(Integer, default=4, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    @staticmethod
    def format_number(prefix: str, year: int, number: int, padding_length: int) -> str:
        """("INV", 2026, 7, 4) -> INV-2026-0007."""
        return f"{prefix}-{year}-{number:0{padding_length}d}"

    def preview_next_number(self) -> str:
        """The number the next reservation would return; nothing is consumed."""
        return self.format_number(self.prefix, self.year, self.current_number + 1, self.padding_length)

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type}/{self.year} at {self.current_number}>"
