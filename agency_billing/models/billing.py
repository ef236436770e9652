"""Billing models: quotations, invoices, their line items and business settings.

Supports:
- Quotations with validity window and conversion to invoice
- Invoices with payment tracking and balance due
- Ordered line items replaced as a whole on every save
- A singleton BusinessSettings row describing the issuing company
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agency_billing.database import Base
from agency_billing.db_types import UUIDType, MoneyType, PercentType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DiscountType(str, Enum):
    """How discount_value is interpreted."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class QuotationStatus(str, Enum):
    """Quotation status enumeration."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    """Invoice status enumeration."""
    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PricingMixin:
    """Client block and pricing block shared by quotations and invoices."""

    # Client
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_business_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    client_phone: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    client_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    client_address: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    # Pricing (derived by the calculator, stored as computed)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_type: Mapped[str] = mapped_column(
        String(20),
        default=DiscountType.PERCENTAGE.value,
        nullable=False,
        comment="percentage, fixed"
    )
    discount_value: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    taxable_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_percentage: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("18"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Terms
    payment_terms: Mapped[str] = mapped_column(Text, default="", nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )


class Quotation(PricingMixin, Base):
    """Proposal sent to a client, valid for a fixed number of days."""
    __tablename__ = "quotations"
    __table_args__ = (
        Index("ix_quotations_quotation_date", "quotation_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    quotation_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique quotation number e.g., QT-2026-0001"
    )
    quotation_date: Mapped[date] = mapped_column(Date, nullable=False)
    validity_days: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=QuotationStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="draft, sent, accepted, rejected, expired"
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Conversion
    converted_to_invoice: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="Invoice created from this quotation"
    )

    items: Mapped[List["QuotationItem"]] = relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuotationItem.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Quotation(number='{self.quotation_number}', status='{self.status}')>"


class QuotationItem(Base):
    """Quotation line item."""
    __tablename__ = "quotation_items"
    __table_args__ = (
        UniqueConstraint("quotation_id", "sort_order", name="uq_quotation_items_sort_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    quotation_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="quantity x rate")
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    quotation: Mapped["Quotation"] = relationship("Quotation", back_populates="items")


class Invoice(PricingMixin, Base):
    """Billable claim against a client, optionally converted from a quotation."""
    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_invoice_date", "invoice_date"),
        Index("ix_invoices_due_date", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique invoice number e.g., INV-2026-0001"
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Link to quotation
    quotation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    quotation_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Payment Status
    amount_paid: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    balance_due: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=InvoiceStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="draft, sent, pending, paid, overdue, cancelled"
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceItem.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Invoice(number='{self.invoice_number}', status='{self.status}')>"


class InvoiceItem(Base):
    """Invoice line item."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "sort_order", name="uq_invoice_items_sort_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="quantity x rate")
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")


class BusinessSettings(Base):
    """Issuing company details. Exactly one logical row exists."""
    __tablename__ = "business_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    company_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    company_address: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    company_phone: Mapped[str] = mapped_column(String(30), default="", nullable=False)
    company_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    company_website: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    currency: Mapped[str] = mapped_column(String(10), default="₹", nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Tax
    tax_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, comment="GSTIN / VAT ID")
    tax_percentage: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("18"), nullable=False)
    enable_tax: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    enable_discount: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Defaults for new documents
    default_payment_terms: Mapped[str] = mapped_column(
        Text,
        default="50% advance, balance on delivery",
        nullable=False
    )
    default_validity_days: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    default_due_days: Mapped[int] = mapped_column(Integer, default=15, nullable=False)

    # Bank / payment details
    bank_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_ifsc: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    upi_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<BusinessSettings(company='{self.company_name}')>"
