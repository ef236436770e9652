"""Pydantic schemas for quotations, invoices, payments and business settings."""
from datetime import datetime, date
from typing import Literal, Optional, List, Union
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, field_validator

from agency_billing.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from agency_billing.models.billing import DiscountType, QuotationStatus, InvoiceStatus


MAX_QUANTITY = 10_000
MAX_RATE = Decimal("100000000")
MAX_ITEMS = 500
# MAX_ITEMS x MAX_QUANTITY x MAX_RATE plus 100% tax never exceeds this; it also caps amount_paid
MAX_AMOUNT = Decimal("1000000000000000")


def _blank_email_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ==================== Line Items ====================

class LineItemIn(BaseCreateSchema):
    """One billable line as entered by the admin. amount is always recomputed."""
    service_name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY)
    rate: Decimal = Field(..., ge=0, le=MAX_RATE)

    @field_validator("description", mode="before")
    @classmethod
    def none_description_to_blank(cls, v):
        return "" if v is None else v


class LineItemRecord(BaseResponseSchema):
    """Stored line item."""
    id: UUID
    service_name: str
    description: str
    quantity: int = Field(..., gt=0)
    rate: Decimal = Field(..., ge=0)
    amount: Decimal = Field(..., ge=0)
    sort_order: int = Field(..., ge=0)


# ==================== Client / Pricing Blocks ====================

class ClientInfo(BaseCreateSchema):
    """Client block shared by quotation and invoice drafts."""
    client_name: str = Field(..., min_length=1, max_length=200)
    client_business_name: str = Field("", max_length=200)
    client_phone: str = Field("", max_length=20)
    client_email: Optional[EmailStr] = None
    client_address: str = Field("", max_length=500)

    @field_validator("client_email", mode="before")
    @classmethod
    def blank_email(cls, v):
        return _blank_email_to_none(v)

    @field_validator("client_business_name", "client_phone", "client_address", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return "" if v is None else v


class PricingOptions(BaseCreateSchema):
    """Discount and tax inputs. Unset toggles fall back to business settings."""
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(Decimal("0"), ge=0, le=MAX_RATE)
    discount_enabled: Optional[bool] = None
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_enabled: Optional[bool] = None


# ==================== Quotation Schemas ====================

class QuotationCreate(ClientInfo, PricingOptions):
    """Schema for creating a quotation."""
    quotation_date: Optional[date] = None
    validity_days: Optional[int] = Field(None, ge=1, le=365)
    payment_terms: Optional[str] = Field(None, max_length=2000)
    notes: str = Field("", max_length=5000)
    items: List[LineItemIn] = Field(..., min_length=1, max_length=MAX_ITEMS)


class QuotationUpdate(BaseUpdateSchema):
    """Partial quotation update. An empty or missing items list keeps the stored lines."""
    client_name: Optional[str] = Field(None, min_length=1, max_length=200)
    client_business_name: Optional[str] = Field(None, max_length=200)
    client_phone: Optional[str] = Field(None, max_length=20)
    client_email: Optional[Union[Literal[""], EmailStr]] = None
    client_address: Optional[str] = Field(None, max_length=500)

    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0, le=MAX_RATE)
    discount_enabled: Optional[bool] = None
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_enabled: Optional[bool] = None

    quotation_date: Optional[date] = None
    validity_days: Optional[int] = Field(None, ge=1, le=365)
    payment_terms: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=5000)
    items: Optional[List[LineItemIn]] = Field(None, max_length=MAX_ITEMS)

    expected_updated_at: Optional[datetime] = Field(
        None,
        description="updated_at the caller last saw; a mismatch rejects the save"
    )

    @field_validator("client_email", mode="before")
    @classmethod
    def blank_email(cls, v):
        # An explicit blank clears the stored email
        if isinstance(v, str) and not v.strip():
            return ""
        return v


class QuotationRecord(BaseResponseSchema):
    """Stored quotation with its ordered items."""
    id: UUID
    quotation_number: str
    quotation_date: date
    validity_days: int = Field(..., ge=1)
    valid_until: date

    client_name: str
    client_business_name: str
    client_phone: str
    client_email: str
    client_address: str

    items: List[LineItemRecord]

    subtotal: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    discount_enabled: bool
    taxable_amount: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    tax_enabled: bool
    grand_total: Decimal

    payment_terms: str
    notes: str
    status: QuotationStatus
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    converted_to_invoice: bool
    invoice_id: Optional[UUID] = None

    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class QuotationListResponse(BaseModel):
    """Paginated quotation list."""
    items: List[QuotationRecord]
    total: int
    limit: int
    offset: int


class ConvertQuotationRequest(BaseCreateSchema):
    """Optional dates for the invoice produced from a quotation."""
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None


# ==================== Invoice Schemas ====================

class InvoiceCreate(ClientInfo, PricingOptions):
    """Schema for creating an invoice directly (without a quotation)."""
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    amount_paid: Decimal = Field(Decimal("0"), ge=0, le=MAX_AMOUNT)
    payment_terms: Optional[str] = Field(None, max_length=2000)
    notes: str = Field("", max_length=5000)
    items: List[LineItemIn] = Field(..., min_length=1, max_length=MAX_ITEMS)


class InvoiceUpdate(BaseUpdateSchema):
    """Partial invoice update. An empty or missing items list keeps the stored lines."""
    client_name: Optional[str] = Field(None, min_length=1, max_length=200)
    client_business_name: Optional[str] = Field(None, max_length=200)
    client_phone: Optional[str] = Field(None, max_length=20)
    client_email: Optional[Union[Literal[""], EmailStr]] = None
    client_address: Optional[str] = Field(None, max_length=500)

    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0, le=MAX_RATE)
    discount_enabled: Optional[bool] = None
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_enabled: Optional[bool] = None

    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    amount_paid: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)
    payment_terms: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=5000)
    items: Optional[List[LineItemIn]] = Field(None, max_length=MAX_ITEMS)

    expected_updated_at: Optional[datetime] = None

    @field_validator("client_email", mode="before")
    @classmethod
    def blank_email(cls, v):
        if isinstance(v, str) and not v.strip():
            return ""
        return v


class InvoiceRecord(BaseResponseSchema):
    """Stored invoice with its ordered items."""
    id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date
    quotation_id: Optional[UUID] = None
    quotation_number: Optional[str] = None

    client_name: str
    client_business_name: str
    client_phone: str
    client_email: str
    client_address: str

    items: List[LineItemRecord]

    subtotal: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    discount_enabled: bool
    taxable_amount: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    tax_enabled: bool
    grand_total: Decimal

    amount_paid: Decimal = Field(..., ge=0)
    balance_due: Decimal = Field(..., ge=0)

    payment_terms: str
    notes: str
    status: InvoiceStatus
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class InvoiceListResponse(BaseModel):
    """Paginated invoice list."""
    items: List[InvoiceRecord]
    total: int
    limit: int
    offset: int


# ==================== Status / Payment ====================

class QuotationStatusChange(BaseCreateSchema):
    status: QuotationStatus


class InvoiceStatusChange(BaseCreateSchema):
    status: InvoiceStatus


class PaymentCreate(BaseCreateSchema):
    """Payment received against an invoice."""
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)


# ==================== Stats ====================

class StatusBucket(BaseModel):
    status: str
    count: int
    total: Decimal


class QuotationStats(BaseModel):
    """Dashboard numbers for quotations."""
    total_count: int
    total_value: Decimal
    by_status: List[StatusBucket]


class InvoiceStats(BaseModel):
    """Dashboard numbers for invoices."""
    total_count: int
    total_value: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    by_status: List[StatusBucket]


# ==================== Business Settings ====================

class BusinessSettingsUpdate(BaseUpdateSchema):
    """Upsert payload for the issuing company's settings."""
    company_name: Optional[str] = Field(None, max_length=200)
    company_address: Optional[str] = Field(None, max_length=500)
    company_phone: Optional[str] = Field(None, max_length=30)
    company_email: Optional[Union[Literal[""], EmailStr]] = None
    company_website: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = Field(None, max_length=500)

    currency: Optional[str] = Field(None, min_length=1, max_length=10)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)

    tax_number: Optional[str] = Field(None, max_length=30)
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    enable_tax: Optional[bool] = None
    enable_discount: Optional[bool] = None

    default_payment_terms: Optional[str] = Field(None, max_length=2000)
    default_validity_days: Optional[int] = Field(None, ge=1, le=365)
    default_due_days: Optional[int] = Field(None, ge=0, le=365)

    bank_name: Optional[str] = Field(None, max_length=200)
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_ifsc: Optional[str] = Field(None, max_length=20)
    upi_id: Optional[str] = Field(None, max_length=100)

    @field_validator("company_email", mode="before")
    @classmethod
    def blank_email(cls, v):
        if isinstance(v, str) and not v.strip():
            return ""
        return v

    @field_validator("currency_code")
    @classmethod
    def upper_currency_code(cls, v):
        return v.upper() if v else v


class BusinessSettingsRecord(BaseResponseSchema):
    """Issuing company settings as used for defaults and rendering."""
    id: Optional[UUID] = None
    company_name: str = ""
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    company_website: str = ""
    logo_url: Optional[str] = None

    currency: str = "₹"
    currency_code: str = "INR"

    tax_number: Optional[str] = None
    tax_percentage: Decimal = Decimal("18")
    enable_tax: bool = True
    enable_discount: bool = False

    default_payment_terms: str = "50% advance, balance on delivery"
    default_validity_days: int = 15
    default_due_days: int = 15

    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc: Optional[str] = None
    upi_id: Optional[str] = None

    updated_at: Optional[datetime] = None
