from agency_billing.models.billing import (
    DiscountType,
    QuotationStatus,
    InvoiceStatus,
    Quotation,
    QuotationItem,
    Invoice,
    InvoiceItem,
    BusinessSettings,
)
from agency_billing.models.document_sequence import DocumentSequence, DocumentType
from agency_billing.models.user import UserRole, AppRole

__all__ = [
    "DiscountType",
    "QuotationStatus",
    "InvoiceStatus",
    "Quotation",
    "QuotationItem",
    "Invoice",
    "InvoiceItem",
    "BusinessSettings",
    "DocumentSequence",
    "DocumentType",
    "UserRole",
    "AppRole",
]
