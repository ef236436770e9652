"""Behaviour shared by the quotation and invoice lifecycle services."""
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from agency_billing.core.exceptions import ValidationError
from agency_billing.models.billing import DiscountType
from agency_billing.schemas.billing import BusinessSettingsRecord, LineItemIn
from agency_billing.services.billing_calculator import Totals, line_amount, money, recompute
from agency_billing.services.billing_store import BillingStore, DocumentKind
from agency_billing.services.document_renderer import DocumentRenderer, RenderedDocument
from agency_billing.services.document_sequence_service import DocumentSequenceService


logger = logging.getLogger(__name__)

CLIENT_FIELDS = (
    "client_name",
    "client_business_name",
    "client_phone",
    "client_email",
    "client_address",
)
DUE_DATE_ERROR = "due_date: Due date cannot be before the invoice date"
PRICING_FIELDS = (
    "discount_type",
    "discount_value",
    "discount_enabled",
    "tax_percentage",
    "tax_enabled",
)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def normalize_items(items: Iterable[Any]) -> List[Dict[str, Any]]:
    """Validated items -> rows for the store, with amount derived from quantity x rate."""
    rows = []
    for item in items:
        rows.append({
            "service_name": item.service_name,
            "description": item.description or "",
            "quantity": int(item.quantity),
            "rate": money(item.rate),
            "amount": line_amount(item.quantity, item.rate),
        })
    return rows


def client_header(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Client block ready for storage; a missing email is stored blank."""
    header = {}
    for field in CLIENT_FIELDS:
        if field in values:
            value = values[field]
            header[field] = "" if value is None else str(value)
    return header


def pricing_errors(discount_type: Any, discount_value: Decimal, subtotal: Decimal) -> List[str]:
    """Cross-field pricing checks that a single field validator cannot express."""
    errors = []
    if DiscountType(_plain(discount_type)) == DiscountType.PERCENTAGE:
        if discount_value > 100:
            errors.append("discount_value: Percentage discount cannot exceed 100")
    elif discount_value > subtotal:
        errors.append("discount_value: Fixed discount cannot exceed the subtotal")
    return errors


_DECIMAL = TypeAdapter(Decimal)
_DATE = TypeAdapter(date)
_DISCOUNT_TYPE = TypeAdapter(DiscountType)
_ITEMS = TypeAdapter(List[LineItemIn])


def _parsed(adapter: TypeAdapter, value: Any) -> Any:
    if value is None:
        return None
    try:
        return adapter.validate_python(value)
    except PydanticValidationError:
        return None


def draft_errors(
    raw: Mapping[str, Any],
    failed: Set[str],
    default_discount_type: Optional[DiscountType] = DiscountType.PERCENTAGE,
) -> List[str]:
    """
    Pricing and date rules for a draft whose field validation already failed.

    Only fields that parsed on their own take part, so a broken field is
    never reported twice. A fixed discount is compared with the subtotal
    only when every item parsed. Partial updates pass
    default_discount_type=None since the stored type is not known yet.
    """
    errors: List[str] = []

    discount_value = None
    if not failed & {"discount_type", "discount_value"}:
        discount_value = _parsed(_DECIMAL, raw.get("discount_value"))
    discount_type = default_discount_type
    if raw.get("discount_type") is not None:
        discount_type = _parsed(_DISCOUNT_TYPE, raw["discount_type"])
    if discount_value is not None and discount_type is not None:
        if discount_type == DiscountType.PERCENTAGE:
            errors += pricing_errors(discount_type, discount_value, Decimal("0"))
        elif "items" not in failed:
            items = _parsed(_ITEMS, raw.get("items"))
            if items:
                subtotal = sum((row["amount"] for row in normalize_items(items)), Decimal("0"))
                errors += pricing_errors(discount_type, discount_value, subtotal)

    if not failed & {"invoice_date", "due_date"}:
        invoice_date = _parsed(_DATE, raw.get("invoice_date"))
        due_date = _parsed(_DATE, raw.get("due_date"))
        if invoice_date and due_date and due_date < invoice_date:
            errors.append(DUE_DATE_ERROR)

    return errors


def update_draft_errors(raw: Mapping[str, Any], failed: Set[str]) -> List[str]:
    return draft_errors(raw, failed, default_discount_type=None)


def supplied_fields(model) -> Dict[str, Any]:
    """Fields the caller actually sent on a partial update, minus explicit nulls."""
    return {
        key: value
        for key, value in model.model_dump(exclude_unset=True).items()
        if value is not None
    }


class BillingDocumentService:
    """Base for QuotationService and InvoiceService."""

    kind: DocumentKind
    label: str

    def __init__(
        self,
        store: BillingStore,
        numbering: Optional[DocumentSequenceService] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.numbering = numbering
        self._today = today or date.today

    # ==================== Reads ====================

    async def get(self, document_id: Union[uuid.UUID, str]):
        """Fetch one document with its items."""
        self.store.require_admin()
        return await self.store.get_document(self.kind, document_id)

    async def list_documents(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list, int]:
        """Newest first, with optional status filter and search."""
        self.store.require_admin()
        return await self.store.list_documents(
            self.kind, status=status, search=search, limit=limit, offset=offset
        )

    async def delete(self, document_id: Union[uuid.UUID, str]) -> None:
        """Delete a document; its items are removed with it."""
        self.store.require_admin()
        async with self.store.transaction():
            await self.store.delete_document(self.kind, document_id)
        logger.info(f"{self.label} {document_id} deleted")

    async def render_pdf(self, document_id: Union[uuid.UUID, str]) -> RenderedDocument:
        """Render the stored document as a PDF."""
        self.store.require_admin()
        record = await self.store.get_document(self.kind, document_id)
        business = await self.store.get_business_settings()
        renderer = DocumentRenderer(business)
        if self.kind == DocumentKind.QUOTATION:
            return renderer.render_quotation(record)
        return renderer.render_invoice(record)

    # ==================== Pricing ====================

    @staticmethod
    def _create_pricing(data, defaults: BusinessSettingsRecord) -> Dict[str, Any]:
        """Pricing options for a new document, falling back to business settings."""
        discount_value = money(data.discount_value)
        discount_enabled = data.discount_enabled
        if discount_enabled is None:
            discount_enabled = discount_value > 0 or defaults.enable_discount
        return {
            "discount_type": _plain(data.discount_type),
            "discount_value": discount_value,
            "discount_enabled": discount_enabled,
            "tax_percentage": data.tax_percentage if data.tax_percentage is not None else defaults.tax_percentage,
            "tax_enabled": data.tax_enabled if data.tax_enabled is not None else defaults.enable_tax,
        }

    @staticmethod
    def _merged_pricing(current, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Stored pricing options overlaid with the fields of a partial update."""
        pricing = {key: _plain(fields.get(key, getattr(current, key))) for key in PRICING_FIELDS}
        pricing["discount_value"] = money(pricing["discount_value"])
        if "discount_value" in fields and "discount_enabled" not in fields:
            pricing["discount_enabled"] = bool(current.discount_enabled or pricing["discount_value"] > 0)
        return pricing

    @staticmethod
    def _totals(items: Sequence[Any], pricing: Mapping[str, Any], amount_paid=None) -> Totals:
        return recompute(
            items,
            discount_type=pricing["discount_type"],
            discount_value=pricing["discount_value"],
            tax_percentage=pricing["tax_percentage"],
            tax_enabled=pricing["tax_enabled"],
            discount_enabled=pricing["discount_enabled"],
            amount_paid=amount_paid,
        )

    @staticmethod
    def _check_pricing(pricing: Mapping[str, Any], totals: Totals, errors: Optional[List[str]] = None) -> None:
        errors = list(errors or [])
        errors += pricing_errors(pricing["discount_type"], pricing["discount_value"], totals.subtotal)
        if errors:
            raise ValidationError(errors)

    def _require_numbering(self) -> DocumentSequenceService:
        if self.numbering is None:
            raise RuntimeError(f"{self.label} numbering service is not configured")
        return self.numbering

    @staticmethod
    def _items_from(items: Optional[Sequence[LineItemIn]]) -> Optional[List[Dict[str, Any]]]:
        # An empty list means "leave the stored items alone"
        return normalize_items(items) if items else None
