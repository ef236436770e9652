"""Quotation lifecycle: create, edit, status changes, expiry and stats.

Lifecycle: draft -> sent -> accepted | rejected, sent -> expired.
An accepted quotation is turned into an invoice by
InvoiceService.create_from_quotation.
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Mapping, Optional, List, Union

from agency_billing.core.exceptions import ValidationError
from agency_billing.models.billing import QuotationStatus, utc_now
from agency_billing.schemas.billing import (
    QuotationCreate,
    QuotationUpdate,
    QuotationRecord,
    QuotationStats,
    StatusBucket,
)
from agency_billing.services.billing_calculator import money
from agency_billing.services.billing_document_service import (
    BillingDocumentService,
    PRICING_FIELDS,
    client_header,
    draft_errors,
    normalize_items,
    supplied_fields,
    update_draft_errors,
)
from agency_billing.services.billing_state_machine import validate_quotation_transition
from agency_billing.services.billing_store import DocumentKind
from agency_billing.services.validation import parse_payload


logger = logging.getLogger(__name__)


def parse_quotation_status(status: Union[QuotationStatus, str]) -> QuotationStatus:
    try:
        return QuotationStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in QuotationStatus)
        raise ValidationError([f"status: Unknown quotation status '{status}'. Expected one of: {allowed}"])


class QuotationService(BillingDocumentService):
    """Service for the quotation lifecycle."""

    kind = DocumentKind.QUOTATION
    label = "Quotation"

    async def create(self, draft: Union[QuotationCreate, Mapping[str, Any]]) -> QuotationRecord:
        """
        Validate a draft, reserve a number and store the quotation with its items.

        Raises:
            ValidationError: every client/item/pricing violation at once
            NumberGenerationError: no number could be reserved; nothing is written
        """
        self.store.require_admin()
        data = parse_payload(QuotationCreate, draft, cross_checks=draft_errors)

        items = normalize_items(data.items)
        defaults = await self.store.get_business_settings()
        pricing = self._create_pricing(data, defaults)
        totals = self._totals(items, pricing)
        self._check_pricing(pricing, totals)

        quotation_date = data.quotation_date or self._today()
        validity_days = data.validity_days or defaults.default_validity_days

        number = await self._require_numbering().generate_quotation_number()

        header = {
            "quotation_number": number,
            "quotation_date": quotation_date,
            "validity_days": validity_days,
            "valid_until": quotation_date + timedelta(days=validity_days),
            **client_header(data.model_dump()),
            **pricing,
            **totals.as_dict(),
            "payment_terms": data.payment_terms if data.payment_terms is not None else defaults.default_payment_terms,
            "notes": data.notes,
            "status": QuotationStatus.DRAFT.value,
        }

        async with self.store.transaction():
            quotation = await self.store.insert_document(self.kind, header, items)

        logger.info(f"Quotation {quotation.quotation_number} created for {quotation.client_name} ({quotation.grand_total})")
        return quotation

    async def update(
        self,
        quotation_id: Union[uuid.UUID, str],
        changes: Union[QuotationUpdate, Mapping[str, Any]],
        expected_updated_at=None,
    ) -> QuotationRecord:
        """
        Apply a partial update.

        A non-empty items list replaces all stored items; an empty or missing
        list leaves them as they are. Totals are recomputed whenever items or
        pricing inputs change.
        """
        self.store.require_admin()
        data = parse_payload(QuotationUpdate, changes, cross_checks=update_draft_errors)
        fields = supplied_fields(data)
        fields.pop("items", None)
        expected = fields.pop("expected_updated_at", None) or expected_updated_at

        items = self._items_from(data.items)
        current = await self.store.get_document(self.kind, quotation_id)

        header = client_header(fields)
        for key in ("payment_terms", "notes"):
            if key in fields:
                header[key] = fields[key]

        if "quotation_date" in fields or "validity_days" in fields:
            quotation_date = fields.get("quotation_date", current.quotation_date)
            validity_days = fields.get("validity_days", current.validity_days)
            header.update(
                quotation_date=quotation_date,
                validity_days=validity_days,
                valid_until=quotation_date + timedelta(days=validity_days),
            )

        if items or any(key in fields for key in PRICING_FIELDS):
            pricing = self._merged_pricing(current, fields)
            totals = self._totals(items or current.items, pricing)
            self._check_pricing(pricing, totals)
            header.update(pricing)
            header.update(totals.as_dict())

        async with self.store.transaction():
            quotation = await self.store.update_document(
                self.kind, current.id, header, items=items, expected_updated_at=expected
            )

        detail = f"{len(items)} items replaced" if items else "header only"
        logger.info(f"Quotation {quotation.quotation_number} updated ({detail})")
        return quotation

    async def change_status(
        self,
        quotation_id: Union[uuid.UUID, str],
        new_status: Union[QuotationStatus, str],
    ) -> QuotationRecord:
        """Move a quotation along its lifecycle. Pricing is never touched."""
        self.store.require_admin()
        status = parse_quotation_status(new_status)
        current = await self.store.get_document(self.kind, quotation_id)

        validate_quotation_transition(current.status, status)
        if current.status == status:
            return current

        header = {"status": status.value}
        if status == QuotationStatus.SENT:
            header["sent_at"] = utc_now()
        elif status == QuotationStatus.ACCEPTED:
            header["accepted_at"] = utc_now()

        async with self.store.transaction():
            quotation = await self.store.update_document(self.kind, current.id, header)

        logger.info(f"Quotation {quotation.quotation_number} status: {current.status.value} -> {status.value}")
        return quotation

    async def expire_overdue(self, today: Optional[date] = None) -> List[QuotationRecord]:
        """Expire sent quotations whose validity window has passed."""
        self.store.require_admin()
        today = today or self._today()
        due = await self.store.find_past_due(self.kind, [QuotationStatus.SENT], today)

        expired = []
        async with self.store.transaction():
            for quotation in due:
                validate_quotation_transition(quotation.status, QuotationStatus.EXPIRED)
                expired.append(await self.store.update_document(
                    self.kind, quotation.id, {"status": QuotationStatus.EXPIRED.value}
                ))

        if expired:
            logger.info(f"Expired {len(expired)} quotations past validity as of {today}")
        return expired

    async def stats(self) -> QuotationStats:
        """Count and value per status."""
        self.store.require_admin()
        buckets = await self.store.document_stats(self.kind)
        return QuotationStats(
            total_count=sum(b["count"] for b in buckets),
            total_value=money(sum((b["total"] for b in buckets), Decimal("0"))),
            by_status=[
                StatusBucket(status=b["status"], count=b["count"], total=money(b["total"]))
                for b in buckets
            ],
        )
