"""Invoice lifecycle: create, convert from quotation, payments, status changes.

Lifecycle: draft -> sent -> pending -> paid, sent | pending -> overdue,
any non-terminal -> cancelled. An invoice reaches paid only when its balance
is zero.
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from agency_billing.config import settings
from agency_billing.core.exceptions import ValidationError
from agency_billing.models.billing import InvoiceStatus, utc_now
from agency_billing.schemas.billing import (
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceRecord,
    InvoiceStats,
    PaymentCreate,
    StatusBucket,
)
from agency_billing.services.billing_calculator import balance_due, money
from agency_billing.services.billing_document_service import (
    BillingDocumentService,
    CLIENT_FIELDS,
    DUE_DATE_ERROR,
    PRICING_FIELDS,
    client_header,
    draft_errors,
    normalize_items,
    supplied_fields,
    update_draft_errors,
)
from agency_billing.services.billing_state_machine import (
    can_convert_to_invoice,
    can_record_payment,
    validate_invoice_transition,
)
from agency_billing.services.billing_store import DocumentKind
from agency_billing.services.validation import parse_payload


logger = logging.getLogger(__name__)


def parse_invoice_status(status: Union[InvoiceStatus, str]) -> InvoiceStatus:
    try:
        return InvoiceStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in InvoiceStatus)
        raise ValidationError([f"status: Unknown invoice status '{status}'. Expected one of: {allowed}"])


def settle_status(status: InvoiceStatus, balance: Decimal, amount_paid: Decimal) -> InvoiceStatus:
    """
    Status implied by the amounts on an invoice.

    - zero balance after a payment -> paid
    - a paid invoice whose balance reopened -> pending
    - money received on a draft/sent invoice -> pending
    - overdue and cancelled invoices keep their status otherwise
    """
    if status == InvoiceStatus.CANCELLED:
        return status
    if balance <= 0 and amount_paid > 0:
        return InvoiceStatus.PAID
    if status == InvoiceStatus.PAID and balance > 0:
        return InvoiceStatus.PENDING
    if amount_paid > 0 and status in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
        return InvoiceStatus.PENDING
    return status


def _status_stamps(previous: InvoiceStatus, status: InvoiceStatus) -> Dict[str, Any]:
    stamps: Dict[str, Any] = {"status": status.value}
    if status == previous:
        return stamps
    if status == InvoiceStatus.PAID:
        stamps["paid_at"] = utc_now()
    elif previous == InvoiceStatus.PAID:
        stamps["paid_at"] = None
    if status == InvoiceStatus.SENT:
        stamps["sent_at"] = utc_now()
    return stamps


class InvoiceService(BillingDocumentService):
    """Service for the invoice lifecycle."""

    kind = DocumentKind.INVOICE
    label = "Invoice"

    def __init__(self, store, numbering=None, today=None, allow_overpayment: Optional[bool] = None):
        super().__init__(store, numbering, today)
        self.allow_overpayment = settings.ALLOW_OVERPAYMENT if allow_overpayment is None else allow_overpayment

    def _overpayment_errors(self, amount_paid: Decimal, grand_total: Decimal) -> List[str]:
        if self.allow_overpayment or amount_paid <= grand_total:
            return []
        return [f"amount_paid: Amount paid of {amount_paid} exceeds the grand total of {grand_total}"]

    async def create(self, draft: Union[InvoiceCreate, Mapping[str, Any]]) -> InvoiceRecord:
        """
        Validate a draft, reserve a number and store the invoice with its items.

        Raises:
            ValidationError: every client/item/pricing violation at once
            NumberGenerationError: no number could be reserved; nothing is written
        """
        self.store.require_admin()
        data = parse_payload(InvoiceCreate, draft, cross_checks=draft_errors)

        items = normalize_items(data.items)
        defaults = await self.store.get_business_settings()
        pricing = self._create_pricing(data, defaults)
        amount_paid = money(data.amount_paid)
        totals = self._totals(items, pricing, amount_paid=amount_paid)

        invoice_date = data.invoice_date or self._today()
        due_date = data.due_date or invoice_date + timedelta(days=defaults.default_due_days)
        errors = []
        if due_date < invoice_date:
            errors.append(DUE_DATE_ERROR)
        errors += self._overpayment_errors(amount_paid, totals.grand_total)
        self._check_pricing(pricing, totals, errors)

        number = await self._require_numbering().generate_invoice_number()
        status = settle_status(InvoiceStatus.DRAFT, totals.balance_due, amount_paid)

        header = {
            "invoice_number": number,
            "invoice_date": invoice_date,
            "due_date": due_date,
            **client_header(data.model_dump()),
            **pricing,
            **totals.as_dict(),
            "amount_paid": amount_paid,
            "payment_terms": data.payment_terms if data.payment_terms is not None else defaults.default_payment_terms,
            "notes": data.notes,
            **_status_stamps(InvoiceStatus.DRAFT, status),
        }

        async with self.store.transaction():
            invoice = await self.store.insert_document(self.kind, header, items)

        logger.info(f"Invoice {invoice.invoice_number} created for {invoice.client_name} ({invoice.grand_total})")
        return invoice

    async def create_from_quotation(
        self,
        quotation_id: Union[uuid.UUID, str],
        invoice_date: Optional[date] = None,
        due_date: Optional[date] = None,
    ) -> InvoiceRecord:
        """
        Turn an accepted quotation into a draft invoice.

        Client block, items and pricing are copied as stored. The quotation is
        marked converted in the same transaction that creates the invoice.
        """
        self.store.require_admin()
        quotation = await self.store.get_document(DocumentKind.QUOTATION, quotation_id)

        if not can_convert_to_invoice(quotation.status, quotation.converted_to_invoice):
            if quotation.converted_to_invoice:
                message = f"quotation: Quotation {quotation.quotation_number} was already converted to an invoice"
            else:
                message = (
                    f"quotation: Only accepted quotations can be converted "
                    f"(status is '{quotation.status.value}')"
                )
            raise ValidationError([message])

        defaults = await self.store.get_business_settings()
        invoice_date = invoice_date or self._today()
        due_date = due_date or invoice_date + timedelta(days=defaults.default_due_days)
        if due_date < invoice_date:
            raise ValidationError([DUE_DATE_ERROR])

        number = await self._require_numbering().generate_invoice_number()

        header = {
            "invoice_number": number,
            "invoice_date": invoice_date,
            "due_date": due_date,
            "quotation_id": quotation.id,
            "quotation_number": quotation.quotation_number,
            **{field: getattr(quotation, field) for field in CLIENT_FIELDS},
            **{field: getattr(quotation, field) for field in PRICING_FIELDS},
            "discount_type": quotation.discount_type.value,
            "subtotal": quotation.subtotal,
            "discount_amount": quotation.discount_amount,
            "taxable_amount": quotation.taxable_amount,
            "tax_amount": quotation.tax_amount,
            "grand_total": quotation.grand_total,
            "amount_paid": Decimal("0.00"),
            "balance_due": balance_due(quotation.grand_total, 0),
            "payment_terms": quotation.payment_terms,
            "notes": quotation.notes,
            "status": InvoiceStatus.DRAFT.value,
        }
        items = [
            {
                "service_name": item.service_name,
                "description": item.description,
                "quantity": item.quantity,
                "rate": item.rate,
                "amount": item.amount,
            }
            for item in quotation.items
        ]

        async with self.store.transaction():
            invoice = await self.store.insert_document(self.kind, header, items)
            # Guarded by updated_at so two concurrent conversions cannot both win
            await self.store.update_document(
                DocumentKind.QUOTATION,
                quotation.id,
                {"converted_to_invoice": True, "invoice_id": invoice.id},
                expected_updated_at=quotation.updated_at,
            )

        logger.info(f"Quotation {quotation.quotation_number} converted to invoice {invoice.invoice_number}")
        return invoice

    async def update(
        self,
        invoice_id: Union[uuid.UUID, str],
        changes: Union[InvoiceUpdate, Mapping[str, Any]],
        expected_updated_at=None,
    ) -> InvoiceRecord:
        """
        Apply a partial update.

        A non-empty items list replaces all stored items; an empty or missing
        list leaves them as they are. Totals and balance are recomputed
        whenever items, pricing inputs or amount_paid change.
        """
        self.store.require_admin()
        data = parse_payload(InvoiceUpdate, changes, cross_checks=update_draft_errors)
        fields = supplied_fields(data)
        fields.pop("items", None)
        expected = fields.pop("expected_updated_at", None) or expected_updated_at

        items = self._items_from(data.items)
        current = await self.store.get_document(self.kind, invoice_id)

        header = client_header(fields)
        for key in ("payment_terms", "notes", "invoice_date", "due_date"):
            if key in fields:
                header[key] = fields[key]

        errors = []
        invoice_date = fields.get("invoice_date", current.invoice_date)
        due_date = fields.get("due_date", current.due_date)
        if due_date < invoice_date:
            errors.append(DUE_DATE_ERROR)

        if items or "amount_paid" in fields or any(key in fields for key in PRICING_FIELDS):
            pricing = self._merged_pricing(current, fields)
            amount_paid = money(fields.get("amount_paid", current.amount_paid))
            totals = self._totals(items or current.items, pricing, amount_paid=amount_paid)
            errors += self._overpayment_errors(amount_paid, totals.grand_total)
            self._check_pricing(pricing, totals, errors)
            header.update(pricing)
            header.update(totals.as_dict())
            header["amount_paid"] = amount_paid

            status = settle_status(current.status, totals.balance_due, amount_paid)
            header.update(_status_stamps(current.status, status))
        elif errors:
            raise ValidationError(errors)

        async with self.store.transaction():
            invoice = await self.store.update_document(
                self.kind, current.id, header, items=items, expected_updated_at=expected
            )

        detail = f"{len(items)} items replaced" if items else "header only"
        logger.info(f"Invoice {invoice.invoice_number} updated ({detail})")
        return invoice

    async def change_status(
        self,
        invoice_id: Union[uuid.UUID, str],
        new_status: Union[InvoiceStatus, str],
    ) -> InvoiceRecord:
        """Move an invoice along its lifecycle. Pricing is never touched."""
        self.store.require_admin()
        status = parse_invoice_status(new_status)
        current = await self.store.get_document(self.kind, invoice_id)

        validate_invoice_transition(current.status, status)
        if current.status == status:
            return current

        if status == InvoiceStatus.PAID and current.balance_due > 0:
            raise ValidationError([
                f"status: Invoice {current.invoice_number} still has a balance of "
                f"{current.balance_due}; record a payment instead"
            ])

        async with self.store.transaction():
            invoice = await self.store.update_document(
                self.kind, current.id, _status_stamps(current.status, status)
            )

        logger.info(f"Invoice {invoice.invoice_number} status: {current.status.value} -> {status.value}")
        return invoice

    async def record_payment(
        self,
        invoice_id: Union[uuid.UUID, str],
        amount: Union[Decimal, int, float, str, PaymentCreate, Mapping[str, Any]],
    ) -> InvoiceRecord:
        """
        Add a payment to an invoice.

        The balance is recomputed from the stored grand total and never goes
        below zero. A zero balance marks the invoice paid; a partial payment
        leaves it pending (or overdue if it already was).
        """
        self.store.require_admin()
        if not isinstance(amount, (PaymentCreate, Mapping)):
            amount = {"amount": amount}
        payment = parse_payload(PaymentCreate, amount)
        paid_now = money(payment.amount)

        current = await self.store.get_document(self.kind, invoice_id)
        if not can_record_payment(current.status):
            raise ValidationError([
                f"amount: Cannot record a payment on a {current.status.value} invoice"
            ])
        if not self.allow_overpayment and paid_now > current.balance_due:
            raise ValidationError([
                f"amount: Payment of {paid_now} exceeds the balance due of {current.balance_due}"
            ])

        amount_paid = money(current.amount_paid + paid_now)
        new_balance = balance_due(current.grand_total, amount_paid)
        status = settle_status(current.status, new_balance, amount_paid)

        header = {
            "amount_paid": amount_paid,
            "balance_due": new_balance,
            **_status_stamps(current.status, status),
        }
        async with self.store.transaction():
            invoice = await self.store.update_document(self.kind, current.id, header)

        logger.info(
            f"Payment of {paid_now} recorded on invoice {invoice.invoice_number}; "
            f"balance {invoice.balance_due}, status {invoice.status.value}"
        )
        return invoice

    async def mark_overdue(self, today: Optional[date] = None) -> List[InvoiceRecord]:
        """Mark unpaid invoices past their due date as overdue."""
        self.store.require_admin()
        today = today or self._today()
        due = await self.store.find_past_due(
            self.kind, [InvoiceStatus.SENT, InvoiceStatus.PENDING], today
        )

        overdue = []
        async with self.store.transaction():
            for invoice in due:
                validate_invoice_transition(invoice.status, InvoiceStatus.OVERDUE)
                overdue.append(await self.store.update_document(
                    self.kind, invoice.id, {"status": InvoiceStatus.OVERDUE.value}
                ))

        if overdue:
            logger.info(f"Marked {len(overdue)} invoices overdue as of {today}")
        return overdue

    async def stats(self) -> InvoiceStats:
        """Count, value, collected and outstanding amounts per status."""
        self.store.require_admin()
        buckets = await self.store.document_stats(self.kind)
        zero = Decimal("0")
        return InvoiceStats(
            total_count=sum(b["count"] for b in buckets),
            total_value=money(sum((b["total"] for b in buckets), zero)),
            total_paid=money(sum((b["paid"] for b in buckets), zero)),
            total_outstanding=money(sum(
                (b["outstanding"] for b in buckets if b["status"] != InvoiceStatus.CANCELLED.value),
                zero,
            )),
            by_status=[
                StatusBucket(status=b["status"], count=b["count"], total=money(b["total"]))
                for b in buckets
            ],
        )
