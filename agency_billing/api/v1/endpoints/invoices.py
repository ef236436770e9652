"""API endpoints for invoices and payments."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from agency_billing.api.deps import Invoices
from agency_billing.models.billing import InvoiceStatus
from agency_billing.schemas.billing import (
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceRecord,
    InvoiceStats,
    InvoiceStatusChange,
    InvoiceUpdate,
    PaymentCreate,
)

router = APIRouter()


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    service: Invoices,
    status: Optional[InvoiceStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List invoices, newest first."""
    items, total = await service.list_documents(status=status, search=search, limit=limit, offset=offset)
    return InvoiceListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/stats", response_model=InvoiceStats)
async def invoice_stats(service: Invoices):
    """Invoice totals: billed, collected and outstanding."""
    return await service.stats()


@router.post("", response_model=InvoiceRecord, status_code=status.HTTP_201_CREATED)
async def create_invoice(invoice_in: InvoiceCreate, service: Invoices):
    """Create an invoice directly, without a quotation."""
    return await service.create(invoice_in)


@router.get("/{invoice_id}", response_model=InvoiceRecord)
async def get_invoice(invoice_id: UUID, service: Invoices):
    """Get an invoice with its items."""
    return await service.get(invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceRecord)
async def update_invoice(invoice_id: UUID, invoice_in: InvoiceUpdate, service: Invoices):
    """Partially update an invoice. A non-empty items list replaces all items."""
    return await service.update(invoice_id, invoice_in)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: UUID, service: Invoices):
    """Delete an invoice and its items."""
    await service.delete(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/status", response_model=InvoiceRecord)
async def change_invoice_status(invoice_id: UUID, change: InvoiceStatusChange, service: Invoices):
    """Move an invoice to another status."""
    return await service.change_status(invoice_id, change.status)


@router.post("/{invoice_id}/payments", response_model=InvoiceRecord)
async def record_payment(invoice_id: UUID, payment_in: PaymentCreate, service: Invoices):
    """Record a payment against an invoice."""
    return await service.record_payment(invoice_id, payment_in)


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(invoice_id: UUID, service: Invoices):
    """Download the invoice as a PDF."""
    document = await service.render_pdf(invoice_id)
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )
