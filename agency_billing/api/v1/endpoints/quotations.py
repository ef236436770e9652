"""API endpoints for quotations."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from agency_billing.api.deps import Quotations, Invoices
from agency_billing.models.billing import QuotationStatus
from agency_billing.schemas.billing import (
    ConvertQuotationRequest,
    InvoiceRecord,
    QuotationCreate,
    QuotationListResponse,
    QuotationRecord,
    QuotationStats,
    QuotationStatusChange,
    QuotationUpdate,
)

router = APIRouter()


@router.get("", response_model=QuotationListResponse)
async def list_quotations(
    service: Quotations,
    status: Optional[QuotationStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List quotations, newest first."""
    items, total = await service.list_documents(status=status, search=search, limit=limit, offset=offset)
    return QuotationListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/stats", response_model=QuotationStats)
async def quotation_stats(service: Quotations):
    """Count and value of quotations per status."""
    return await service.stats()


@router.post("", response_model=QuotationRecord, status_code=status.HTTP_201_CREATED)
async def create_quotation(quotation_in: QuotationCreate, service: Quotations):
    """Create a quotation with a freshly generated number."""
    return await service.create(quotation_in)


@router.get("/{quotation_id}", response_model=QuotationRecord)
async def get_quotation(quotation_id: UUID, service: Quotations):
    """Get a quotation with its items."""
    return await service.get(quotation_id)


@router.patch("/{quotation_id}", response_model=QuotationRecord)
async def update_quotation(quotation_id: UUID, quotation_in: QuotationUpdate, service: Quotations):
    """Partially update a quotation. A non-empty items list replaces all items."""
    return await service.update(quotation_id, quotation_in)


@router.delete("/{quotation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quotation(quotation_id: UUID, service: Quotations):
    """Delete a quotation and its items."""
    await service.delete(quotation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{quotation_id}/status", response_model=QuotationRecord)
async def change_quotation_status(quotation_id: UUID, change: QuotationStatusChange, service: Quotations):
    """Move a quotation to another status."""
    return await service.change_status(quotation_id, change.status)


@router.post("/{quotation_id}/convert", response_model=InvoiceRecord, status_code=status.HTTP_201_CREATED)
async def convert_quotation(
    quotation_id: UUID,
    invoices: Invoices,
    convert_in: Optional[ConvertQuotationRequest] = None,
):
    """Create a draft invoice from an accepted quotation."""
    convert_in = convert_in or ConvertQuotationRequest()
    return await invoices.create_from_quotation(
        quotation_id,
        invoice_date=convert_in.invoice_date,
        due_date=convert_in.due_date,
    )


@router.get("/{quotation_id}/pdf")
async def download_quotation_pdf(quotation_id: UUID, service: Quotations):
    """Download the quotation as a PDF."""
    document = await service.render_pdf(quotation_id)
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )
