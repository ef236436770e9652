from fastapi import APIRouter

from agency_billing.api.v1.endpoints import (
    quotations,
    invoices,
    business_settings,
)


api_router = APIRouter()

# Billing
api_router.include_router(quotations.router, prefix="/quotations", tags=["Quotations"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
api_router.include_router(business_settings.router, prefix="/business-settings", tags=["Business Settings"])
