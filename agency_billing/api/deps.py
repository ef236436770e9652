from typing import Annotated, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agency_billing.database import get_db, async_session_factory
from agency_billing.core.security import verify_access_token
from agency_billing.core.permissions import Caller, resolve_caller
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.business_settings_service import BusinessSettingsService
from agency_billing.services.document_sequence_service import DocumentSequenceService
from agency_billing.services.invoice_service import InvoiceService
from agency_billing.services.quotation_service import QuotationService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; a missing header is reported as 401 below
security = HTTPBearer(auto_error=False)

DB = Annotated[AsyncSession, Depends(get_db)]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory used for number reservations (overridden in tests)."""
    return async_session_factory


async def get_current_caller(
    db: DB,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Caller:
    """
    Dependency resolving the bearer token to a Caller.

    The token subject is the user id; admin capability comes from user_roles.
    Non-admins get a Caller anyway so the store raises AuthorizationError (403).
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    return await resolve_caller(db, user_id)


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]


async def get_billing_store(db: DB, caller: CurrentCaller) -> BillingStore:
    return BillingStore(db, caller)


Store = Annotated[BillingStore, Depends(get_billing_store)]


def get_numbering(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> DocumentSequenceService:
    return DocumentSequenceService(session_factory)


Numbering = Annotated[DocumentSequenceService, Depends(get_numbering)]


async def get_quotation_service(store: Store, numbering: Numbering) -> QuotationService:
    return QuotationService(store, numbering)


async def get_invoice_service(store: Store, numbering: Numbering) -> InvoiceService:
    return InvoiceService(store, numbering)


async def get_business_settings_service(store: Store) -> BusinessSettingsService:
    return BusinessSettingsService(store)


Quotations = Annotated[QuotationService, Depends(get_quotation_service)]
Invoices = Annotated[InvoiceService, Depends(get_invoice_service)]
BusinessSettingsDep = Annotated[BusinessSettingsService, Depends(get_business_settings_service)]
