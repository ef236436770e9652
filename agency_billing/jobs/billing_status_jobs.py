"""
Time-based billing status changes.

- sent quotations past valid_until -> expired
- sent/pending invoices past due_date with a balance -> overdue
"""
import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agency_billing.config import settings
from agency_billing.core.exceptions import BillingError
from agency_billing.core.permissions import SYSTEM_CALLER
from agency_billing.database import async_session_factory
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.invoice_service import InvoiceService
from agency_billing.services.quotation_service import QuotationService


logger = logging.getLogger(__name__)


def scheduler_today(now: Optional[datetime] = None) -> date:
    """Calendar date in SCHEDULER_TIMEZONE, the zone the cron trigger fires in."""
    zone = ZoneInfo(settings.SCHEDULER_TIMEZONE)
    now = now.astimezone(zone) if now is not None else datetime.now(zone)
    return now.date()


async def run_billing_status_job(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Expire quotations and mark invoices overdue as of today.

    Each half commits on its own, so a failure in one does not undo the other.

    Returns:
        {"expired_quotations": n, "overdue_invoices": m}
    """
    session_factory = session_factory or async_session_factory
    today = today or scheduler_today()
    result = {"expired_quotations": 0, "overdue_invoices": 0}

    async with session_factory() as db:
        store = BillingStore(db, SYSTEM_CALLER)
        try:
            expired = await QuotationService(store).expire_overdue(today)
            result["expired_quotations"] = len(expired)
        except BillingError as e:
            logger.error(f"Quotation expiry failed: {e}")

        try:
            overdue = await InvoiceService(store).mark_overdue(today)
            result["overdue_invoices"] = len(overdue)
        except BillingError as e:
            logger.error(f"Overdue invoice check failed: {e}")

    logger.info(
        f"Billing status job for {today}: "
        f"{result['expired_quotations']} quotations expired, "
        f"{result['overdue_invoices']} invoices overdue"
    )
    return result
