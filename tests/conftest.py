import os
import uuid
from datetime import date

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STATUS_JOBS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_TIMEZONE", "Asia/Kolkata")

import pytest

from agency_billing.core.permissions import Caller
from agency_billing.database import build_engine, build_session_factory, init_db
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.business_settings_service import BusinessSettingsService
from agency_billing.services.document_sequence_service import DocumentSequenceService
from agency_billing.services.invoice_service import InvoiceService
from agency_billing.services.quotation_service import QuotationService


TODAY = date(2026, 3, 10)


def make_draft(**overrides):
    """A valid quotation/invoice draft: 2 x 2500, GST from business settings."""
    draft = {
        "client_name": "Asha Verma",
        "client_business_name": "Verma Textiles",
        "client_phone": "+91 98765 43210",
        "client_email": "asha@vermatextiles.in",
        "client_address": "12 Ring Road, Surat",
        "items": [
            {"service_name": "Website redesign", "description": "Five pages", "quantity": 2, "rate": "2500"},
        ],
    }
    draft.update(overrides)
    return draft


@pytest.fixture()
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def admin():
    return Caller(user_id=uuid.uuid4(), is_admin=True)


@pytest.fixture()
def store(db, admin):
    return BillingStore(db, admin)


@pytest.fixture()
def numbering(session_factory):
    return DocumentSequenceService(session_factory, today=lambda: TODAY)


@pytest.fixture()
def quotations(store, numbering):
    return QuotationService(store, numbering, today=lambda: TODAY)


@pytest.fixture()
def invoices(store, numbering):
    return InvoiceService(store, numbering, today=lambda: TODAY, allow_overpayment=True)


@pytest.fixture()
def business_settings(store):
    return BusinessSettingsService(store)


@pytest.fixture()
def draft():
    return make_draft()


@pytest.fixture()
async def accepted_quotation(quotations, draft):
    quotation = await quotations.create(draft)
    await quotations.change_status(quotation.id, "sent")
    return await quotations.change_status(quotation.id, "accepted")
