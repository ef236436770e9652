import uuid
from decimal import Decimal

import pytest

from agency_billing.core.exceptions import AuthorizationError, ValidationError
from agency_billing.core.permissions import Caller
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.business_settings_service import BusinessSettingsService

from tests.conftest import make_draft


async def test_defaults_before_first_save(business_settings):
    settings = await business_settings.get()

    assert settings.id is None
    assert settings.currency == "₹"
    assert settings.tax_percentage == Decimal("18")
    assert settings.enable_tax is True
    assert settings.enable_discount is False
    assert settings.default_validity_days == 15


async def test_upsert_creates_then_updates_single_row(business_settings):
    created = await business_settings.upsert({"company_name": "Northwind Studio", "company_email": "hi@northwind.studio"})
    updated = await business_settings.upsert({"company_phone": "+91 80 4000 1234"})

    assert created.id is not None
    assert updated.id == created.id
    assert updated.company_name == "Northwind Studio"
    assert updated.company_phone == "+91 80 4000 1234"


async def test_blank_email_clears_it(business_settings):
    await business_settings.upsert({"company_email": "hi@northwind.studio"})

    settings = await business_settings.upsert({"company_email": ""})

    assert settings.company_email == ""


async def test_invalid_values_rejected(business_settings):
    with pytest.raises(ValidationError) as exc_info:
        await business_settings.upsert({"tax_percentage": 120, "default_validity_days": 0})
    assert len(exc_info.value.errors) == 2


async def test_settings_drive_new_document_defaults(business_settings, quotations, invoices):
    await business_settings.upsert({
        "tax_percentage": "12",
        "default_validity_days": 30,
        "default_due_days": 7,
        "default_payment_terms": "Net 7",
    })

    quotation = await quotations.create(make_draft())
    invoice = await invoices.create(make_draft())

    assert quotation.tax_amount == Decimal("600.00")
    assert quotation.validity_days == 30
    assert quotation.payment_terms == "Net 7"
    assert (invoice.due_date - invoice.invoice_date).days == 7


async def test_non_admin_cannot_read_settings(db):
    service = BusinessSettingsService(BillingStore(db, Caller(user_id=uuid.uuid4())))

    with pytest.raises(AuthorizationError):
        await service.get()
