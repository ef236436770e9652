import uuid
from datetime import date, datetime
from decimal import Decimal

from agency_billing.schemas.billing import BusinessSettingsRecord, InvoiceRecord, QuotationRecord
from agency_billing.services.document_renderer import (
    DocumentRenderer,
    format_date,
    format_money,
    format_percent,
)


BUSINESS = BusinessSettingsRecord(
    company_name="Northwind Studio",
    company_address="4th Floor, MG Road, Bengaluru",
    company_email="hello@northwind.studio",
    tax_number="29ABCDE1234F1Z5",
    bank_name="HDFC Bank",
    upi_id="northwind@hdfc",
)


def _item(index, service_name="Website redesign", quantity=2, rate="2500.00"):
    rate = Decimal(rate)
    return {
        "id": uuid.uuid4(),
        "service_name": service_name,
        "description": "",
        "quantity": quantity,
        "rate": rate,
        "amount": rate * quantity,
        "sort_order": index,
    }


def _pricing(**overrides):
    values = {
        "client_name": "Asha Verma",
        "client_business_name": "Verma Textiles",
        "client_phone": "",
        "client_email": "asha@vermatextiles.in",
        "client_address": "12 Ring Road, Surat",
        "items": [_item(0)],
        "subtotal": Decimal("5000.00"),
        "discount_type": "percentage",
        "discount_value": Decimal("0"),
        "discount_amount": Decimal("0.00"),
        "discount_enabled": False,
        "taxable_amount": Decimal("5000.00"),
        "tax_percentage": Decimal("18.000"),
        "tax_amount": Decimal("900.00"),
        "tax_enabled": True,
        "grand_total": Decimal("5900.00"),
        "payment_terms": "50% advance, balance on delivery",
        "notes": "",
        "created_at": datetime(2026, 3, 10, 9, 0),
        "updated_at": datetime(2026, 3, 10, 9, 0),
    }
    values.update(overrides)
    return values


def make_quotation(**overrides):
    values = {
        "id": uuid.uuid4(),
        "quotation_number": "QT-2026-0001",
        "quotation_date": date(2026, 3, 10),
        "validity_days": 15,
        "valid_until": date(2026, 3, 25),
        "status": "draft",
        "converted_to_invoice": False,
    }
    return QuotationRecord(**_pricing(**{**values, **overrides}))


def make_invoice(**overrides):
    values = {
        "id": uuid.uuid4(),
        "invoice_number": "INV-2026-0001",
        "invoice_date": date(2026, 3, 10),
        "due_date": date(2026, 3, 25),
        "amount_paid": Decimal("0.00"),
        "balance_due": Decimal("5900.00"),
        "status": "sent",
    }
    return InvoiceRecord(**_pricing(**{**values, **overrides}))


def test_formatters():
    assert format_money(Decimal("5900"), "INR") == "INR 5,900.00"
    assert format_percent(Decimal("18.000")) == "18"
    assert format_percent(Decimal("12.50")) == "12.5"
    assert format_date(date(2026, 3, 5)) == "05 Mar 2026"
    assert format_date(None) == ""


def test_quotation_pdf_contents():
    document = DocumentRenderer(BUSINESS).render_quotation(make_quotation())

    assert document.filename == "QT-2026-0001.pdf"
    assert document.media_type == "application/pdf"
    assert document.page_count == 1
    assert document.content.startswith(b"%PDF")
    for text in (b"QUOTATION", b"BILL TO", b"Asha Verma", b"Website redesign",
                 b"INR 5,900.00", b"Thank you for your business!", b"northwind@hdfc"):
        assert text in document.content


def test_stored_totals_are_printed_verbatim():
    # Grand total deliberately disagrees with the items
    quotation = make_quotation(grand_total=Decimal("99999.00"))

    content = DocumentRenderer(BUSINESS).render_quotation(quotation).content

    assert b"INR 99,999.00" in content
    assert b"INR 5,900.00" not in content


def test_rendering_is_deterministic():
    quotation = make_quotation()
    renderer = DocumentRenderer(BUSINESS)

    assert renderer.render_quotation(quotation).content == renderer.render_quotation(quotation).content


def test_long_item_lists_paginate():
    items = [_item(i, service_name=f"Service line {i + 1}", quantity=1, rate="100.00") for i in range(60)]
    quotation = make_quotation(items=items)

    document = DocumentRenderer(BUSINESS).render_quotation(quotation)

    assert document.page_count > 1
    assert b"Page 2" in document.content
    assert b"Service line 60" in document.content


def test_invoice_shows_payment_state():
    invoice = make_invoice(
        amount_paid=Decimal("5900.00"),
        balance_due=Decimal("0.00"),
        status="paid",
        quotation_number="QT-2026-0001",
    )

    document = DocumentRenderer(BUSINESS).render_invoice(invoice)

    assert document.filename == "INV-2026-0001.pdf"
    for text in (b"INVOICE", b"Amount Paid", b"Balance Due", b"PAID", b"Ref: QT-2026-0001"):
        assert text in document.content


def test_unpaid_invoice_omits_payment_lines():
    content = DocumentRenderer(BUSINESS).render_invoice(make_invoice()).content

    assert b"Amount Paid" not in content
    assert b"SENT" in content


def test_defaults_render_without_saved_settings():
    document = DocumentRenderer(BusinessSettingsRecord()).render_invoice(make_invoice())
    assert document.content.startswith(b"%PDF")


def test_long_names_wrap_inside_the_page():
    client_name = " ".join(["Shree Ganesh Hospitality and Event Management Private Limited"] * 3)
    company_name = "Northwind Creative Studio and Digital Marketing Consultancy LLP"
    business = BUSINESS.model_copy(update={"company_name": company_name})

    content = DocumentRenderer(business).render_quotation(make_quotation(client_name=client_name)).content

    assert client_name.encode() not in content
    assert company_name.encode() not in content
    assert b"Shree Ganesh Hospitality" in content
    assert b"Northwind Creative" in content
