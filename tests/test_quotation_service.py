import asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from agency_billing.core.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    InvalidStatusTransition,
    NotFoundError,
    NumberGenerationError,
    StoreTimeoutError,
    ValidationError,
)
from agency_billing.core.permissions import Caller
from agency_billing.models.billing import QuotationStatus
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.quotation_service import QuotationService

from tests.conftest import TODAY, make_draft


class FailingNumbering:
    async def generate_quotation_number(self):
        raise NumberGenerationError("quotation")


async def test_create_computes_totals_and_number(quotations, draft, admin):
    quotation = await quotations.create(draft)

    assert quotation.quotation_number == "QT-2026-0001"
    assert quotation.status == QuotationStatus.DRAFT
    assert quotation.quotation_date == TODAY
    assert quotation.valid_until == TODAY + timedelta(days=15)
    assert quotation.subtotal == Decimal("5000.00")
    assert quotation.discount_enabled is False
    assert quotation.tax_enabled is True
    assert quotation.tax_amount == Decimal("900.00")
    assert quotation.grand_total == Decimal("5900.00")
    assert quotation.payment_terms == "50% advance, balance on delivery"
    assert quotation.created_by == admin.user_id
    assert [item.amount for item in quotation.items] == [Decimal("5000.00")]


async def test_create_reports_every_violation(quotations):
    draft = make_draft(
        client_name="",
        items=[{"service_name": "", "quantity": 0, "rate": "100"}],
    )

    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(draft)

    errors = exc_info.value.errors
    assert len(errors) == 3
    assert any(e.startswith("client_name:") for e in errors)
    assert any(e.startswith("items[0].service_name:") for e in errors)
    assert any(e.startswith("items[0].quantity:") for e in errors)


async def test_create_requires_at_least_one_item(quotations):
    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(make_draft(items=[]))
    assert exc_info.value.errors[0].startswith("items:")


async def test_blank_email_is_stored_blank_and_bad_email_rejected(quotations):
    quotation = await quotations.create(make_draft(client_email="  "))
    assert quotation.client_email == ""

    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(make_draft(client_email="not-an-email"))
    assert exc_info.value.errors[0].startswith("client_email:")


async def test_percentage_discount_over_100_rejected(quotations):
    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(make_draft(discount_type="percentage", discount_value=150))
    assert "cannot exceed 100" in exc_info.value.errors[0]


async def test_field_and_pricing_errors_reported_together(quotations):
    draft = make_draft(client_name="", discount_type="percentage", discount_value="150")

    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(draft)

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert errors[0].startswith("client_name:")
    assert errors[1] == "discount_value: Percentage discount cannot exceed 100"


async def test_fixed_discount_checked_against_valid_items_when_another_field_fails(quotations):
    draft = make_draft(client_email="not-an-email", discount_type="fixed", discount_value="6000")

    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(draft)

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert errors[0].startswith("client_email:")
    assert errors[1] == "discount_value: Fixed discount cannot exceed the subtotal"


async def test_broken_discount_value_is_reported_once(quotations):
    with pytest.raises(ValidationError) as exc_info:
        await quotations.create(make_draft(client_name="", discount_value="-5"))

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert sum(e.startswith("discount_value:") for e in errors) == 1


async def test_update_reports_field_and_pricing_errors_together(quotations, draft):
    quotation = await quotations.create(draft)

    with pytest.raises(ValidationError) as exc_info:
        await quotations.update(
            quotation.id,
            {"client_name": "", "discount_type": "percentage", "discount_value": 150},
        )

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert errors[1] == "discount_value: Percentage discount cannot exceed 100"


async def test_discount_value_enables_discount(quotations):
    quotation = await quotations.create(make_draft(discount_type="fixed", discount_value=500))

    assert quotation.discount_enabled is True
    assert quotation.discount_amount == Decimal("500.00")
    assert quotation.grand_total == Decimal("5310.00")


async def test_number_failure_writes_nothing(store, quotations, draft):
    failing = QuotationService(store, FailingNumbering(), today=lambda: TODAY)

    with pytest.raises(NumberGenerationError):
        await failing.create(draft)

    items, total = await quotations.list_documents()
    assert total == 0
    assert items == []


async def test_item_replacement_is_idempotent(quotations, draft):
    quotation = await quotations.create(draft)
    new_items = [
        {"service_name": "Logo", "quantity": 1, "rate": "1200"},
        {"service_name": "Brand guide", "quantity": 1, "rate": "800"},
    ]

    await quotations.update(quotation.id, {"items": new_items})
    updated = await quotations.update(quotation.id, {"items": new_items})

    assert [item.service_name for item in updated.items] == ["Logo", "Brand guide"]
    assert [item.sort_order for item in updated.items] == [0, 1]
    assert updated.subtotal == Decimal("2000.00")
    assert updated.grand_total == Decimal("2360.00")


async def test_header_only_update_keeps_items_and_totals(quotations, draft):
    quotation = await quotations.create(draft)

    updated = await quotations.update(quotation.id, {"notes": "Revised scope", "items": []})

    assert updated.notes == "Revised scope"
    assert [item.id for item in updated.items] == [item.id for item in quotation.items]
    assert updated.grand_total == quotation.grand_total


async def test_pricing_update_recomputes_totals(quotations, draft):
    quotation = await quotations.create(draft)

    updated = await quotations.update(quotation.id, {"tax_enabled": False})

    assert updated.tax_amount == Decimal("0.00")
    assert updated.grand_total == Decimal("5000.00")


async def test_validity_change_moves_valid_until(quotations, draft):
    quotation = await quotations.create(draft)

    updated = await quotations.update(quotation.id, {"validity_days": 30})

    assert updated.valid_until == quotation.quotation_date + timedelta(days=30)


async def test_stale_save_is_rejected(quotations, draft):
    quotation = await quotations.create(draft)
    await quotations.update(quotation.id, {"notes": "first", "expected_updated_at": quotation.updated_at})

    with pytest.raises(ConcurrencyConflictError):
        await quotations.update(quotation.id, {"notes": "second", "expected_updated_at": quotation.updated_at})

    assert (await quotations.get(quotation.id)).notes == "first"


async def test_unknown_quotation_not_found(quotations):
    with pytest.raises(NotFoundError):
        await quotations.get(uuid.uuid4())
    with pytest.raises(NotFoundError):
        await quotations.get("not-a-uuid")


async def test_non_admin_is_refused(db, numbering, draft):
    service = QuotationService(BillingStore(db, Caller(user_id=uuid.uuid4())), numbering)

    with pytest.raises(AuthorizationError):
        await service.create(draft)
    with pytest.raises(AuthorizationError):
        await service.list_documents()


async def test_status_lifecycle_stamps_times(quotations, draft):
    quotation = await quotations.create(draft)

    sent = await quotations.change_status(quotation.id, QuotationStatus.SENT)
    assert sent.sent_at is not None

    accepted = await quotations.change_status(quotation.id, "accepted")
    assert accepted.status == QuotationStatus.ACCEPTED
    assert accepted.accepted_at is not None
    assert accepted.grand_total == quotation.grand_total

    with pytest.raises(InvalidStatusTransition):
        await quotations.change_status(quotation.id, "rejected")


async def test_draft_cannot_be_accepted_directly(quotations, draft):
    quotation = await quotations.create(draft)

    with pytest.raises(InvalidStatusTransition):
        await quotations.change_status(quotation.id, "accepted")


async def test_unknown_status_is_validation_error(quotations, draft):
    quotation = await quotations.create(draft)

    with pytest.raises(ValidationError):
        await quotations.change_status(quotation.id, "archived")


async def test_expire_overdue_only_touches_sent(quotations):
    old_sent = await quotations.create(make_draft(quotation_date=date(2026, 1, 1)))
    await quotations.change_status(old_sent.id, "sent")
    old_draft = await quotations.create(make_draft(quotation_date=date(2026, 1, 1)))
    fresh_sent = await quotations.create(make_draft())
    await quotations.change_status(fresh_sent.id, "sent")

    expired = await quotations.expire_overdue(today=TODAY)

    assert [q.id for q in expired] == [old_sent.id]
    assert (await quotations.get(old_sent.id)).status == QuotationStatus.EXPIRED
    assert (await quotations.get(old_draft.id)).status == QuotationStatus.DRAFT
    assert (await quotations.get(fresh_sent.id)).status == QuotationStatus.SENT


async def test_list_filters_and_stats(quotations):
    first = await quotations.create(make_draft(client_name="Ravi Kumar"))
    await quotations.create(make_draft(client_name="Meera Iyer"))
    await quotations.change_status(first.id, "sent")

    items, total = await quotations.list_documents(search="ravi")
    assert total == 1
    assert items[0].client_name == "Ravi Kumar"

    items, total = await quotations.list_documents(status="draft")
    assert total == 1
    assert items[0].client_name == "Meera Iyer"

    stats = await quotations.stats()
    assert stats.total_count == 2
    assert stats.total_value == Decimal("11800.00")
    assert {b.status: b.count for b in stats.by_status} == {"draft": 1, "sent": 1}


async def test_search_matches_wildcard_characters_literally(quotations):
    await quotations.create(make_draft(client_name="100% Organic Foods"))
    await quotations.create(make_draft(client_name="1000 Pines Resort"))
    await quotations.create(make_draft(client_name="Ravi_Kumar Traders"))
    await quotations.create(make_draft(client_name="RaviXKumar Traders"))

    items, total = await quotations.list_documents(search="100%")
    assert total == 1
    assert items[0].client_name == "100% Organic Foods"

    items, total = await quotations.list_documents(search="i_K")
    assert total == 1
    assert items[0].client_name == "Ravi_Kumar Traders"


async def test_delete_removes_quotation(quotations, draft):
    quotation = await quotations.create(draft)

    await quotations.delete(quotation.id)

    with pytest.raises(NotFoundError):
        await quotations.get(quotation.id)


async def test_store_round_trip_timeout(db, admin):
    store = BillingStore(db, admin, timeout=0.01)

    with pytest.raises(StoreTimeoutError) as exc_info:
        await store._call("slow call", asyncio.sleep(1))
    assert exc_info.value.retryable is True
