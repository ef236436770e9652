from datetime import date, datetime, timezone

from agency_billing.jobs.billing_status_jobs import run_billing_status_job, scheduler_today
from agency_billing.jobs.scheduler import get_scheduler_status
from agency_billing.models.billing import InvoiceStatus, QuotationStatus

from tests.conftest import TODAY, make_draft


async def test_job_expires_quotations_and_flags_invoices(session_factory, quotations, invoices):
    quotation = await quotations.create(make_draft(quotation_date=date(2026, 1, 1)))
    await quotations.change_status(quotation.id, "sent")
    invoice = await invoices.create(make_draft(invoice_date=date(2026, 1, 1), due_date=date(2026, 1, 31)))
    await invoices.change_status(invoice.id, "sent")
    paid = await invoices.create(make_draft(invoice_date=date(2026, 1, 1), due_date=date(2026, 1, 31)))
    await invoices.record_payment(paid.id, 5900)

    result = await run_billing_status_job(session_factory=session_factory, today=TODAY)

    assert result == {"expired_quotations": 1, "overdue_invoices": 1}
    assert (await quotations.get(quotation.id)).status == QuotationStatus.EXPIRED
    assert (await invoices.get(invoice.id)).status == InvoiceStatus.OVERDUE
    assert (await invoices.get(paid.id)).status == InvoiceStatus.PAID


async def test_job_is_idempotent(session_factory, quotations):
    quotation = await quotations.create(make_draft(quotation_date=date(2026, 1, 1)))
    await quotations.change_status(quotation.id, "sent")

    await run_billing_status_job(session_factory=session_factory, today=TODAY)
    second = await run_billing_status_job(session_factory=session_factory, today=TODAY)

    assert second == {"expired_quotations": 0, "overdue_invoices": 0}


def test_scheduler_not_running_in_tests():
    status = get_scheduler_status()
    assert status["running"] is False


def test_sweep_date_follows_the_scheduler_timezone():
    # 20:00 UTC on 9 March is already 01:30 on 10 March in Asia/Kolkata
    evening_utc = datetime(2026, 3, 9, 20, 0, tzinfo=timezone.utc)
    assert scheduler_today(evening_utc) == date(2026, 3, 10)

    morning_utc = datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc)
    assert scheduler_today(morning_utc) == date(2026, 3, 9)
