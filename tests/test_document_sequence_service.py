import asyncio

import pytest

from agency_billing.core.exceptions import NumberGenerationError
from agency_billing.database import build_engine, build_session_factory
from agency_billing.models.document_sequence import DocumentSequence, DocumentType
from agency_billing.services.document_sequence_service import DocumentSequenceService

from tests.conftest import TODAY


def test_format_number_pads_sequence():
    assert DocumentSequence.format_number("INV", 2026, 7, 4) == "INV-2026-0007"
    assert DocumentSequence.format_number("QT", 2026, 12345, 4) == "QT-2026-12345"


async def test_numbers_increase_per_document_type(numbering):
    assert await numbering.generate_quotation_number() == "QT-2026-0001"
    assert await numbering.generate_quotation_number() == "QT-2026-0002"
    assert await numbering.generate_invoice_number() == "INV-2026-0001"


async def test_sequence_restarts_each_year(numbering):
    await numbering.get_next_number(DocumentType.INVOICE, year=2025)
    await numbering.get_next_number(DocumentType.INVOICE, year=2025)

    assert await numbering.get_next_number(DocumentType.INVOICE, year=2026) == "INV-2026-0001"
    assert await numbering.get_current_number("invoice", year=2025) == 2


async def test_concurrent_reservations_are_unique(numbering):
    numbers = await asyncio.gather(*(numbering.generate_invoice_number() for _ in range(8)))

    assert len(set(numbers)) == 8
    assert sorted(numbers) == [f"INV-2026-{n:04d}" for n in range(1, 9)]


async def test_preview_does_not_consume_a_number(numbering):
    assert await numbering.preview_next_number("quotation") == "QT-2026-0001"
    assert await numbering.preview_next_number("quotation") == "QT-2026-0001"

    await numbering.generate_quotation_number()
    assert await numbering.preview_next_number("quotation") == "QT-2026-0002"


async def test_initialize_sequence_continues_from_given_number(numbering):
    await numbering.initialize_sequence(DocumentType.QUOTATION, starting_number=41)
    assert await numbering.generate_quotation_number() == "QT-2026-0042"


async def test_custom_prefix_and_padding(session_factory):
    numbering = DocumentSequenceService(
        session_factory, invoice_prefix="BILL", padding_length=6, today=lambda: TODAY
    )
    assert await numbering.generate_invoice_number() == "BILL-2026-000001"


async def test_unknown_document_type_rejected(numbering):
    with pytest.raises(ValueError, match="Invalid document type"):
        await numbering.get_next_number("receipt")


async def test_database_failure_raises_number_generation_error(tmp_path):
    # No tables were created in this database
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        numbering = DocumentSequenceService(build_session_factory(engine), today=lambda: TODAY)
        with pytest.raises(NumberGenerationError) as exc_info:
            await numbering.generate_invoice_number()
        assert exc_info.value.document_type == "invoice"
    finally:
        await engine.dispose()
