"""
Quotation and invoice numbering.

Numbers look like QT-2026-0001 / INV-2026-0001: a prefix, the calendar year
and a zero-padded counter that keeps growing for the whole year.

    numbering = DocumentSequenceService(async_session_factory)
    number = await numbering.generate_invoice_number()

Each reservation is a single UPDATE ... RETURNING committed in a session of
its own, never the caller's, so two concurrent callers cannot be handed the
same number. If the document insert that follows fails, that number is
simply never used.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agency_billing.config import settings
from agency_billing.core.exceptions import NumberGenerationError
from agency_billing.models.document_sequence import DocumentSequence, DocumentType


logger = logging.getLogger(__name__)

# Attempts when two callers race to create the first row of a year
MAX_CREATE_ATTEMPTS = 3


class DocumentSequenceService:
    """Hands out document numbers; the counter lives in document_sequences."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quotation_prefix: Optional[str] = None,
        invoice_prefix: Optional[str] = None,
        padding_length: Optional[int] = None,
        timeout: Optional[float] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        # `today` picks the sequence year; tests pin it
        self.session_factory = session_factory
        self.prefixes = {
            DocumentType.QUOTATION: quotation_prefix or settings.QUOTATION_NUMBER_PREFIX,
            DocumentType.INVOICE: invoice_prefix or settings.INVOICE_NUMBER_PREFIX,
        }
        self.padding_length = padding_length or settings.DOCUMENT_NUMBER_PADDING
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
        self._today = today or date.today

    async def generate_quotation_number(self) -> str:
        return await self.get_next_number(DocumentType.QUOTATION)

    async def generate_invoice_number(self) -> str:
        return await self.get_next_number(DocumentType.INVOICE)

    async def get_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None
    ) -> str:
        """
        Consume and return the next number for `document_type`.

        Raises ValueError for an unknown document type and
        NumberGenerationError when the database fails or does not answer
        within the store timeout. Nothing has been written in either case.
        """
        doc_type = self._document_type(document_type)
        year = year or self._today().year

        try:
            number = await asyncio.wait_for(self._reserve(doc_type, year), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out reserving {doc_type.value} number for {year}")
            raise NumberGenerationError(doc_type.value) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to reserve {doc_type.value} number for {year}: {e}")
            raise NumberGenerationError(doc_type.value) from e

        logger.info(f"Reserved {doc_type.value} number {number}")
        return number

    async def preview_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None
    ) -> str:
        """Next number as things stand now. Nothing is reserved, so another caller may take it."""
        doc_type = self._document_type(document_type)
        year = year or self._today().year

        async with self.session_factory() as session:
            sequence = (
                await session.execute(select(DocumentSequence).where(*self._row(doc_type, year)))
            ).scalar_one_or_none()

        if sequence is None:
            return DocumentSequence.format_number(self.prefixes[doc_type], year, 1, self.padding_length)
        return sequence.preview_next_number()

    async def get_current_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None
    ) -> int:
        """Last number handed out this year; 0 before the first reservation."""
        doc_type = self._document_type(document_type)
        year = year or self._today().year

        async with self.session_factory() as session:
            last = await session.scalar(
                select(DocumentSequence.current_number).where(*self._row(doc_type, year))
            )
        return last or 0

    async def initialize_sequence(
        self,
        document_type: Union[DocumentType, str],
        starting_number: int = 0,
        year: Optional[int] = None
    ) -> DocumentSequence:
        """
        Set the counter so the next reservation returns starting_number + 1.

        For seeding numbers carried over from a previous system.
        """
        doc_type = self._document_type(document_type)
        year = year or self._today().year

        async with self.session_factory() as session:
            async with session.begin():
                sequence = (
                    await session.execute(
                        select(DocumentSequence).where(*self._row(doc_type, year)).with_for_update()
                    )
                ).scalar_one_or_none()

                if sequence is None:
                    sequence = self._new_sequence(doc_type, year, starting_number)
                    session.add(sequence)
                else:
                    sequence.current_number = starting_number
                    sequence.updated_at = datetime.now(timezone.utc)

        logger.info(f"{doc_type.value} sequence for {year} set to {starting_number}")
        return sequence

    @staticmethod
    def _row(doc_type: DocumentType, year: int) -> tuple:
        return (DocumentSequence.document_type == doc_type.value, DocumentSequence.year == year)

    async def _reserve(self, doc_type: DocumentType, year: int) -> str:
        attempt = 1
        while True:
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        row = await self._increment(session, doc_type, year)
                        if row is None:
                            # First number of the year
                            session.add(self._new_sequence(doc_type, year, 0))
                            await session.flush()
                            row = await self._increment(session, doc_type, year)
            except IntegrityError:
                # Lost the race to create the year's row; the winner's row is there now
                if attempt >= MAX_CREATE_ATTEMPTS:
                    raise
                attempt += 1
                logger.warning(f"Sequence row for {doc_type.value}/{year} created concurrently, retrying")
                continue
            prefix, current_number, padding_length = row
            return DocumentSequence.format_number(prefix, year, current_number, padding_length)

    async def _increment(self, session: AsyncSession, doc_type: DocumentType, year: int):
        stmt = (
            update(DocumentSequence)
            .where(*self._row(doc_type, year))
            .values(
                current_number=DocumentSequence.current_number + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(
                DocumentSequence.prefix,
                DocumentSequence.current_number,
                DocumentSequence.padding_length,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.first()

    def _new_sequence(self, doc_type: DocumentType, year: int, current_number: int) -> DocumentSequence:
        return DocumentSequence(
            document_type=doc_type.value,
            year=year,
            prefix=self.prefixes[doc_type],
            current_number=current_number,
            padding_length=self.padding_length,
        )

    @staticmethod
    def _document_type(document_type: Union[DocumentType, str]) -> DocumentType:
        try:
            return DocumentType(document_type)
        except ValueError:
            valid_types = ", ".join(t.value for t in DocumentType)
            raise ValueError(f"Invalid document type '{document_type}'. Valid types: {valid_types}")
