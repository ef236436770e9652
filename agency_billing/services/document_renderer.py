"""
PDF rendering for quotations and invoices.

Produces a deterministic A4 document from a stored record plus the business
settings. Amounts are printed exactly as stored; nothing is recomputed here.
"""
import io
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from agency_billing.schemas.billing import BusinessSettingsRecord, InvoiceRecord, LineItemRecord, QuotationRecord


logger = logging.getLogger(__name__)

# ─── COLOR PALETTE ───
PRIMARY = HexColor('#F97316')
CHARCOAL = HexColor('#1F2937')
SLATE = HexColor('#6B7280')
PALE = HexColor('#F3F4F6')
GREEN = HexColor('#16A34A')
RED = HexColor('#DC2626')

FONT = 'Helvetica'
FONT_BOLD = 'Helvetica-Bold'

W, H = A4  # 595.27 x 841.89
MARGIN = 20 * mm
CONTENT_W = W - 2 * MARGIN
FOOTER_SPACE = 30 * mm          # Reserved at the bottom of every page
TOTALS_BLOCK_HEIGHT = 60 * mm   # Moved to a new page when it does not fit

# Items table columns (x positions)
COL_INDEX = MARGIN + 3 * mm
COL_SERVICE = MARGIN + 12 * mm
SERVICE_W = 88 * mm
COL_QTY = MARGIN + 115 * mm      # right aligned
COL_RATE = MARGIN + 142 * mm     # right aligned
COL_AMOUNT = W - MARGIN - 3 * mm  # right aligned

STATUS_COLORS = {
    "paid": GREEN,
    "overdue": RED,
    "cancelled": SLATE,
}


@dataclass(frozen=True)
class RenderedDocument:
    """A rendered PDF ready to be downloaded."""
    filename: str
    content: bytes
    page_count: int
    media_type: str = "application/pdf"


def format_money(value: Decimal, currency_code: str) -> str:
    """Decimal('5900') -> 'INR 5,900.00'."""
    return f"{currency_code} {Decimal(value):,.2f}"


def format_percent(value: Decimal) -> str:
    """Decimal('18.000') -> '18', Decimal('12.50') -> '12.5'."""
    normalized = Decimal(value).normalize()
    return f"{normalized:f}"


def format_date(value: Optional[date]) -> str:
    return value.strftime("%d %b %Y") if value else ""


class _PdfWriter:
    """Canvas wrapper tracking a top-down cursor and page breaks."""

    def __init__(self, title: str, author: str, footer_lines: Sequence[str]):
        self.buffer = io.BytesIO()
        # invariant=1 pins creation date and document ID so output is reproducible
        self.c = canvas.Canvas(self.buffer, pagesize=A4, invariant=1, pageCompression=0)
        self.c.setTitle(title)
        self.c.setAuthor(author)
        self.c.setCreator("Agency Billing")
        self.footer_lines = list(footer_lines)
        self.page_count = 1
        self.y = H - MARGIN

    # ─── DRAWING PRIMITIVES ───

    def text(self, text, x, y, size=10, bold=False, color=CHARCOAL, align='left'):
        self.c.setFont(FONT_BOLD if bold else FONT, size)
        self.c.setFillColor(color)
        if align == 'right':
            self.c.drawRightString(x, y, text)
        elif align == 'center':
            self.c.drawCentredString(x, y, text)
        else:
            self.c.drawString(x, y, text)

    def line(self, x1, y1, x2, y2, color=PALE, width=0.5):
        self.c.saveState()
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        self.c.line(x1, y1, x2, y2)
        self.c.restoreState()

    def rect(self, x, y, w, h, fill=PALE):
        self.c.saveState()
        self.c.setFillColor(fill)
        self.c.rect(x, y, w, h, fill=1, stroke=0)
        self.c.restoreState()

    def wrap(self, text: str, width: float, size=10, bold=False) -> List[str]:
        if not text:
            return []
        lines = []
        for paragraph in text.splitlines() or [""]:
            lines.extend(simpleSplit(paragraph, FONT_BOLD if bold else FONT, size, width) or [""])
        return lines

    # ─── PAGINATION ───

    def ensure_space(self, height: float, on_new_page=None) -> bool:
        """Start a new page when the next block would run into the footer."""
        if self.y - height >= FOOTER_SPACE:
            return False
        self.new_page()
        if on_new_page:
            on_new_page()
        return True

    def new_page(self) -> None:
        self.draw_footer()
        self.c.showPage()
        self.page_count += 1
        self.y = H - MARGIN

    def draw_footer(self) -> None:
        footer_y = 20 * mm
        self.line(MARGIN, footer_y + 5 * mm, W - MARGIN, footer_y + 5 * mm, color=SLATE, width=0.3)
        self.text("Thank you for your business!", W / 2, footer_y, size=10, bold=True, color=PRIMARY, align='center')
        contact = " | ".join(line for line in self.footer_lines if line)
        if contact:
            self.text(contact, W / 2, footer_y - 5 * mm, size=8, color=SLATE, align='center')
        self.text(f"Page {self.page_count}", W - MARGIN, footer_y - 10 * mm, size=7, color=SLATE, align='right')

    def finish(self) -> bytes:
        self.draw_footer()
        self.c.save()
        return self.buffer.getvalue()


class DocumentRenderer:
    """Renders quotation and invoice records with the issuer's settings."""

    def __init__(self, business: BusinessSettingsRecord):
        self.business = business

    @property
    def currency_code(self) -> str:
        return self.business.currency_code or "INR"

    def money(self, value: Decimal) -> str:
        return format_money(value, self.currency_code)

    # ─── PUBLIC API ───

    def render_quotation(self, quotation: QuotationRecord) -> RenderedDocument:
        meta = [
            ("Date", format_date(quotation.quotation_date)),
            ("Valid Until", format_date(quotation.valid_until)),
        ]
        totals = self._totals_lines(quotation)
        return self._render(
            title="QUOTATION",
            number=quotation.quotation_number,
            meta=meta,
            record=quotation,
            totals=totals,
            status_lines=[],
        )

    def render_invoice(self, invoice: InvoiceRecord) -> RenderedDocument:
        meta = [
            ("Date", format_date(invoice.invoice_date)),
            ("Due Date", format_date(invoice.due_date)),
        ]
        if invoice.quotation_number:
            meta.append(("Ref", invoice.quotation_number))

        status_lines = []
        if invoice.amount_paid > 0:
            status_lines.append(("Amount Paid", self.money(invoice.amount_paid), GREEN))
            status_lines.append(("Balance Due", self.money(invoice.balance_due), RED if invoice.balance_due > 0 else GREEN))
        status = invoice.status.value
        status_lines.append(("Status", status.upper(), STATUS_COLORS.get(status, PRIMARY)))

        return self._render(
            title="INVOICE",
            number=invoice.invoice_number,
            meta=meta,
            record=invoice,
            totals=self._totals_lines(invoice),
            status_lines=status_lines,
        )

    # ─── LAYOUT ───

    def _totals_lines(self, record) -> List[Tuple[str, str]]:
        lines = [("Subtotal", self.money(record.subtotal))]
        if record.discount_amount > 0:
            if record.discount_type.value == "percentage":
                label = f"Discount ({format_percent(record.discount_value)}%)"
            else:
                label = "Discount"
            lines.append((label, f"- {self.money(record.discount_amount)}"))
        if record.tax_amount > 0:
            lines.append((f"GST ({format_percent(record.tax_percentage)}%)", self.money(record.tax_amount)))
        return lines

    def _render(self, title, number, meta, record, totals, status_lines) -> RenderedDocument:
        b = self.business
        pdf = _PdfWriter(
            title=f"{title.title()} {number}",
            author=b.company_name or "Agency Billing",
            footer_lines=[b.company_name, b.company_website, b.company_email],
        )

        self._draw_header(pdf, title, number, meta)
        self._draw_client(pdf, record)
        self._draw_items(pdf, record.items)
        self._draw_totals(pdf, totals, record.grand_total, status_lines)
        self._draw_text_block(pdf, "Payment Terms", record.payment_terms)
        self._draw_text_block(pdf, "Notes", record.notes)
        self._draw_payment_details(pdf)

        content = pdf.finish()
        logger.info(f"Rendered {title.lower()} {number} ({pdf.page_count} pages, {len(content)} bytes)")
        return RenderedDocument(filename=f"{number}.pdf", content=content, page_count=pdf.page_count)

    def _draw_header(self, pdf: _PdfWriter, title: str, number: str, meta) -> None:
        b = self.business
        top = pdf.y

        # Issuer block (left)
        y = top - 6 * mm
        for name_line in pdf.wrap(b.company_name, 90 * mm, size=20, bold=True) or [""]:
            pdf.text(name_line, MARGIN, y, size=20, bold=True, color=PRIMARY)
            y -= 8 * mm
        y += 2 * mm
        contact = [b.company_address, b.company_phone, b.company_email, b.company_website]
        if b.tax_number:
            contact.append(f"GSTIN: {b.tax_number}")
        for line in self._wrap_all(pdf, contact, 90 * mm):
            pdf.text(line, MARGIN, y, size=9, color=SLATE)
            y -= 4.5 * mm

        # Document block (right)
        right = W - MARGIN
        pdf.text(title, right, top - 6 * mm, size=18, bold=True, color=CHARCOAL, align='right')
        pdf.text(f"# {number}", right, top - 12 * mm, size=10, bold=True, color=PRIMARY, align='right')
        meta_y = top - 18 * mm
        for label, value in meta:
            pdf.text(f"{label}: {value}", right, meta_y, size=9, color=SLATE, align='right')
            meta_y -= 4.5 * mm

        pdf.y = min(y, meta_y) - 4 * mm
        pdf.line(MARGIN, pdf.y, W - MARGIN, pdf.y, color=PRIMARY, width=1)
        pdf.y -= 8 * mm

    def _draw_client(self, pdf: _PdfWriter, record) -> None:
        pdf.text("BILL TO", MARGIN, pdf.y, size=9, bold=True, color=SLATE)
        pdf.y -= 6 * mm
        for name_line in pdf.wrap(record.client_name, CONTENT_W, size=12, bold=True):
            pdf.text(name_line, MARGIN, pdf.y, size=12, bold=True)
            pdf.y -= 5 * mm

        details = [record.client_business_name, record.client_address, record.client_phone, record.client_email]
        for line in self._wrap_all(pdf, details, 100 * mm):
            pdf.text(line, MARGIN, pdf.y, size=9, color=SLATE)
            pdf.y -= 4.5 * mm
        pdf.y -= 6 * mm

    @staticmethod
    def _wrap_all(pdf: _PdfWriter, values: Sequence[Optional[str]], width: float) -> List[str]:
        lines = []
        for value in values:
            lines += pdf.wrap(value or "", width, size=9)
        return lines

    def _draw_table_header(self, pdf: _PdfWriter) -> None:
        pdf.rect(MARGIN, pdf.y - 3 * mm, CONTENT_W, 9 * mm, fill=PRIMARY)
        white = HexColor('#FFFFFF')
        pdf.text("#", COL_INDEX, pdf.y, size=9, bold=True, color=white)
        pdf.text("Service", COL_SERVICE, pdf.y, size=9, bold=True, color=white)
        pdf.text("Qty", COL_QTY, pdf.y, size=9, bold=True, color=white, align='right')
        pdf.text("Rate", COL_RATE, pdf.y, size=9, bold=True, color=white, align='right')
        pdf.text("Amount", COL_AMOUNT, pdf.y, size=9, bold=True, color=white, align='right')
        pdf.y -= 10 * mm

    def _draw_items(self, pdf: _PdfWriter, items: Sequence[LineItemRecord]) -> None:
        self._draw_table_header(pdf)

        for index, item in enumerate(items, start=1):
            name_lines = pdf.wrap(item.service_name, SERVICE_W, size=10, bold=True)
            desc_lines = pdf.wrap(item.description, SERVICE_W, size=8)
            row_height = len(name_lines) * 5 * mm + len(desc_lines) * 4 * mm + 4 * mm

            pdf.ensure_space(row_height, on_new_page=lambda: self._draw_table_header(pdf))

            if index % 2 == 0:
                pdf.rect(MARGIN, pdf.y - row_height + 4 * mm, CONTENT_W, row_height, fill=PALE)

            pdf.text(str(index), COL_INDEX, pdf.y, size=10)
            pdf.text(str(item.quantity), COL_QTY, pdf.y, size=10, align='right')
            pdf.text(self.money(item.rate), COL_RATE, pdf.y, size=10, align='right')
            pdf.text(self.money(item.amount), COL_AMOUNT, pdf.y, size=10, bold=True, align='right')

            y = pdf.y
            for line in name_lines:
                pdf.text(line, COL_SERVICE, y, size=10, bold=True)
                y -= 5 * mm
            for line in desc_lines:
                pdf.text(line, COL_SERVICE, y, size=8, color=SLATE)
                y -= 4 * mm

            pdf.y -= row_height

        pdf.line(MARGIN, pdf.y + 2 * mm, W - MARGIN, pdf.y + 2 * mm, color=SLATE, width=0.3)
        pdf.y -= 4 * mm

    def _draw_totals(self, pdf: _PdfWriter, lines, grand_total: Decimal, status_lines) -> None:
        pdf.ensure_space(TOTALS_BLOCK_HEIGHT)
        label_x = W - MARGIN - 75 * mm
        value_x = W - MARGIN

        for label, value in lines:
            pdf.text(label, label_x, pdf.y, size=10, color=SLATE)
            pdf.text(value, value_x, pdf.y, size=10, align='right')
            pdf.y -= 6 * mm

        pdf.rect(label_x - 3 * mm, pdf.y - 3 * mm, value_x - label_x + 3 * mm, 10 * mm, fill=PRIMARY)
        white = HexColor('#FFFFFF')
        pdf.text("Grand Total", label_x, pdf.y, size=12, bold=True, color=white)
        pdf.text(self.money(grand_total), value_x - 2 * mm, pdf.y, size=12, bold=True, color=white, align='right')
        pdf.y -= 11 * mm

        for label, value, color in status_lines:
            pdf.text(label, label_x, pdf.y, size=10, color=SLATE)
            pdf.text(value, value_x, pdf.y, size=10, bold=True, color=color, align='right')
            pdf.y -= 6 * mm
        pdf.y -= 4 * mm

    def _draw_text_block(self, pdf: _PdfWriter, heading: str, body: str) -> None:
        if not body:
            return
        lines = pdf.wrap(body, CONTENT_W, size=9)
        pdf.ensure_space(8 * mm + 5 * mm)
        pdf.text(f"{heading}:", MARGIN, pdf.y, size=10, bold=True)
        pdf.y -= 5 * mm
        for line in lines:
            pdf.ensure_space(4.5 * mm)
            pdf.text(line, MARGIN, pdf.y, size=9, color=SLATE)
            pdf.y -= 4.5 * mm
        pdf.y -= 4 * mm

    def _draw_payment_details(self, pdf: _PdfWriter) -> None:
        b = self.business
        details = [
            ("Bank", b.bank_name),
            ("Account No", b.bank_account_number),
            ("IFSC", b.bank_ifsc),
            ("UPI", b.upi_id),
        ]
        details = [(label, value) for label, value in details if value]
        if not details:
            return
        pdf.ensure_space(8 * mm + len(details) * 4.5 * mm)
        pdf.text("Payment Details:", MARGIN, pdf.y, size=10, bold=True)
        pdf.y -= 5 * mm
        for label, value in details:
            pdf.text(f"{label}: {value}", MARGIN, pdf.y, size=9, color=SLATE)
            pdf.y -= 4.5 * mm
