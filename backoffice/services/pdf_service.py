import io
import logging
import os
from datetime import date
from decimal import Decimal

import qrcode
from PIL import Image, ImageDraw, ImageFont

from backoffice.services.totals_service import matches_stored, to_money, totals_for_invoice

logger = logging.getLogger(__name__)

# A4 at 150 DPI
DPI = 150
PAGE_W = 1240
PAGE_H = 1754
MARGIN = 118  # 20mm
ROW_H = 44
QR_SIZE = 220

PRIMARY = "#7c3aed"
TEXT = "#1f2937"
MUTED = "#6b7280"
RULE = "#e5e7eb"

# Item table columns: (header, x, right-aligned)
COLUMNS = [
    ("Description", MARGIN + 12, False),
    ("Qty", 760, True),
    ("Unit price", 930, True),
    ("Total", PAGE_W - MARGIN - 12, True),
]


def _get_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Try system fonts, fallback to default."""
    names = ["DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf"] if bold else ["DejaVuSans.ttf", "LiberationSans-Regular.ttf"]
    for directory in ("/usr/share/fonts/truetype/dejavu", "/usr/share/fonts/truetype/liberation", "/usr/share/fonts/TTF"):
        for name in names:
            fp = os.path.join(directory, name)
            if os.path.exists(fp):
                return ImageFont.truetype(fp, size)
    return ImageFont.load_default(size)


def format_currency(amount) -> str:
    """German notation: 1.234,56 €"""
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    whole, cents = f"{abs(value):,.2f}".split(".")
    return f"{sign}{whole.replace(',', '.')},{cents} €"


def format_date(value: date | None) -> str:
    return value.strftime("%d.%m.%Y") if value else "-"


def epc_payload(settings, invoice) -> str:
    """EPC069-12 ("GiroCode") SEPA credit transfer payload."""
    lines = [
        "BCD",
        "002",
        "1",
        "SCT",
        settings.bic or "",
        (settings.company_name or "")[:70],
        settings.iban.replace(" ", ""),
        f"EUR{to_money(invoice.total)}",
        "",
        "",
        invoice.invoice_number,
    ]
    return "\n".join(lines)


def _payment_qr(payload: str) -> Image.Image:
    qr = qrcode.QRCode(version=None, error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=8, border=1)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return img.resize((QR_SIZE, QR_SIZE), Image.NEAREST)


class _Canvas:
    """Pages plus a write cursor; starts a new page when the cursor runs off the bottom."""

    def __init__(self):
        self.pages: list[Image.Image] = []
        self.y = MARGIN
        self.new_page()

    def new_page(self) -> None:
        page = Image.new("RGB", (PAGE_W, PAGE_H), "white")
        self.pages.append(page)
        self.draw = ImageDraw.Draw(page)
        self.y = MARGIN

    def ensure(self, height: int) -> bool:
        if self.y + height > PAGE_H - MARGIN - 40:
            self.new_page()
            return True
        return False

    def text(self, x: int, y: int, text: str, size: int = 16, color: str = TEXT, bold: bool = False, right: bool = False):
        font = _get_font(size, bold)
        if right:
            x -= int(self.draw.textlength(text, font=font))
        self.draw.text((x, y), text, fill=color, font=font)

    def wrap(self, text: str, size: int, width: int) -> list[str]:
        font = _get_font(size)
        lines = []
        for paragraph in text.splitlines() or [""]:
            line = ""
            for word in paragraph.split(" "):
                candidate = f"{line} {word}".strip()
                if line and self.draw.textlength(candidate, font=font) > width:
                    lines.append(line)
                    line = word
                else:
                    line = candidate
            lines.append(line)
        return lines


def _draw_header(c: _Canvas, invoice, settings) -> None:
    right = PAGE_W - MARGIN
    c.text(MARGIN, MARGIN, settings.company_name or "", size=34, color=PRIMARY, bold=True)
    y = MARGIN + 60
    for line in (
        settings.address,
        f"{settings.zip_code or ''} {settings.city or ''}".strip(),
        f"E-Mail: {settings.email}" if settings.email else "",
        f"Tel: {settings.phone}" if settings.phone else "",
    ):
        if line:
            c.text(MARGIN, y, line, size=16, color=MUTED)
            y += 26

    c.text(right, MARGIN, "INVOICE", size=40, bold=True, right=True)
    c.text(right, MARGIN + 60, f"No. {invoice.invoice_number}", size=18, color=MUTED, right=True)

    # Dates box
    box_top = 325
    c.draw.rounded_rectangle([(right - 384, box_top), (right, box_top + 170)], radius=16, fill="#f8fafc")
    for i, (label, value) in enumerate((
        ("Invoice date:", invoice.invoice_date),
        ("Delivery date:", invoice.delivery_date),
        ("Due date:", invoice.due_date),
    )):
        row_y = box_top + 28 + i * 46
        c.text(right - 360, row_y, label, size=16, color=MUTED)
        c.text(right - 24, row_y, format_date(value), size=16, right=True)

    # Billing address
    customer = invoice.customer
    c.text(MARGIN, box_top, "Bill to:", size=15, color=MUTED)
    y = box_top + 36
    if customer is not None:
        if customer.company:
            c.text(MARGIN, y, customer.company, size=19, bold=True)
            y += 30
        for line in (customer.name, customer.address, f"{customer.zip_code} {customer.city}".strip(), customer.country):
            if line:
                c.text(MARGIN, y, line, size=19)
                y += 30
    c.y = max(y, box_top + 170) + 60


def _draw_table_head(c: _Canvas) -> None:
    c.draw.rectangle([(MARGIN, c.y), (PAGE_W - MARGIN, c.y + ROW_H)], fill=PRIMARY)
    for header, x, right in COLUMNS:
        c.text(x, c.y + 12, header, size=16, color="white", bold=True, right=right)
    c.y += ROW_H


def _draw_items(c: _Canvas, invoice) -> None:
    _draw_table_head(c)
    desc_width = COLUMNS[1][1] - COLUMNS[0][1] - 100
    for item in invoice.items:
        lines = c.wrap(item.title, 16, desc_width)
        height = max(ROW_H, 14 + 24 * len(lines))
        if c.ensure(height):
            _draw_table_head(c)
        for i, line in enumerate(lines):
            c.text(COLUMNS[0][1], c.y + 12 + i * 24, line, size=16)
        c.text(COLUMNS[1][1], c.y + 12, str(item.quantity), size=16, right=True)
        c.text(COLUMNS[2][1], c.y + 12, format_currency(item.unit_price), size=16, right=True)
        c.text(COLUMNS[3][1], c.y + 12, format_currency(item.total_price), size=16, right=True)
        c.y += height
        c.draw.line([(MARGIN, c.y), (PAGE_W - MARGIN, c.y)], fill=RULE, width=1)


def _draw_totals(c: _Canvas, invoice, settings) -> None:
    right = PAGE_W - MARGIN
    label_x = right - 440
    rows = []
    if to_money(invoice.discount) > 0:
        rows.append(("Discount:", f"-{format_currency(invoice.discount)}"))
    if to_money(invoice.shipping_cost) > 0:
        rows.append(("Shipping:", format_currency(invoice.shipping_cost)))
    rows.append(("Subtotal:", format_currency(invoice.subtotal)))
    if to_money(invoice.vat_rate) > 0:
        rate = Decimal(str(invoice.vat_rate)).normalize()
        rows.append((f"VAT ({rate:f}%):", format_currency(invoice.vat_amount)))

    c.ensure(len(rows) * 36 + 120)
    c.y += 30
    for label, value in rows:
        c.text(label_x, c.y, label, size=17, color=MUTED)
        c.text(right, c.y, value, size=17, right=True)
        c.y += 36

    c.y += 10
    c.draw.rounded_rectangle([(label_x - 24, c.y - 8), (right, c.y + 52)], radius=10, fill=PRIMARY)
    c.text(label_x, c.y + 6, "Total:", size=21, color="white", bold=True)
    c.text(right - 20, c.y + 6, format_currency(invoice.total), size=21, color="white", bold=True, right=True)
    c.y += 90

    if not settings.vat_enabled and to_money(invoice.vat_rate) == 0:
        c.text(MARGIN, c.y, "Gemäß § 19 UStG wird keine Umsatzsteuer berechnet.", size=15, color=MUTED)
        c.y += 40


def _draw_payment(c: _Canvas, invoice, settings) -> None:
    lines = [
        f"Bank: {settings.bank_name}" if settings.bank_name else "",
        f"IBAN: {settings.iban}" if settings.iban else "",
        f"BIC: {settings.bic}" if settings.bic else "",
        f"Reference: {invoice.invoice_number}",
    ]
    lines = [line for line in lines if line]
    height = max(40 + 28 * len(lines), QR_SIZE + 20 if settings.iban else 0)
    c.ensure(height + 30)
    c.y += 30
    top = c.y
    c.text(MARGIN, c.y, "Payment information", size=18, bold=True)
    c.y += 40
    for line in lines:
        c.text(MARGIN, c.y, line, size=15)
        c.y += 28
    if settings.iban:
        c.pages[-1].paste(_payment_qr(epc_payload(settings, invoice)), (PAGE_W - MARGIN - QR_SIZE, top))
    c.y = max(c.y, top + height)


def _draw_notes(c: _Canvas, invoice) -> None:
    if not invoice.notes:
        return
    lines = c.wrap(invoice.notes, 15, PAGE_W - 2 * MARGIN)
    c.ensure(60)
    c.y += 20
    c.text(MARGIN, c.y, "Notes", size=18, bold=True)
    c.y += 36
    for line in lines:
        c.ensure(26)
        c.text(MARGIN, c.y, line, size=15)
        c.y += 26


def _draw_footers(c: _Canvas, settings) -> None:
    parts = [settings.company_name or ""]
    if settings.tax_number:
        parts.append(f"Tax no.: {settings.tax_number}")
    footer = " | ".join(p for p in parts if p)
    total = len(c.pages)
    for i, page in enumerate(c.pages, start=1):
        draw = ImageDraw.Draw(page)
        font = _get_font(13)
        text = f"{footer}    {i}/{total}" if total > 1 else footer
        x = (PAGE_W - int(draw.textlength(text, font=font))) // 2
        draw.text((x, PAGE_H - 70), text, fill=MUTED, font=font)


def render_invoice_pages(invoice, settings) -> list[Image.Image]:
    c = _Canvas()
    _draw_header(c, invoice, settings)
    _draw_items(c, invoice)
    _draw_totals(c, invoice, settings)
    _draw_payment(c, invoice, settings)
    _draw_notes(c, invoice)
    _draw_footers(c, settings)
    return c.pages


def render_invoice_pdf(invoice, settings) -> bytes:
    """Render an invoice as A4 PDF. Returns PDF bytes.

    The stored totals are printed. They are re-derived first, and a
    disagreement is logged, since it means the row was changed outside the
    service layer.
    """
    derived = totals_for_invoice(invoice)
    if not matches_stored(invoice, derived):
        logger.warning(
            "Stored totals of invoice %s disagree with its items: stored total %s, derived %s",
            invoice.invoice_number, invoice.total, derived.total,
        )

    pages = render_invoice_pages(invoice, settings)

    buf = io.BytesIO()
    pages[0].save(buf, format="PDF", save_all=True, append_images=pages[1:], resolution=DPI)
    buf.seek(0)
    return buf.getvalue()
