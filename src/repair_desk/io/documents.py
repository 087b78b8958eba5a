"""Render printable sale receipts for settled orders.

Produces a one-page PDF with the issuer, the customer, the order, the
estimate lines that were billed, and the payment. It is a plain receipt
for the customer, not a legal invoice.

Usage::

    from repair_desk.io.documents import render_receipt_pdf

    pdf_bytes = render_receipt_pdf(invoice, order, estimate)
"""

import io

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from repair_desk.config import Config
from repair_desk.database.models import CostEstimate, Invoice, RepairOrder
from repair_desk.utils.formatters import format_currency

# ── Page layout ───────────────────────────────────────────────
PAGE_WIDTH, PAGE_HEIGHT = A4
LEFT_MARGIN = 20 * mm
RIGHT_EDGE = PAGE_WIDTH - 20 * mm
TOP_MARGIN = 20 * mm
BOTTOM_MARGIN = 20 * mm
LINE_HEIGHT = 6 * mm
FONT_NAME = "Helvetica"
FONT_SIZE_TITLE = 16
FONT_SIZE_BODY = 10


def render_receipt_pdf(invoice: Invoice, order: RepairOrder,
                       estimate: CostEstimate) -> bytes:
    """Return the receipt for *invoice* as PDF bytes."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Receipt {invoice.document_number}")
    currency = Config.CURRENCY

    y = PAGE_HEIGHT - TOP_MARGIN
    c.setFont(FONT_NAME + "-Bold", FONT_SIZE_TITLE)
    c.drawString(LEFT_MARGIN, y, Config.COMPANY_NAME)
    c.drawRightString(RIGHT_EDGE, y, invoice.document_number)

    y -= 2 * LINE_HEIGHT
    c.setFont(FONT_NAME, FONT_SIZE_BODY)
    for label, value in (
        ("Order", order.order_number),
        ("Customer", order.client_name),
        ("Device", order.device_description),
        ("Issued", str(invoice.issue_date or "")),
        ("Payment", invoice.payment_method.replace("_", " ").title()),
    ):
        c.drawString(LEFT_MARGIN, y, f"{label}:")
        c.drawString(LEFT_MARGIN + 30 * mm, y, _truncate(value, 70))
        y -= LINE_HEIGHT

    y -= LINE_HEIGHT
    c.setFont(FONT_NAME + "-Bold", FONT_SIZE_BODY)
    c.drawString(LEFT_MARGIN, y, "Item")
    c.drawRightString(RIGHT_EDGE - 45 * mm, y, "Qty")
    c.drawRightString(RIGHT_EDGE, y, "Amount")
    y -= LINE_HEIGHT
    c.setFont(FONT_NAME, FONT_SIZE_BODY)

    rows = [
        (line.part_name, str(line.quantity), line.line_total)
        for line in estimate.parts
    ] + [
        (line.action_name, "", line.price) for line in estimate.actions
    ]
    for name, qty, amount in rows:
        if y < BOTTOM_MARGIN + 3 * LINE_HEIGHT:
            c.showPage()
            c.setFont(FONT_NAME, FONT_SIZE_BODY)
            y = PAGE_HEIGHT - TOP_MARGIN
        c.drawString(LEFT_MARGIN, y, _truncate(name, 60))
        c.drawRightString(RIGHT_EDGE - 45 * mm, y, qty)
        c.drawRightString(RIGHT_EDGE, y, format_currency(amount, currency))
        y -= LINE_HEIGHT

    y -= LINE_HEIGHT / 2
    c.line(LEFT_MARGIN, y + LINE_HEIGHT / 2, RIGHT_EDGE, y + LINE_HEIGHT / 2)
    c.drawString(LEFT_MARGIN, y, "Parts")
    c.drawRightString(
        RIGHT_EDGE, y, format_currency(estimate.parts_cost, currency)
    )
    y -= LINE_HEIGHT
    c.drawString(LEFT_MARGIN, y, "Labour")
    c.drawRightString(
        RIGHT_EDGE, y, format_currency(estimate.labour_cost, currency)
    )
    y -= LINE_HEIGHT
    c.setFont(FONT_NAME + "-Bold", FONT_SIZE_BODY)
    c.drawString(LEFT_MARGIN, y, "Total paid")
    c.drawRightString(RIGHT_EDGE, y, format_currency(invoice.amount, currency))

    c.showPage()
    c.save()
    return buffer.getvalue()


def _truncate(text: str, max_len: int) -> str:
    """Truncate text with ellipsis if too long."""
    text = text or ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"
