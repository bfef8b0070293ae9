"""
Invoice PDF rendering with ReportLab platypus.

The renderer is a plain blocking function `payload -> bytes`; the job runner
executes it on a worker thread. Any renderer with the same signature can be
injected into the runner instead.
"""

from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer


class RenderError(Exception):
    """The invoice could not be rendered."""


def _fmt_date(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value) if value else "-"


def _money(value: Any, currency: str) -> str:
    return f"{currency}{float(value or 0):,.2f}"


def _fmt_qty(value: Any) -> str:
    qty = float(value)
    return str(int(qty)) if qty.is_integer() else f"{qty:g}"


def render_invoice_pdf(invoice: Dict[str, Any], currency: str = "$") -> bytes:
    """Render a stored invoice payload into PDF bytes."""
    try:
        return _build(invoice, currency)
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(f"{type(e).__name__}: {e}") from e


def _build(invoice: Dict[str, Any], currency: str) -> bytes:
    line_items = invoice.get("line_items") or []
    if not line_items:
        raise RenderError("Invoice has no line items")

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title=f"Invoice {invoice.get('invoice_number', '')}",
        leftMargin=0.6 * inch,
        rightMargin=0.6 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=24,
        spaceAfter=20,
    )
    label_style = ParagraphStyle("BillTo", parent=styles["Heading4"], spaceAfter=4)
    body = styles["BodyText"]
    cell = ParagraphStyle("Cell", parent=body, fontSize=9, leading=11)

    story = [Paragraph("INVOICE", title_style)]

    details = Table(
        [
            ["Invoice #:", invoice.get("invoice_number") or "-"],
            ["Issue Date:", _fmt_date(invoice.get("issue_date"))],
            ["Due Date:", _fmt_date(invoice.get("due_date"))],
        ],
        colWidths=[1.2 * inch, 3 * inch],
        hAlign="LEFT",
    )
    details.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
    ]))
    story.append(details)
    story.append(Spacer(1, 0.3 * inch))

    story.append(Paragraph("Bill To:", label_style))
    story.append(Paragraph(escape(invoice.get("client_name") or ""), body))
    if invoice.get("client_email"):
        story.append(Paragraph(escape(invoice["client_email"]), body))
    story.append(Spacer(1, 0.3 * inch))

    rows = [["Description", "Qty", "Rate", "Amount"]]
    for item in line_items:
        rows.append([
            Paragraph(escape(item["description"]), cell),
            _fmt_qty(item["quantity"]),
            _money(item["rate"], currency),
            _money(item["amount"], currency),
        ])
    rows.append(["", "", "Subtotal:", _money(invoice.get("subtotal"), currency)])
    rows.append(["", "", "Tax:", _money(invoice.get("tax"), currency)])
    rows.append(["", "", "Total:", _money(invoice.get("total"), currency)])

    items_table = Table(rows, colWidths=[3.4 * inch, 0.8 * inch, 1.3 * inch, 1.4 * inch], repeatRows=1)
    items_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ("GRID", (0, 0), (-1, -4), 0.5, colors.black),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, -1), (-1, -1), 11),
    ]))
    story.append(items_table)

    if invoice.get("notes"):
        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Notes:", label_style))
        story.append(Paragraph(escape(invoice["notes"]), body))

    doc.build(story)
    return buffer.getvalue()
