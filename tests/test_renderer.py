from datetime import datetime

import pytest

from app.invoices.models import InvoiceCreate
from app.invoices.renderer import RenderError, render_invoice_pdf

from tests.conftest import SAMPLE_INVOICE


def test_renders_stored_payload_to_pdf():
    invoice = InvoiceCreate(
        **SAMPLE_INVOICE,
        client_email="billing@acme.com",
        invoice_number="INV-42",
        issue_date="2025-01-01",
        due_date="2025-01-31",
        notes="Thanks for your business & see you <soon>",
    ).to_document()

    assert isinstance(invoice["issue_date"], datetime)

    pdf = render_invoice_pdf(invoice, currency="€")
    assert pdf.startswith(b"%PDF")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_many_line_items_span_pages():
    items = [
        {"description": f"Item {i}", "quantity": 1, "rate": 1.5, "amount": 1.5}
        for i in range(100)
    ]
    invoice = {**SAMPLE_INVOICE, "line_items": items, "invoice_number": "INV-LONG"}

    assert render_invoice_pdf(invoice).startswith(b"%PDF")


def test_missing_line_items_is_a_render_error():
    with pytest.raises(RenderError):
        render_invoice_pdf({**SAMPLE_INVOICE, "line_items": []})


def test_malformed_payload_is_wrapped_in_render_error():
    broken = {**SAMPLE_INVOICE, "line_items": [{"description": "x"}]}
    with pytest.raises(RenderError) as exc_info:
        render_invoice_pdf(broken)
    assert "KeyError" in str(exc_info.value)
