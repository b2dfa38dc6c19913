import io

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas


def _render_pdf(*pages: list[str]) -> bytes:
    """Render one PDF page per entry, one text line per string."""
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    for lines in pages:
        y = 780
        for line in lines:
            pdf.drawString(72, y, line)
            y -= 16
        pdf.showPage()
    pdf.save()
    return buf.getvalue()


@pytest.fixture()
def invoice_pdf_bytes() -> bytes:
    return _render_pdf(["Stadtwerke Kiel", "Rechnung Nr. 2024-117", "Betrag: 84,20 EUR"])


@pytest.fixture()
def two_page_pdf_bytes() -> bytes:
    return _render_pdf(["Steuerbescheid 2023"], ["Zahlbar bis 15.07.2024"])


@pytest.fixture()
def blank_pdf_bytes() -> bytes:
    """A valid PDF whose single page carries no text layer (like a raw scan)."""
    return _render_pdf([])
