import io

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

FIVE_PAGE_LINE = "Quarterly revenue grew across every region on page {page} line {line}."


def build_text_pdf(pages: int, lines_per_page: int = 30) -> bytes:
    """PDF with ``pages`` pages of distinct, extractable text lines."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for page in range(1, pages + 1):
        y = 740
        for line in range(1, lines_per_page + 1):
            c.drawString(72, y, FIVE_PAGE_LINE.format(page=page, line=line))
            y -= 22
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def five_page_pdf_bytes() -> bytes:
    return build_text_pdf(pages=5)


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()
