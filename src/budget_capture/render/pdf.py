"""PDF export: the HTML template laid out on an A4 page with PyMuPDF."""

from __future__ import annotations

import fitz  # PyMuPDF

from ..config import Branding
from ..domain.models import BudgetDocument
from ..logging import get_logger
from .template import TEMPLATE_CSS, render_body

LOG = get_logger("render-pdf")

MARGIN_PT = 42  # ~15 mm


def render_pdf(document: BudgetDocument, branding: Branding) -> bytes:
    """Return the budget as a one-page A4 PDF (content shrinks to fit)."""
    pdf = fitz.open()
    try:
        page_rect = fitz.paper_rect("a4")
        page = pdf.new_page(width=page_rect.width, height=page_rect.height)
        box = fitz.Rect(MARGIN_PT, MARGIN_PT, page_rect.width - MARGIN_PT, page_rect.height - MARGIN_PT)
        spare_height, scale = page.insert_htmlbox(box, render_body(document, branding), css=TEMPLATE_CSS, scale_low=0)
        if spare_height < 0:
            LOG.warning(f"Budget {document.id} did not fit on one page")
        elif scale < 1:
            LOG.debug(f"Budget {document.id} scaled to {scale:.2f} to fit A4")
        pdf.set_metadata({"title": f"{branding.title} {document.id}", "subject": document.client})
        data = pdf.tobytes(garbage=3, deflate=True)
    finally:
        pdf.close()
    LOG.info(f"Rendered PDF for {document.id} ({len(data)} bytes)")
    return data
