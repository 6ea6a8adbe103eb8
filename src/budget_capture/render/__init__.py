"""Output adapters for a BudgetDocument (HTML preview, PDF, DOCX)."""

from typing import Callable, Dict, Tuple

from ..config import Branding
from ..domain.models import BudgetDocument
from .word import render_docx
from .pdf import render_pdf
from .template import export_filename, render_html

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "html": "text/html; charset=utf-8",
}


def _html_bytes(document: BudgetDocument, branding: Branding) -> bytes:
    return render_html(document, branding).encode("utf-8")


RENDERERS: Dict[str, Callable[[BudgetDocument, Branding], bytes]] = {
    "pdf": render_pdf,
    "docx": render_docx,
    "html": _html_bytes,
}


def render(document: BudgetDocument, branding: Branding, fmt: str) -> Tuple[bytes, str, str]:
    """Return (content, media_type, filename) for the requested format."""
    key = fmt.lower().lstrip(".")
    if key not in RENDERERS:
        raise ValueError(f"Unsupported export format: {fmt}")
    return RENDERERS[key](document, branding), MEDIA_TYPES[key], export_filename(document, key)


__all__ = ["render", "render_pdf", "render_docx", "render_html", "export_filename", "MEDIA_TYPES"]
