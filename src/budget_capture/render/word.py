"""Word export built natively with python-docx, mirroring the HTML template."""

from __future__ import annotations

import io
from typing import Optional

from docx import Document
from docx.enum.table import WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Cm, Pt, RGBColor

from ..config import Branding
from ..domain.models import BudgetDocument
from ..domain.normalize import format_money, format_units
from ..logging import get_logger
from .template import TABLE_HEADERS, TAX_LABEL

LOG = get_logger("render-docx")

HEADER_FILL = "334155"
GRAND_TOTAL_FILL = "F1F5F9"
WATERMARK_COLOR = RGBColor(0x93, 0xC5, 0xFD)


def _shade(cell, fill: str) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    tc_pr.append(shd)


def _write(
    cell,
    text: str,
    *,
    size: float = 9,
    bold: bool = True,
    align: Optional[int] = None,
    color: Optional[RGBColor] = None,
) -> None:
    para = cell.paragraphs[0]
    if align is not None:
        para.alignment = align
    run = para.add_run(text)
    run.bold = bold
    run.font.size = Pt(size)
    if color is not None:
        run.font.color.rgb = color


def _watermark(doc, title: str, size: int) -> None:
    para = doc.add_paragraph()
    para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = para.add_run(title)
    run.bold = True
    run.italic = True
    run.font.size = Pt(size)
    run.font.color.rgb = WATERMARK_COLOR


def render_docx(document: BudgetDocument, branding: Branding) -> bytes:
    doc = Document()
    for section in doc.sections:
        section.page_width, section.page_height = Cm(21.0), Cm(29.7)
        section.top_margin = section.bottom_margin = Cm(1.27)
        section.left_margin = section.right_margin = Cm(1.27)

    _watermark(doc, branding.title, 24)

    name = doc.add_paragraph().add_run(branding.issuer_name)
    name.bold = True
    name.font.size = Pt(12)
    for line in (branding.address_line, branding.contact_line, branding.tax_id_line):
        if line:
            doc.add_paragraph().add_run(line).font.size = Pt(7)

    for label, value in (("Cliente: ", document.client), ("Fecha: ", document.date)):
        para = doc.add_paragraph()
        para.add_run(label).bold = True
        run = para.add_run(value)
        run.bold = True
        run.underline = True

    table = doc.add_table(rows=1, cols=len(TABLE_HEADERS))
    table.style = "Table Grid"
    for cell, header in zip(table.rows[0].cells, TABLE_HEADERS):
        _shade(cell, HEADER_FILL)
        _write(cell, header, size=8, align=WD_ALIGN_PARAGRAPH.CENTER, color=RGBColor(0xFF, 0xFF, 0xFF))
    for line in document.lines:
        cells = table.add_row().cells
        _write(cells[0], line.description)
        _write(cells[1], format_units(line.units), align=WD_ALIGN_PARAGRAPH.CENTER)
        _write(cells[2], format_money(line.unit_price), align=WD_ALIGN_PARAGRAPH.RIGHT)
        _write(cells[3], format_money(line.line_total), align=WD_ALIGN_PARAGRAPH.RIGHT)

    doc.add_paragraph()
    totals = doc.add_table(rows=0, cols=2)
    totals.style = "Table Grid"
    totals.alignment = WD_TABLE_ALIGNMENT.RIGHT
    rows = (
        ("TOTAL €", document.subtotal, None),
        (TAX_LABEL, document.tax, None),
        ("TOTAL", document.total, GRAND_TOTAL_FILL),
    )
    for label, amount, fill in rows:
        cells = totals.add_row().cells
        _write(cells[0], label, size=8)
        _write(cells[1], format_money(amount), size=10 if fill else 8, align=WD_ALIGN_PARAGRAPH.RIGHT)
        if fill:
            _shade(cells[0], fill)
            _shade(cells[1], fill)

    if branding.terms:
        heading = doc.add_paragraph().add_run("IMPORTANTE:")
        heading.bold = heading.italic = heading.underline = True
        for term in branding.terms:
            run = doc.add_paragraph().add_run(f"• {term}")
            run.bold = True
            run.font.size = Pt(7)

    if document.notes:
        run = doc.add_paragraph().add_run(document.notes)
        run.italic = run.bold = True
        run.font.size = Pt(7)
        run.font.color.rgb = RGBColor(0xDC, 0x26, 0x26)

    _watermark(doc, branding.title, 18)
    if branding.footer:
        para = doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = para.add_run(branding.footer)
        run.font.size = Pt(6)

    doc.core_properties.title = f"{branding.title} {document.id}"
    buf = io.BytesIO()
    doc.save(buf)
    data = buf.getvalue()
    LOG.info(f"Rendered DOCX for {document.id} ({len(data)} bytes)")
    return data
