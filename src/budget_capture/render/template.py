"""Print-target HTML layout of a budget (A4, single page).

The same markup feeds the browser preview and the PDF export, so both show
identical client/date/line/total values.
"""

from __future__ import annotations

import re
from html import escape
from typing import List

from ..config import Branding
from ..domain.models import BudgetDocument
from ..domain.normalize import format_money, format_units

TABLE_HEADERS = ("DESCRIPCION", "UNIDADES", "Precio Unitario (€)", "Precio (€)")
TAX_LABEL = "IVA 21%"

TEMPLATE_CSS = """
body { font-family: sans-serif; font-size: 10pt; color: #000; line-height: 1.4; }
.watermark { text-align: center; font-size: 30pt; font-weight: bold; font-style: italic;
             color: #93c5fd; letter-spacing: 4pt; }
.issuer-name { font-size: 14pt; font-weight: bold; margin: 0; }
.issuer-line { font-size: 9pt; margin: 0; }
.meta { margin-top: 18pt; margin-bottom: 12pt; }
.meta p { margin: 2pt 0; font-weight: bold; }
.meta span { text-decoration: underline; }
table.lines { width: 100%; border-collapse: collapse; font-size: 8.5pt; }
table.lines th { background-color: #334155; color: #fff; border: 1px solid #000; padding: 4pt; }
table.lines td { border: 1px solid #000; padding: 4pt; font-weight: bold; }
td.num { text-align: right; }
td.units { text-align: center; }
table.totals { margin-top: 12pt; margin-left: auto; width: 45%; border-collapse: collapse; }
table.totals td { border: 1px solid #000; padding: 3pt; font-weight: bold; }
table.totals tr.grand td { background-color: #f1f5f9; }
.terms-title { margin-top: 20pt; font-weight: bold; font-style: italic; text-decoration: underline; }
.terms li { font-size: 8pt; font-weight: bold; }
.notes { margin-top: 14pt; font-size: 8pt; color: #dc2626; font-weight: bold; font-style: italic; }
.footer { margin-top: 30pt; text-align: center; font-size: 7pt; color: #9ca3af; }
"""


def _issuer_block(branding: Branding) -> List[str]:
    parts = [f'<p class="issuer-name">{escape(branding.issuer_name)}</p>']
    for line in (branding.address_line, branding.contact_line, branding.tax_id_line):
        if line:
            parts.append(f'<p class="issuer-line">{escape(line)}</p>')
    return parts


def render_body(document: BudgetDocument, branding: Branding) -> str:
    """Return the template body markup (no <html>/<head>)."""
    out: List[str] = [f'<div class="watermark">{escape(branding.title)}</div>']
    out.extend(_issuer_block(branding))
    out.append('<div class="meta">')
    out.append(f"<p>Cliente: <span>{escape(document.client)}</span></p>")
    out.append(f"<p>Fecha: <span>{escape(document.date)}</span></p>")
    out.append("</div>")

    out.append('<table class="lines"><thead><tr>')
    out.extend(f"<th>{escape(h)}</th>" for h in TABLE_HEADERS)
    out.append("</tr></thead><tbody>")
    for line in document.lines:
        out.append(
            "<tr>"
            f"<td>{escape(line.description)}</td>"
            f'<td class="units">{escape(format_units(line.units))}</td>'
            f'<td class="num">{escape(format_money(line.unit_price))}</td>'
            f'<td class="num">{escape(format_money(line.line_total))}</td>'
            "</tr>"
        )
    out.append("</tbody></table>")

    out.append('<table class="totals">')
    out.append(f'<tr><td>TOTAL €</td><td class="num">{format_money(document.subtotal)}</td></tr>')
    out.append(f'<tr><td>{TAX_LABEL}</td><td class="num">{format_money(document.tax)}</td></tr>')
    out.append(f'<tr class="grand"><td>TOTAL</td><td class="num">{format_money(document.total)}</td></tr>')
    out.append("</table>")

    if branding.terms:
        out.append('<p class="terms-title">IMPORTANTE:</p><ul class="terms">')
        out.extend(f"<li>{escape(t)}</li>" for t in branding.terms)
        out.append("</ul>")
    if document.notes:
        out.append(f'<p class="notes">{escape(document.notes)}</p>')
    out.append(f'<div class="watermark">{escape(branding.title)}</div>')
    if branding.footer:
        out.append(f'<div class="footer">{escape(branding.footer)}</div>')
    return "\n".join(out)


def render_html(document: BudgetDocument, branding: Branding) -> str:
    """Full standalone HTML page for preview/printing."""
    return (
        "<!DOCTYPE html>\n"
        '<html lang="es"><head><meta charset="utf-8">'
        f"<title>{escape(branding.title)} {escape(document.id)}</title>"
        "<style>@page { size: A4; margin: 15mm; }"
        f"{TEMPLATE_CSS}</style></head>"
        f"<body>\n{render_body(document, branding)}\n</body></html>\n"
    )


def export_filename(document: BudgetDocument, ext: str) -> str:
    """Presupuesto_<id>_<CLIENT>.<ext>, whitespace -> underscores, path-safe."""
    client = re.sub(r"\s+", "_", document.client.strip())
    client = re.sub(r"[^\w.-]", "", client) or "CLIENTE"
    return f"Presupuesto_{document.id}_{client}.{ext.lstrip('.')}"
