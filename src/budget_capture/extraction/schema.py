from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypedDict

from ..capture import CapturedPage
from ..domain.normalize import today_display
from .errors import NoPagesError


class ExtractionLine(TypedDict, total=False):
    description: str
    units: float
    unitPrice: float


class ExtractionPayload(TypedDict, total=False):
    client: str
    date: str
    lines: List[ExtractionLine]
    notes: str


SCHEMA_NAME = "budget_extraction"


def budget_schema() -> Dict[str, Any]:
    """JSON schema of ExtractionPayload, sent as strict structured output."""
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["client", "date", "lines", "notes"],
        "properties": {
            "client": {"type": "string", "description": "Nombre del cliente"},
            "date": {"type": "string", "description": "Fecha del presupuesto (formato DD/MM/AAAA)"},
            "lines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["description", "units", "unitPrice"],
                    "properties": {
                        "description": {"type": "string"},
                        "units": {"type": ["number", "null"]},
                        "unitPrice": {"type": ["number", "null"]},
                    },
                },
            },
            "notes": {
                "type": ["string", "null"],
                "description": "Notas sobre datos ilegibles o discrepancias",
            },
        },
    }


def build_instruction(today: Optional[date] = None) -> str:
    return f"""
Analiza las imágenes de un presupuesto manuscrito. Todas las imágenes son páginas
(o fotos parciales) del MISMO documento: combínalas en un único resultado.

REGLAS DE EXTRACCIÓN:
1. Lee el Cliente y la Fecha. Si no hay fecha legible, usa la de hoy: {today_display(today)}.
2. Extrae cada partida de trabajo (Descripción, Unidades, Precio Unitario).
3. Si una línea no tiene números (títulos, notas), inclúyela igualmente con unidades y precio unitario en null.
4. Si una línea solo muestra un importe total sin precio unitario, usa unidades = 1 y ese importe como precio unitario.
5. Si varias fotos se solapan (la misma zona fotografiada dos veces), NO dupliques la misma partida.
6. Respeta el orden de lectura original del documento a lo largo de todas las páginas.
7. Corrige faltas de ortografía evidentes (ej. 'guita' -> 'gota').
8. Si algo es ilegible, deja el campo vacío y añade una nota: "Hay datos ilegibles en la foto en la línea X".
9. No calcules totales ni IVA: solo transcribe.

Devuelve solo el JSON.
""".strip()


@dataclass(frozen=True)
class ExtractionRequest:
    pages: Tuple[CapturedPage, ...]
    instruction: str
    schema: Dict[str, Any]
    temperature: float = 0.0
    reasoning_effort: Optional[str] = None

    @property
    def payload_megabytes(self) -> float:
        return round(sum(len(p.data) for p in self.pages) / (1024 * 1024), 2)


def build_request(
    pages: Sequence[CapturedPage],
    *,
    today: Optional[date] = None,
    reasoning_effort: Optional[str] = None,
) -> ExtractionRequest:
    if not pages:
        raise NoPagesError("No pages supplied for extraction")
    return ExtractionRequest(
        pages=tuple(pages),
        instruction=build_instruction(today),
        schema=budget_schema(),
        temperature=0.0,
        reasoning_effort=reasoning_effort,
    )
