from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

TAX_RATE = Decimal("0.21")
CLIENT_NOT_DETECTED = "CLIENTE NO DETECTADO"
DATE_FORMAT = "%d/%m/%Y"


def _dec(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _num(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class BudgetLine:
    description: str
    units: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None

    @property
    def line_total(self) -> Optional[Decimal]:
        if self.units is None or self.unit_price is None:
            return None
        return self.units * self.unit_price

    @property
    def has_numbers(self) -> bool:
        return self.units is not None or self.unit_price is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "units": _num(self.units),
            "unitPrice": _num(self.unit_price),
            "lineTotal": _num(self.line_total),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BudgetLine":
        return cls(
            description=str(data["description"]),
            units=_dec(data.get("units")),
            unit_price=_dec(data.get("unitPrice")),
        )


@dataclass(frozen=True)
class BudgetDocument:
    """Canonical extraction result consumed by every renderer.

    subtotal/tax/total are derived from ``lines`` by the normalizer and
    re-derived on load, so a stored document can never disagree with its rows.
    """

    id: str
    client: str
    date: str
    lines: Tuple[BudgetLine, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    notes: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    @staticmethod
    def compute_totals(lines: Tuple[BudgetLine, ...]) -> Tuple[Decimal, Decimal, Decimal]:
        subtotal = sum((ln.line_total for ln in lines if ln.line_total is not None), Decimal("0"))
        tax = subtotal * TAX_RATE
        return subtotal, tax, subtotal + tax

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client": self.client,
            "date": self.date,
            "lines": [ln.to_dict() for ln in self.lines],
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "total": float(self.total),
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BudgetDocument":
        lines = tuple(BudgetLine.from_dict(ln) for ln in data.get("lines") or [])
        subtotal, tax, total = cls.compute_totals(lines)
        return cls(
            id=str(data["id"]),
            client=str(data.get("client") or CLIENT_NOT_DETECTED),
            date=str(data.get("date") or ""),
            lines=lines,
            subtotal=subtotal,
            tax=tax,
            total=total,
            notes=data.get("notes"),
            created_at=str(data.get("createdAt") or datetime.now().isoformat(timespec="seconds")),
        )


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    captured_at: str
    client: str
    total: Decimal
    document: BudgetDocument

    @classmethod
    def from_document(cls, document: BudgetDocument, *, captured_at: Optional[str] = None) -> "HistoryEntry":
        return cls(
            id=document.id,
            captured_at=captured_at or datetime.now().isoformat(timespec="seconds"),
            client=document.client,
            total=document.total,
            document=document,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "capturedAt": self.captured_at,
            "client": self.client,
            "total": float(self.total),
            "document": self.document.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        document = BudgetDocument.from_dict(data["document"])
        return cls(
            id=str(data.get("id") or document.id),
            captured_at=str(data.get("capturedAt") or document.created_at),
            client=document.client,
            total=document.total,
            document=document,
        )
