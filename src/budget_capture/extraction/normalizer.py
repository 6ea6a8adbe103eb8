from __future__ import annotations

import enum
import logging
import secrets
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import CLIENT_NOT_DETECTED, BudgetDocument, BudgetLine
from ..domain.normalize import clean_text, coerce_positive, normalize_display_date, upper_text
from ..logging import get_logger
from .schema import ExtractionPayload

LOG = get_logger("extraction-normalizer")

DOCUMENT_ID_PREFIX = "PRES"


class LineOrder(str, enum.Enum):
    """How lines are ordered in the final document.

    SOURCE keeps the model's reading order across pages. UNPRICED_FIRST moves
    lines without any number (headers, notes) ahead of quantified lines,
    keeping the relative order inside each group.
    """

    SOURCE = "source"
    UNPRICED_FIRST = "unpriced-first"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LineOrder":
        if not value:
            return cls.SOURCE
        v = value.strip().lower().replace("_", "-")
        for member in cls:
            if member.value == v:
                return member
        LOG.warning(f"Unknown line order {value!r}; keeping source order")
        return cls.SOURCE


def new_document_id(now: Optional[datetime] = None) -> str:
    year = (now or datetime.now()).year
    return f"{DOCUMENT_ID_PREFIX}-{year}-{secrets.token_hex(3).upper()}"


class DocumentNormalizer:
    """Turn a decoded model payload into a frozen BudgetDocument.

    Nothing numeric is trusted from the model beyond units and unit price:
    line totals, subtotal, tax and total are always recomputed here.
    """

    LEGACY_TOTAL_KEYS = ("totalPrice", "total", "lineTotal", "amount")

    def __init__(
        self,
        order: LineOrder = LineOrder.SOURCE,
        *,
        today: Optional[date] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.order = order
        self.today = today
        self.id_factory = id_factory or new_document_id

    def build(self, payload: ExtractionPayload) -> BudgetDocument:
        raw_lines = payload.get("lines") or []
        lines = [ln for ln in (self._normalize_line(item) for item in raw_lines) if ln is not None]
        dropped = len(raw_lines) - len(lines)
        lines = self._collapse_repeats(lines)
        lines = self._apply_order(lines)

        if LOG.isEnabledFor(logging.DEBUG):
            LOG.debug(f"Normalized {len(lines)} line(s); dropped {dropped} without description")
            for idx, ln in enumerate(lines, 1):
                LOG.debug(f"LINE {idx:02d}: {ln.description!r} units={ln.units} price={ln.unit_price}")

        frozen = tuple(lines)
        subtotal, tax, total = BudgetDocument.compute_totals(frozen)
        return BudgetDocument(
            id=self.id_factory(),
            client=upper_text(payload.get("client")) or CLIENT_NOT_DETECTED,
            date=normalize_display_date(payload.get("date"), self.today),
            lines=frozen,
            subtotal=subtotal,
            tax=tax,
            total=total,
            notes=clean_text(payload.get("notes")),
        )

    def _normalize_line(self, item: Dict[str, Any]) -> Optional[BudgetLine]:
        description = upper_text(item.get("description"))
        if not description:
            return None
        units = coerce_positive(item.get("units"))
        unit_price = coerce_positive(item.get("unitPrice", item.get("unit_price")))
        if units is None and unit_price is None:
            # A total-only row counts as one unit at that amount.
            for key in self.LEGACY_TOTAL_KEYS:
                amount = coerce_positive(item.get(key))
                if amount is not None:
                    units, unit_price = coerce_positive(1), amount
                    break
        return BudgetLine(description=description, units=units, unit_price=unit_price)

    @staticmethod
    def _collapse_repeats(lines: List[BudgetLine]) -> List[BudgetLine]:
        """Drop a line identical to the one right before it (overlapping photos)."""
        out: List[BudgetLine] = []
        for ln in lines:
            if out and out[-1] == ln:
                LOG.debug(f"Dropping repeated line {ln.description!r}")
                continue
            out.append(ln)
        return out

    def _apply_order(self, lines: List[BudgetLine]) -> List[BudgetLine]:
        if self.order is LineOrder.UNPRICED_FIRST:
            return [ln for ln in lines if not ln.has_numbers] + [ln for ln in lines if ln.has_numbers]
        return lines
