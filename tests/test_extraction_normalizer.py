from datetime import date
from decimal import Decimal

from budget_capture.domain.models import CLIENT_NOT_DETECTED
from budget_capture.extraction.normalizer import DocumentNormalizer, LineOrder, new_document_id


def _normalizer(order=LineOrder.SOURCE):
    return DocumentNormalizer(order, today=date(2025, 3, 12), id_factory=lambda: "PRES-2025-000001")


def test_priced_line_and_note_line_totals():
    doc = _normalizer().build(
        {
            "client": "juan pérez",
            "date": "12/03/2025",
            "lines": [
                {"description": "Pintar salón", "units": 10, "unitPrice": 5},
                {"description": "Incluye material", "units": None, "unitPrice": None},
            ],
        }
    )
    assert doc.client == "JUAN PÉREZ"
    assert [ln.description for ln in doc.lines] == ["PINTAR SALÓN", "INCLUYE MATERIAL"]
    assert doc.lines[0].line_total == Decimal("50")
    assert doc.lines[1].line_total is None
    assert doc.subtotal == Decimal("50")
    assert doc.tax == Decimal("10.50")
    assert doc.total == Decimal("60.50")


def test_empty_descriptions_dropped_and_non_positive_coerced():
    doc = _normalizer().build(
        {
            "lines": [
                {"description": "   ", "units": 3, "unitPrice": 4},
                {"description": "Lijar", "units": 0, "unitPrice": -2},
                {"description": "Masilla", "units": "2", "unitPrice": "7,50"},
            ]
        }
    )
    assert [ln.description for ln in doc.lines] == ["LIJAR", "MASILLA"]
    assert doc.lines[0].units is None and doc.lines[0].unit_price is None
    assert doc.lines[1].line_total == Decimal("15.00")
    assert doc.subtotal == Decimal("15.00")


def test_total_only_line_counts_as_one_unit():
    doc = _normalizer().build({"lines": [{"description": "Desplazamiento", "totalPrice": 30}]})
    line = doc.lines[0]
    assert line.units == Decimal("1")
    assert line.unit_price == Decimal("30")
    assert doc.total == Decimal("36.30")


def test_client_and_date_defaults():
    doc = _normalizer().build({"client": "  ", "lines": []})
    assert doc.client == CLIENT_NOT_DETECTED
    assert doc.date == "12/03/2025"
    assert doc.lines == ()
    assert doc.total == Decimal("0")


def test_consecutive_repeats_collapse_but_distant_ones_stay():
    line = {"description": "Pintar", "units": 1, "unitPrice": 10}
    other = {"description": "Lijar", "units": 1, "unitPrice": 5}
    doc = _normalizer().build({"lines": [line, dict(line), other, dict(line)]})
    assert [ln.description for ln in doc.lines] == ["PINTAR", "LIJAR", "PINTAR"]


def test_source_order_is_default_and_unpriced_first_is_stable():
    lines = [
        {"description": "A", "units": 1, "unitPrice": 1},
        {"description": "titulo"},
        {"description": "B", "units": 2, "unitPrice": 2},
        {"description": "nota"},
    ]
    assert [ln.description for ln in _normalizer().build({"lines": lines}).lines] == ["A", "TITULO", "B", "NOTA"]
    ordered = _normalizer(LineOrder.UNPRICED_FIRST).build({"lines": lines})
    assert [ln.description for ln in ordered.lines] == ["TITULO", "NOTA", "A", "B"]


def test_line_order_parse_falls_back_to_source():
    assert LineOrder.parse("unpriced_first") is LineOrder.UNPRICED_FIRST
    assert LineOrder.parse(None) is LineOrder.SOURCE
    assert LineOrder.parse("alphabetical") is LineOrder.SOURCE


def test_document_ids_are_unique():
    ids = {new_document_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("PRES-") for i in ids)
