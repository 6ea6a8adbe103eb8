from __future__ import annotations

import io
import json
from datetime import date
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from budget_capture.capture import CapturedPage, load_page
from budget_capture.config import Branding
from budget_capture.extraction import BudgetExtractionService, DocumentNormalizer


def jpeg_bytes(width: int = 40, height: int = 30, color=(200, 200, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeVisionClient:
    """Records requests and replays canned responses (text or exceptions)."""

    def __init__(self, responses: List[Any], *, model_name: str = "fake-model", api_key: str = "k1") -> None:
        self.responses = list(responses)
        self.model_name = model_name
        self.api_key = api_key
        self.requests: List[Any] = []

    def generate(self, request) -> Optional[str]:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def with_api_key(self, api_key: str) -> "FakeVisionClient":
        clone = FakeVisionClient(self.responses, model_name=self.model_name, api_key=api_key)
        clone.requests = self.requests
        return clone


def payload_text(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


SAMPLE_PAYLOAD = {
    "client": "juan pérez",
    "date": "12/03/2025",
    "lines": [
        {"description": "Pintar salón", "units": 10, "unitPrice": 5},
        {"description": "Incluye material", "units": None, "unitPrice": None},
    ],
    "notes": None,
}


@pytest.fixture
def page() -> CapturedPage:
    return load_page(jpeg_bytes())


@pytest.fixture
def branding() -> Branding:
    return Branding(issuer_name="Taller de Prueba", address_line="Calle Mayor 1", footer="Gracias")


@pytest.fixture
def fixed_ids():
    counter = iter(range(1, 1000))
    return lambda: f"PRES-2025-{next(counter):06X}"


@pytest.fixture
def make_service(fixed_ids):
    def _make(responses: List[Any], **kwargs) -> BudgetExtractionService:
        normalizer = DocumentNormalizer(today=date(2025, 3, 12), id_factory=fixed_ids)
        kwargs.setdefault("retry_backoff_seconds", 0)
        return BudgetExtractionService(FakeVisionClient(responses), normalizer=normalizer, **kwargs)

    return _make
