from __future__ import annotations

import time
from datetime import date
from typing import Optional, Sequence

from ..capture import CapturedPage
from ..domain.models import BudgetDocument
from ..logging import get_logger
from .client import VisionModelClient
from .errors import ExtractionFailedError, NoPagesError, classify_error
from .normalizer import DocumentNormalizer
from .parser import decode_payload, parse_model_text
from .schema import build_request

LOG = get_logger("extraction-service")


class BudgetExtractionService:
    """Pages in, BudgetDocument out: request, call, parse, validate, normalize.

    All-or-nothing: any failure raises an ExtractionError subclass and no
    document is produced. Only generic/network failures are retried, and only
    when ``max_retries`` > 0.
    """

    def __init__(
        self,
        client: VisionModelClient,
        *,
        normalizer: Optional[DocumentNormalizer] = None,
        max_retries: int = 0,
        retry_backoff_seconds: float = 1.0,
        reasoning_effort: Optional[str] = None,
    ) -> None:
        self.client = client
        self.normalizer = normalizer or DocumentNormalizer()
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff_seconds = retry_backoff_seconds
        self.reasoning_effort = reasoning_effort

    def use_api_key(self, api_key: str) -> None:
        """Switch credentials after an entitlement or quota error."""
        self.client = self.client.with_api_key(api_key)
        LOG.info("Model credentials switched")

    def extract(self, pages: Sequence[CapturedPage], *, today: Optional[date] = None) -> BudgetDocument:
        if not pages:
            raise NoPagesError("No pages supplied for extraction")
        request = build_request(pages, today=today or self.normalizer.today, reasoning_effort=self.reasoning_effort)
        text = self._call_with_retries(request)
        payload = decode_payload(parse_model_text(text))
        document = self.normalizer.build(payload)
        LOG.info(
            "Extracted budget %s for %s: %d line(s), total %.2f",
            document.id,
            document.client,
            len(document.lines),
            document.total,
        )
        return document

    def _call_with_retries(self, request) -> Optional[str]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.client.generate(request)
            except Exception as exc:  # SDK/transport errors are classified below
                err = classify_error(exc)
                if not isinstance(err, ExtractionFailedError) or attempt > self.max_retries:
                    if err is exc:
                        raise
                    raise err from exc
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                LOG.warning(f"Attempt {attempt}/{self.max_retries + 1} failed ({exc}); retrying in {delay:.1f}s")
                time.sleep(delay)


__all__ = ["BudgetExtractionService"]
