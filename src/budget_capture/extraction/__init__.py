"""Extraction pipeline: captured pages -> vision model -> BudgetDocument.

Modules:
- schema: wire shape, JSON schema and instruction for the model
- client: OpenAI / OpenRouter backends (one request per extraction)
- parser: response text -> validated payload
- normalizer: payload -> BudgetDocument with derived totals
- errors: error taxonomy and classification
- service: the pipeline itself
"""

from .client import OpenAIVisionClient, OpenRouterVisionClient, VisionModelClient, build_client
from .errors import (
    EmptyResponseError,
    EntitlementError,
    ExtractionError,
    ExtractionFailedError,
    MalformedResponseError,
    NoPagesError,
    QuotaExceededError,
    classify_error,
)
from .normalizer import DocumentNormalizer, LineOrder
from .service import BudgetExtractionService

__all__ = [
    "BudgetExtractionService",
    "DocumentNormalizer",
    "LineOrder",
    "VisionModelClient",
    "OpenAIVisionClient",
    "OpenRouterVisionClient",
    "build_client",
    "ExtractionError",
    "NoPagesError",
    "MalformedResponseError",
    "EmptyResponseError",
    "EntitlementError",
    "QuotaExceededError",
    "ExtractionFailedError",
    "classify_error",
]
