"""Error taxonomy surfaced by the extraction pipeline.

Callers branch on the concrete class (or ``kind``) to decide what to show:
entitlement problems ask for other credentials, quota problems offer the same,
malformed output asks for a new capture, anything else is a plain failure.
"""

from __future__ import annotations

from typing import Optional

import openai

from ..logging import get_logger

LOG = get_logger("extraction-errors")

ACTION_SELECT_CREDENTIALS = "select_credentials"
ACTION_RETRY = "retry"
ACTION_RECAPTURE = "recapture"


class ExtractionError(Exception):
    kind = "generic"
    action = ACTION_RETRY
    user_message = "Error al procesar la imagen con IA. Inténtalo de nuevo."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)

    def as_dict(self) -> dict:
        return {"error": self.kind, "message": self.user_message, "action": self.action, "detail": str(self)}


class NoPagesError(ExtractionError):
    kind = "no_pages"
    action = ACTION_RECAPTURE
    user_message = "Captura al menos una página antes de procesar."


class MalformedResponseError(ExtractionError):
    kind = "malformed_response"
    action = ACTION_RECAPTURE
    user_message = "La IA devolvió datos con un formato inesperado. Vuelve a capturar el presupuesto."


class EmptyResponseError(MalformedResponseError):
    kind = "empty_response"
    user_message = "La IA no devolvió ningún dato. Vuelve a capturar el presupuesto."


class EntitlementError(ExtractionError):
    kind = "entitlement"
    action = ACTION_SELECT_CREDENTIALS
    user_message = "La clave de API no tiene acceso al modelo. Selecciona otra clave."


class QuotaExceededError(ExtractionError):
    kind = "quota"
    action = ACTION_SELECT_CREDENTIALS
    user_message = "Se ha agotado la cuota de la clave de API. Espera un momento o selecciona otra clave."


class ExtractionFailedError(ExtractionError):
    """Network failure or any other unclassified rejection."""


_ENTITLEMENT_MARKERS = (
    "requested entity was not found",
    "entity not found",
    "api key not valid",
    "invalid api key",
    "incorrect api key",
    "permission denied",
    "does not have access",
    "model_not_found",
)
_QUOTA_MARKERS = ("429", "quota", "resource_exhausted", "rate limit", "rate_limit", "exhausted")


def _status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "status_code", None)
    if code is None:
        code = getattr(getattr(exc, "response", None), "status_code", None)
    return code if isinstance(code, int) else None


def classify_error(exc: BaseException) -> ExtractionError:
    """Map an exception raised around the model call onto the taxonomy.

    Already classified errors pass through unchanged. The returned error is
    meant to be raised ``from exc`` by the caller.
    """
    if isinstance(exc, ExtractionError):
        return exc

    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    status = _status_code(exc)

    if isinstance(exc, openai.RateLimitError) or status == 429 or any(m in lowered for m in _QUOTA_MARKERS):
        LOG.warning(f"Model quota/rate limit reached: {message[:300]}")
        return QuotaExceededError(message)
    if (
        isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError))
        or status in (401, 403, 404)
        or any(m in lowered for m in _ENTITLEMENT_MARKERS)
    ):
        LOG.warning(f"Model rejected the credentials: {message[:300]}")
        return EntitlementError(message)

    LOG.error(f"Model call failed: {message[:300]}")
    return ExtractionFailedError(message)
