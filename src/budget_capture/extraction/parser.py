from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from ..logging import get_logger
from .errors import EmptyResponseError, MalformedResponseError
from .schema import ExtractionLine, ExtractionPayload

LOG = get_logger("extraction-parser")

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*(.*?)\s*```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """If the model wrapped its JSON in ``` or ```json fences, return the inner content."""
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_model_text(text: Optional[str]) -> Dict[str, Any]:
    """Parse the raw model text into a JSON object.

    No scavenging: truncated or non-JSON output is a MalformedResponseError so
    the caller can ask for a new capture instead of rendering half a budget.
    """
    if text is None or not str(text).strip():
        raise EmptyResponseError("Model returned an empty response")
    body = strip_code_fence(str(text))
    try:
        data = json.loads(body)
    except (ValueError, RecursionError) as exc:
        # JSONDecodeError, oversized integers and runaway nesting all land here.
        LOG.error(f"Model output is not valid JSON; first 500 chars: {body[:500]!r}")
        raise MalformedResponseError(f"Invalid JSON from model: {str(exc)[:200]}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def decode_payload(data: Dict[str, Any]) -> ExtractionPayload:
    """Validate the parsed object against the extraction shape.

    Only structural problems are errors here; value cleaning (empty
    descriptions, non-numeric amounts) belongs to the normalizer.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError("Payload must be a JSON object")

    payload: ExtractionPayload = {}
    for key in ("client", "date", "notes"):
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise MalformedResponseError(f"{key} must be a string")
        payload[key] = value  # type: ignore[literal-required]

    raw_lines = data.get("lines")
    if raw_lines is None:
        raw_lines = data.get("items", [])
    if not isinstance(raw_lines, list):
        raise MalformedResponseError("lines must be an array")

    lines: List[ExtractionLine] = []
    for idx, item in enumerate(raw_lines):
        if isinstance(item, str):
            lines.append({"description": item})
            continue
        if not isinstance(item, dict):
            raise MalformedResponseError(f"lines[{idx}] must be an object")
        lines.append(dict(item))  # type: ignore[arg-type]
    payload["lines"] = lines
    LOG.debug(f"Decoded payload with {len(lines)} raw line(s)")
    return payload
