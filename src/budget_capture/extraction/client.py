"""Vision-language model backends.

Each client issues exactly one request per call and returns the raw response
text. Transport/SDK exceptions propagate untouched; the service classifies them.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Protocol

import httpx
import requests
from openai import OpenAI

from ..config import Settings
from ..logging import enable_http_debug, get_logger
from .errors import EntitlementError
from .schema import SCHEMA_NAME, ExtractionRequest

LOG = get_logger("extraction-client")

SYSTEM_PROMPT = (
    "You are a strict JSON generator. Output ONLY a single JSON object that matches the provided schema. "
    "No prose, no markdown fences, no trailing text."
)


class VisionModelClient(Protocol):
    model_name: str

    def generate(self, request: ExtractionRequest) -> Optional[str]:
        ...

    def with_api_key(self, api_key: str) -> "VisionModelClient":
        ...


@dataclass(frozen=True)
class ModelConfig:
    """Configuration set required to talk to a model backend."""

    api_key: str
    model_name: str
    base_url: Optional[str] = None
    max_tokens: int = 8000
    timeout_seconds: int = 180


def _messages(request: ExtractionRequest) -> List[Dict[str, Any]]:
    content: List[Dict[str, Any]] = [{"type": "text", "text": request.instruction}]
    for page in request.pages:
        content.append({"type": "image_url", "image_url": {"url": page.data_url}})
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]


def _require_key(config: ModelConfig) -> None:
    if not config.api_key:
        raise EntitlementError("No API key configured for the model backend")


def _response_format(request: ExtractionRequest) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {"name": SCHEMA_NAME, "strict": True, "schema": request.schema},
    }


class OpenAIVisionClient:
    """One Chat Completions call through the OpenAI SDK with structured output."""

    def __init__(self, config: ModelConfig, *, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.config = config
        self.model_name = config.model_name
        self.transport = transport

    def with_api_key(self, api_key: str) -> "OpenAIVisionClient":
        return OpenAIVisionClient(replace(self.config, api_key=api_key), transport=self.transport)

    def generate(self, request: ExtractionRequest) -> Optional[str]:
        _require_key(self.config)
        if (os.environ.get("OPENAI_LOG") or "").lower() == "debug":
            enable_http_debug()

        http_client = httpx.Client(
            transport=self.transport,
            timeout=httpx.Timeout(connect=10.0, read=float(self.config.timeout_seconds), write=30.0, pool=10.0),
        )
        client = OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            http_client=http_client,
            max_retries=0,
        )
        kwargs: Dict[str, Any] = {
            "model": self.config.model_name,
            "messages": _messages(request),
            "response_format": _response_format(request),
            "max_completion_tokens": self.config.max_tokens,
        }
        if request.reasoning_effort:
            kwargs["reasoning_effort"] = request.reasoning_effort
        else:
            kwargs["temperature"] = request.temperature

        LOG.info(
            "Calling OpenAI model=%s with %d page(s) (~%.2f MiB)",
            self.config.model_name,
            len(request.pages),
            request.payload_megabytes,
        )
        t0 = time.perf_counter()
        try:
            completion = client.chat.completions.create(**kwargs)
        finally:
            http_client.close()

        choice = completion.choices[0] if getattr(completion, "choices", None) else None
        message = getattr(choice, "message", None)
        text = getattr(message, "content", None)
        usage = getattr(completion, "usage", None)
        usage_dict = {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")}
        LOG.info(
            "Chat completion finished in %.2fs id=%s usage=%s",
            time.perf_counter() - t0,
            getattr(completion, "id", None),
            usage_dict,
        )
        refusal = getattr(message, "refusal", None)
        if refusal:
            LOG.warning("Model refused the request: %s", refusal)
        return text


class OpenRouterVisionClient:
    """Same request shape sent to OpenRouter's chat-completions endpoint."""

    ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(self, config: ModelConfig) -> None:
        self.config = config
        self.model_name = config.model_name

    def with_api_key(self, api_key: str) -> "OpenRouterVisionClient":
        return OpenRouterVisionClient(replace(self.config, api_key=api_key))

    def generate(self, request: ExtractionRequest) -> Optional[str]:
        _require_key(self.config)
        payload: Dict[str, Any] = {
            "model": self.config.model_name,
            "messages": _messages(request),
            "temperature": request.temperature,
            "max_tokens": self.config.max_tokens,
            "response_format": _response_format(request),
        }
        if request.reasoning_effort:
            payload["reasoning"] = {"effort": request.reasoning_effort}
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        LOG.info("Calling OpenRouter model=%s with %d page(s)", self.config.model_name, len(request.pages))
        resp = requests.post(
            self.config.base_url or self.ENDPOINT,
            headers=headers,
            json=payload,
            timeout=self.config.timeout_seconds,
        )
        if resp.status_code >= 400:
            LOG.error("OpenRouter HTTP %s: %s", resp.status_code, resp.text[:500])
            raise requests.HTTPError(f"OpenRouter HTTP {resp.status_code}: {resp.text[:500]}", response=resp)

        body = resp.json()
        if isinstance(body, dict) and body.get("error"):
            raise requests.HTTPError(f"OpenRouter error: {body['error']}", response=resp)
        choices = body.get("choices") or []
        if not choices:
            LOG.error("OpenRouter returned no choices: %s", str(body)[:500])
            return None
        message = choices[0].get("message") or {}
        return message.get("content")


def build_client(settings: Settings, *, api_key: Optional[str] = None) -> VisionModelClient:
    """Pick the configured backend. A missing key is allowed: the first call
    then fails as an entitlement error and the user can supply one."""
    key = api_key or settings.api_key or ""
    config = ModelConfig(api_key=key, model_name=settings.model, base_url=settings.base_url)
    if settings.backend == "openrouter":
        LOG.debug("Backend selected: OpenRouter")
        return OpenRouterVisionClient(config)
    LOG.debug("Backend selected: OpenAI")
    return OpenAIVisionClient(config)
