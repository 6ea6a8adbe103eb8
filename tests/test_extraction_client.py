from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import openai
import pytest
import requests

from budget_capture.capture import load_page
from budget_capture.config import Settings
from budget_capture.extraction import client as client_mod
from budget_capture.extraction import (
    EntitlementError,
    ExtractionFailedError,
    OpenAIVisionClient,
    OpenRouterVisionClient,
    QuotaExceededError,
    build_client,
    classify_error,
)
from budget_capture.extraction.client import ModelConfig
from budget_capture.extraction.schema import SCHEMA_NAME, build_request

from conftest import SAMPLE_PAYLOAD, jpeg_bytes, payload_text


def _pages():
    return [load_page(jpeg_bytes(color=(255, 0, 0))), load_page(jpeg_bytes(color=(0, 0, 255)))]


def _completion(content: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "fake-model",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def _settings(backend: str, api_key: str = "key") -> Settings:
    return Settings(
        backend=backend,
        model="fake-model",
        api_key=api_key,
        base_url=None,
        line_order="source",
        max_retries=0,
        history_path="history.json",
        output_dir="exports",
        project_root=".",
    )


def _assert_request_shape(body: Dict[str, Any], pages) -> None:
    system, user = body["messages"]
    assert system["role"] == "system"
    parts = user["content"]
    assert parts[0]["type"] == "text"
    assert [p["image_url"]["url"] for p in parts[1:]] == [p.data_url for p in pages]
    fmt = body["response_format"]
    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["name"] == SCHEMA_NAME
    assert fmt["json_schema"]["strict"] is True
    assert body["temperature"] == 0.0


def test_openai_client_sends_pages_in_order_with_strict_schema(monkeypatch):
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_completion(payload_text(SAMPLE_PAYLOAD)))

    pages = _pages()
    client = OpenAIVisionClient(
        ModelConfig(api_key="sk-test", model_name="fake-model"), transport=httpx.MockTransport(handler)
    )
    text = client.generate(build_request(pages))

    assert json.loads(text)["client"] == "juan pérez"
    assert len(captured) == 1
    assert captured[0].url.path.endswith("/chat/completions")
    assert captured[0].headers["authorization"] == "Bearer sk-test"
    body = json.loads(captured[0].content)
    assert body["model"] == "fake-model"
    assert "reasoning_effort" not in body
    _assert_request_shape(body, pages)


def test_openai_client_does_not_retry_and_errors_classify(monkeypatch):
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, json={"error": {"message": "quota", "type": "insufficient_quota"}})

    client = OpenAIVisionClient(ModelConfig(api_key="sk-test", model_name="m"), transport=httpx.MockTransport(handler))
    with pytest.raises(openai.RateLimitError) as info:
        client.generate(build_request(_pages()))
    assert len(calls) == 1
    assert isinstance(classify_error(info.value), QuotaExceededError)

    rebound = client.with_api_key("sk-other")
    assert rebound.transport is client.transport
    assert rebound.config.api_key == "sk-other"


def test_missing_key_fails_before_any_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = OpenAIVisionClient(ModelConfig(api_key="", model_name="m"), transport=httpx.MockTransport(handler))
    with pytest.raises(EntitlementError):
        client.generate(build_request(_pages()))


class _FakeResponse:
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body)

    def json(self) -> Any:
        return self._body


def _patch_post(monkeypatch, response: _FakeResponse) -> List[Dict[str, Any]]:
    sent: List[Dict[str, Any]] = []

    def fake_post(url, headers=None, json=None, timeout=None):
        sent.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return response

    monkeypatch.setattr(client_mod.requests, "post", fake_post)
    return sent


def test_openrouter_client_payload(monkeypatch):
    sent = _patch_post(monkeypatch, _FakeResponse(200, _completion('{"client": "A", "lines": []}')))
    pages = _pages()
    client = OpenRouterVisionClient(ModelConfig(api_key="or-key", model_name="google/gemini-2.5-flash"))

    assert client.generate(build_request(pages)) == '{"client": "A", "lines": []}'
    assert sent[0]["url"] == OpenRouterVisionClient.ENDPOINT
    assert sent[0]["headers"]["Authorization"] == "Bearer or-key"
    _assert_request_shape(sent[0]["json"], pages)


def test_openrouter_no_choices_returns_none(monkeypatch):
    _patch_post(monkeypatch, _FakeResponse(200, {"choices": []}))
    client = OpenRouterVisionClient(ModelConfig(api_key="or-key", model_name="m"))
    assert client.generate(build_request(_pages())) is None


@pytest.mark.parametrize(
    "status, body, expected",
    [
        (401, {"error": {"message": "No auth credentials found"}}, EntitlementError),
        (500, {"error": {"message": "upstream failed"}}, ExtractionFailedError),
        (200, {"error": {"message": "Rate limit exceeded", "code": 429}}, QuotaExceededError),
    ],
)
def test_openrouter_errors_raise_http_error(monkeypatch, status, body, expected):
    _patch_post(monkeypatch, _FakeResponse(status, body))
    client = OpenRouterVisionClient(ModelConfig(api_key="or-key", model_name="m"))
    with pytest.raises(requests.HTTPError) as info:
        client.generate(build_request(_pages()))
    assert isinstance(classify_error(info.value), expected)


def test_build_client_picks_backend_and_key_override():
    assert isinstance(build_client(_settings("openai")), OpenAIVisionClient)
    router = build_client(_settings("openrouter", api_key=""), api_key="override")
    assert isinstance(router, OpenRouterVisionClient)
    assert router.config.api_key == "override"
    assert router.model_name == "fake-model"
