import httpx
import openai
import pytest
import requests

from budget_capture.extraction.errors import (
    EntitlementError,
    ExtractionFailedError,
    MalformedResponseError,
    QuotaExceededError,
    classify_error,
)


def _openai_status_error(cls, status: int, message: str):
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=None)


@pytest.mark.parametrize(
    "exc",
    [
        RuntimeError("429 Too Many Requests"),
        RuntimeError("You exceeded your current quota"),
        RuntimeError("RESOURCE_EXHAUSTED"),
    ],
)
def test_quota_messages(exc):
    assert isinstance(classify_error(exc), QuotaExceededError)


def test_openai_status_errors_are_classified():
    assert isinstance(classify_error(_openai_status_error(openai.RateLimitError, 429, "slow down")), QuotaExceededError)
    assert isinstance(
        classify_error(_openai_status_error(openai.AuthenticationError, 401, "bad key")), EntitlementError
    )
    assert isinstance(classify_error(_openai_status_error(openai.NotFoundError, 404, "no model")), EntitlementError)


def test_entitlement_message_and_http_status():
    assert isinstance(classify_error(RuntimeError("Requested entity was not found.")), EntitlementError)
    resp = requests.Response()
    resp.status_code = 403
    assert isinstance(classify_error(requests.HTTPError("forbidden", response=resp)), EntitlementError)


def test_other_failures_are_generic_and_classified_pass_through():
    err = classify_error(ConnectionError("connection reset"))
    assert isinstance(err, ExtractionFailedError)
    assert err.as_dict()["action"] == "retry"

    malformed = MalformedResponseError("bad")
    assert classify_error(malformed) is malformed
    assert malformed.as_dict()["action"] == "recapture"
