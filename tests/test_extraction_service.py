from decimal import Decimal

import pytest

from budget_capture.extraction import (
    EntitlementError,
    ExtractionFailedError,
    MalformedResponseError,
    NoPagesError,
    QuotaExceededError,
)

from conftest import SAMPLE_PAYLOAD, payload_text


def test_extract_builds_document_from_one_request(make_service, page):
    service = make_service([payload_text(SAMPLE_PAYLOAD)])
    doc = service.extract([page, page])

    assert len(service.client.requests) == 1
    request = service.client.requests[0]
    assert len(request.pages) == 2
    assert "12/03/2025" in request.instruction
    assert request.temperature == 0.0
    assert doc.id == "PRES-2025-000001"
    assert doc.total == Decimal("60.50")


def test_zero_pages_rejected_before_any_call(make_service):
    service = make_service([])
    with pytest.raises(NoPagesError):
        service.extract([])
    assert service.client.requests == []


def test_malformed_response_yields_no_document(make_service, page):
    service = make_service(['{"client": "A", "lines": ['])
    with pytest.raises(MalformedResponseError):
        service.extract([page])


def test_quota_error_is_not_retried(make_service, page):
    service = make_service([RuntimeError("429 quota exceeded"), payload_text(SAMPLE_PAYLOAD)], max_retries=3)
    with pytest.raises(QuotaExceededError) as info:
        service.extract([page])
    assert isinstance(info.value.__cause__, RuntimeError)
    assert len(service.client.requests) == 1


def test_generic_failures_retry_up_to_the_bound(make_service, page):
    service = make_service([ConnectionError("reset"), payload_text(SAMPLE_PAYLOAD)], max_retries=1)
    assert service.extract([page]).total == Decimal("60.50")
    assert len(service.client.requests) == 2

    service = make_service([ConnectionError("reset"), ConnectionError("reset again")], max_retries=1)
    with pytest.raises(ExtractionFailedError):
        service.extract([page])


def test_no_retry_by_default(make_service, page):
    service = make_service([ConnectionError("reset"), payload_text(SAMPLE_PAYLOAD)])
    with pytest.raises(ExtractionFailedError):
        service.extract([page])
    assert len(service.client.requests) == 1


def test_switching_credentials_after_entitlement_error(make_service, page):
    service = make_service([RuntimeError("API key not valid"), payload_text(SAMPLE_PAYLOAD)])
    with pytest.raises(EntitlementError):
        service.extract([page])
    service.use_api_key("k2")
    assert service.client.api_key == "k2"
    assert service.extract([page]).client == "JUAN PÉREZ"


def test_deeply_nested_output_is_reported_as_malformed(make_service, page):
    service = make_service(["[" * 100000])
    with pytest.raises(MalformedResponseError):
        service.extract([page])
