from __future__ import annotations

import base64

import pytest
from starlette.testclient import TestClient

from budget_capture.app import BudgetWorkspace
from budget_capture.history import HistoryStore
from budget_capture.web import create_app

from conftest import SAMPLE_PAYLOAD, jpeg_bytes, payload_text


def _data_url() -> str:
    return "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes()).decode("ascii")


@pytest.fixture
def build(tmp_path, make_service, branding):
    def _build(responses):
        service = make_service(responses)
        ws = BudgetWorkspace(service, HistoryStore(str(tmp_path / "history.json")), branding)
        return ws, TestClient(create_app(workspace=ws))

    return _build


def test_capture_extract_and_export_flow(build):
    ws, client = build([payload_text(SAMPLE_PAYLOAD)])

    assert client.get("/api/session").json()["state"] == "idle"
    res = client.post("/api/pages", json={"data_url": _data_url()})
    assert res.status_code == 201
    assert res.json()["pages"] == 1
    client.post("/api/pages", json={"data_url": _data_url()})
    assert client.delete("/api/pages/1").json() == {"pages": 1}

    res = client.post("/api/extract")
    assert res.status_code == 200
    body = res.json()
    assert body["document"]["client"] == "JUAN PÉREZ"
    assert body["document"]["total"] == pytest.approx(60.5)
    doc_id = body["document"]["id"]
    assert body["history_id"] == doc_id
    assert client.get("/api/session").json()["state"] == "result"

    items = client.get("/api/history").json()["items"]
    assert [i["id"] for i in items] == [doc_id]

    pdf = client.get(f"/api/documents/{doc_id}.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")
    assert "Presupuesto_" in pdf.headers["content-disposition"]

    html = client.get(f"/api/documents/{doc_id}.html")
    assert "60.50€" in html.text
    assert client.get(f"/api/documents/{doc_id}.xls").status_code == 404


def test_extract_without_pages_is_rejected(build):
    ws, client = build([])
    res = client.post("/api/extract")
    assert res.status_code == 400
    assert res.json()["error"] == "no_pages"
    assert ws.service.client.requests == []


def test_quota_error_maps_to_429_and_discards_pages(build):
    ws, client = build([RuntimeError("429 RESOURCE_EXHAUSTED")])
    client.post("/api/pages", json={"data_url": _data_url()})
    res = client.post("/api/extract")
    assert res.status_code == 429
    assert res.json()["action"] == "select_credentials"
    state = client.get("/api/session").json()
    assert state["state"] == "error"
    assert state["pages"] == 0
    assert client.get("/api/history").json()["items"] == []


def test_credentials_switch(build):
    ws, client = build([])
    assert client.post("/api/credentials", json={"api_key": "  "}).status_code == 400
    assert client.post("/api/credentials", json={"api_key": "new-key"}).json() == {"status": "ok"}
    assert ws.service.client.api_key == "new-key"


def test_history_select_and_delete(build):
    ws, client = build([payload_text(SAMPLE_PAYLOAD)])
    client.post("/api/pages", json={"data_url": _data_url()})
    doc_id = client.post("/api/extract").json()["document"]["id"]

    client.post("/api/reset")
    res = client.post(f"/api/history/{doc_id}/select")
    assert res.json()["document"]["id"] == doc_id
    assert client.get("/api/session").json()["document_id"] == doc_id

    assert client.delete(f"/api/history/{doc_id}").json() == {"status": "deleted"}
    assert client.get(f"/api/history/{doc_id}").status_code == 404
    assert client.get("/api/session").json()["state"] == "idle"


def test_bad_page_payloads(build):
    _, client = build([])
    assert client.post("/api/pages", json={}).status_code == 400
    assert client.post("/api/pages", json={"data_url": "data:text/plain;base64,aGk="}).status_code == 400
    assert client.post("/api/pages", content=b"nope").status_code == 400


def test_unexpected_failure_returns_session_to_capture(build):
    ws, client = build(["[" * 100000])
    client.post("/api/pages", json={"data_url": _data_url()})
    res = client.post("/api/extract")
    assert res.status_code == 502
    assert res.json()["error"] == "malformed_response"

    def _boom(pages):
        raise RuntimeError("renderer exploded")

    ws.run_extraction = _boom
    client.post("/api/pages", json={"data_url": _data_url()})
    res = client.post("/api/extract")
    assert res.status_code == 502
    assert res.json()["error"] == "generic"

    state = client.get("/api/session").json()
    assert state["state"] == "error"
    assert state["pages"] == 0
    assert client.post("/api/reset").status_code == 200
    assert client.post("/api/pages", json={"data_url": _data_url()}).status_code == 201
