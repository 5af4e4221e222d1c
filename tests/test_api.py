"""HTTP surface tests (FastAPI TestClient)."""

import asyncio
import inspect

import pytest
from fastapi.testclient import TestClient

from tipsplit import main
from tipsplit.main import app
from tipsplit.schemas import OcrPayload
from tipsplit.services import ocr_service


REPORT_TEXT = (
    "Tip Distribution Report\n"
    "Home Store: 69600\n"
    "69600 Ailuogwemhe, Jodie O US37008498 9.22\n"
    "69600 Smith, John US12345678 18.48\n"
)


@pytest.fixture
def client(engine_env):
    return TestClient(app)


@pytest.fixture
def session_id(client):
    resp = client.post("/sessions")
    assert resp.status_code == 200
    return resp.json()["id"]


@pytest.fixture
def loaded_session_id(client, session_id):
    resp = client.post(f"/sessions/{session_id}/import", json={"text": REPORT_TEXT})
    assert resp.status_code == 200
    return session_id


class TestStateless:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "ok"
        assert body["payout_rounding"] == "nearest"

    def test_extract(self, client):
        resp = client.post("/extract", json={"text": "69600 Ailuogwemhe, Jodie O US37008498 9.22"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["strategy"] == "lines"
        assert body["records"] == [{"name": "Ailuogwemhe, Jodie O", "number": "US37008498", "hours": 9.22}]

    def test_extract_tables_with_camel_case_cells(self, client):
        tables = [{
            "rowCount": 2,
            "columnCount": 2,
            "cells": [
                {"rowIndex": 0, "columnIndex": 0, "content": "Name"},
                {"rowIndex": 0, "columnIndex": 1, "content": "Hours"},
                {"rowIndex": 1, "columnIndex": 0, "content": "Doe, Jane"},
                {"rowIndex": 1, "columnIndex": 1, "content": "12.5"},
            ],
        }]
        body = client.post("/extract", json={"tables": tables}).json()
        assert body["strategy"] == "table"
        assert body["records"][0]["name"] == "Doe, Jane"

    def test_calculate_worked_example(self, client, worked_example_partners):
        resp = client.post("/calculate", json={"total_cash": 40.00, "partners": worked_example_partners})
        assert resp.status_code == 200
        body = resp.json()
        assert body["hourly_rate"] == 1.44
        assert [r["whole_dollar_payout"] for r in body["results"]] == [13, 27]
        assert body["results"][1]["bill_breakdown"] == {"twenties": 1, "tens": 0, "fives": 1, "ones": 2}

    def test_calculate_policy_from_env(self, client, engine_env, worked_example_partners):
        engine_env.setenv("PAYOUT_ROUNDING", "up")
        body = client.post("/calculate", json={"total_cash": 40.00, "partners": worked_example_partners}).json()
        assert [r["whole_dollar_payout"] for r in body["results"]] == [14, 27]

    def test_calculate_invalid_inputs(self, client):
        resp = client.post("/calculate", json={"total_cash": 0, "partners": []})
        assert resp.status_code == 422
        assert resp.json()["detail"]["errors"] == ["INVALID_TOTAL_CASH", "INVALID_TOTAL_HOURS"]

    def test_bills(self, client):
        assert client.get("/bills/13").json() == {"twenties": 0, "tens": 1, "fives": 0, "ones": 3}
        assert client.get("/bills/-1").status_code == 422


class TestSessions:
    def test_unknown_session(self, client):
        assert client.get("/sessions/nope").status_code == 404
        assert client.delete("/sessions/nope").status_code == 404

    def test_import_replaces_rows(self, client, loaded_session_id):
        state = client.get(f"/sessions/{loaded_session_id}").json()
        assert [p["name"] for p in state["partners"]] == ["Ailuogwemhe, Jodie O", "Smith, John"]
        assert state["total_hours"] == 27.7

    def test_partner_crud(self, client, loaded_session_id):
        base = f"/sessions/{loaded_session_id}/partners"

        blank = client.post(base).json()
        assert (blank["id"], blank["name"], blank["hours"]) == (3, "", 0.0)

        patched = client.patch(f"{base}/3", json={"name": "Roe, Rick", "hours": 4.5}).json()
        assert (patched["name"], patched["hours"]) == ("Roe, Rick", 4.5)

        state = client.delete(f"{base}/1").json()
        assert [p["id"] for p in state["partners"]] == [2, 3]

        assert client.patch(f"{base}/99", json={"hours": 1}).status_code == 404
        assert client.delete(f"{base}/99").status_code == 404

        assert client.delete(base).json()["partners"] == []

    def test_calculate_then_reallocate(self, client, loaded_session_id):
        base = f"/sessions/{loaded_session_id}"
        assert client.post(f"{base}/reallocate", json={"twenties": 2}).status_code == 409

        calc = client.post(f"{base}/calculate", json={"total_cash": 40.00})
        assert calc.status_code == 200
        assert client.get(base).json()["last_calculation"]["sum_payout"] == 40

        realloc = client.post(f"{base}/reallocate", json={"twenties": 1, "ones": 10}).json()
        assert realloc["total_owed"] == 40
        assert realloc["total_shortfall"] == 10
        assert "BILL_SHORTFALL" in realloc["flags"]

    def test_calculate_without_hours(self, client, session_id):
        resp = client.post(f"/sessions/{session_id}/calculate", json={"total_cash": 40.00})
        assert resp.status_code == 422
        assert resp.json()["detail"]["errors"] == ["INVALID_TOTAL_HOURS"]

    def test_holiday_external(self, client, loaded_session_id):
        base = f"/sessions/{loaded_session_id}"
        client.post(f"{base}/calculate", json={"total_cash": 40.00})
        body = client.post(f"{base}/holiday", json={
            "regular_period_source": "external",
            "holiday": {"partners": [{"name": "Smith, John", "hours": 5}], "total_cash": 25.00},
        }).json()
        john = [r for r in body["results"] if r["name"] == "Smith, John"][0]
        assert john["whole_dollar_payout"] == 52

    def test_holiday_errors(self, client, session_id):
        base = f"/sessions/{session_id}"
        holiday = {"partners": [{"name": "Smith, John", "hours": 5}], "total_cash": 25.00}
        assert client.post(f"{base}/holiday", json={"holiday": holiday}).status_code == 422
        resp = client.post(f"{base}/holiday", json={"holiday": holiday, "regular_period_source": "external"})
        assert resp.status_code == 409

    def test_delete_session(self, client, session_id):
        assert client.delete(f"/sessions/{session_id}").json() == {"deleted": session_id}
        assert client.get(f"/sessions/{session_id}").status_code == 404


class TestUpload:
    def test_upload_runs_ocr_and_imports(self, client, session_id, monkeypatch):
        monkeypatch.setattr(
            ocr_service,
            "analyze_document",
            lambda data: (OcrPayload(content=REPORT_TEXT), "success", "azure:prebuilt-layout"),
        )
        resp = client.post(
            f"/sessions/{session_id}/upload",
            files={"file": ("report.png", b"fake-image", "image/png")},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["filename"] == "report.png"
        assert body["ocr"]["ocr_status"] == "success"
        assert [p["name"] for p in body["partners"]] == ["Ailuogwemhe, Jodie O", "Smith, John"]

    def test_upload_handler_is_sync(self):
        assert not inspect.iscoroutinefunction(main.upload)

    def test_ocr_runs_off_the_event_loop(self, client, session_id, monkeypatch):
        seen = []

        def fake_analyze(data):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return OcrPayload(content=REPORT_TEXT), "success", "azure:prebuilt-layout"

        monkeypatch.setattr(ocr_service, "analyze_document", fake_analyze)
        resp = client.post(
            f"/sessions/{session_id}/upload",
            files={"file": ("report.png", b"fake-image", "image/png")},
        )
        assert resp.status_code == 200
        assert seen == ["worker thread"]

    def test_upload_ocr_failure(self, client, session_id, monkeypatch):
        monkeypatch.setattr(ocr_service, "analyze_document", lambda data: (None, "failed", "timeout"))
        resp = client.post(
            f"/sessions/{session_id}/upload",
            files={"file": ("report.png", b"fake-image", "image/png")},
        )
        assert resp.status_code == 502
        assert "timeout" in resp.json()["detail"]
