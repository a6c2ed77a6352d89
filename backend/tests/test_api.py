from __future__ import annotations

import json
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from campus_attendance import api, reports
from campus_attendance.api import create_app
from campus_attendance.exceptions import ReportRenderError

PREFIX = "/attendance/reports"


@pytest.fixture
def client(source):
    return TestClient(create_app(source))


def test_monthly_summary(client):
    response = client.get(f"{PREFIX}/monthly", params={"month": "2025-09"})

    assert response.status_code == 200
    body = response.json()
    assert body["month"] == "2025-09"
    assert [user["userId"] for user in body["users"]] == ["u1", "u2"]
    asha = body["users"][0]
    assert asha["month"] == "September"
    assert asha["summary"]["present"] == 2
    assert asha["summary"]["absent"] == 28
    assert len(asha["dailyRecords"]) == 30
    assert asha["dailyRecords"][0] is None
    assert asha["dailyRecords"][9]["workingHours"] == pytest.approx(8.5)


def test_monthly_summary_for_selected_users(client):
    response = client.get(f"{PREFIX}/monthly", params=[("month", "2025-09"), ("user_id", "u2")])

    assert [user["userId"] for user in response.json()["users"]] == ["u2"]


def test_invalid_month_is_bad_request(client):
    response = client.get(f"{PREFIX}/monthly", params={"month": "September"})

    assert response.status_code == 400
    assert "YYYY-MM" in response.json()["detail"]


def test_single_pdf_download(client):
    response = client.get(f"{PREFIX}/monthly/pdf/u1", params={"month": "2025-09"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert (
        response.headers["content-disposition"]
        == 'attachment; filename="attendance_Asha_September_2025.pdf"'
    )
    assert response.content.startswith(b"%PDF")


def test_combined_pdf_download(client):
    response = client.get(
        f"{PREFIX}/monthly/pdf/combined",
        params=[("month", "2025-09"), ("user_id", "u2"), ("user_id", "u1")],
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith('attachment; filename="attendance_combined_')
    assert response.content.startswith(b"%PDF")


def test_nothing_to_export(client):
    single = client.get(f"{PREFIX}/monthly/pdf/ghost", params={"month": "2025-09"})
    combined = client.get(f"{PREFIX}/monthly/pdf/combined", params={"month": "2024-01"})

    assert single.status_code == 404
    assert single.json()["detail"] == "Nothing to export"
    assert combined.status_code == 404


def test_render_failure_is_server_error(client, monkeypatch):
    def broken(data):
        raise ReportRenderError("Failed to generate PDF: boom")

    monkeypatch.setattr(reports, "generate_single_report", broken)

    response = client.get(f"{PREFIX}/monthly/pdf/u1", params={"month": "2025-09"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to generate PDF: boom"


def test_missing_source_is_unavailable():
    client = TestClient(create_app())

    response = client.get(f"{PREFIX}/monthly", params={"month": "2025-09"})

    assert response.status_code == 503


def test_app_reads_json_file_from_settings(monkeypatch, default_settings, tmp_path, september_documents):
    data_file = tmp_path / "attendance.json"
    data_file.write_text(json.dumps(september_documents), encoding="utf-8")
    monkeypatch.setattr(api, "settings", replace(default_settings, data_file=data_file))

    response = TestClient(create_app()).get(f"{PREFIX}/monthly", params={"month": "2025-08"})

    assert response.status_code == 200
    assert [user["userId"] for user in response.json()["users"]] == ["u1"]
