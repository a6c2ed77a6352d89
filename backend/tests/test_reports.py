from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date

import pytest

from campus_attendance import reports
from campus_attendance.exceptions import InvalidPeriodError, NothingToExportError
from campus_attendance.reports import (
    export_combined_report,
    export_single_report,
    fetch_monthly_attendance,
    load_records,
    month_bounds,
)
from campus_attendance.sources import InMemoryAttendanceSource

from .conftest import make_document


def test_month_bounds():
    assert month_bounds("2025-09") == (date(2025, 9, 1), date(2025, 10, 1), "2025-09")
    assert month_bounds("2025-12") == (date(2025, 12, 1), date(2026, 1, 1), "2025-12")
    assert month_bounds(" 2025-9 ")[2] == "2025-09"


@pytest.mark.parametrize("value", ["", "2025", "Sept 2025", "2025-13", "09-2025"])
def test_month_bounds_rejects_bad_input(value):
    with pytest.raises(InvalidPeriodError):
        month_bounds(value)


def test_invalid_period_is_a_value_error():
    with pytest.raises(ValueError):
        month_bounds("nope")


def test_load_records_skips_invalid_documents(caplog):
    documents = [
        make_document("u1", "Asha", "2025-09-10", ["2025-09-10T09:00:00Z"]),
        {"id": "broken", "userName": "No Id"},
    ]

    with caplog.at_level(logging.WARNING, logger="campus_attendance.reports"):
        records = load_records(documents)

    assert [record.user_id for record in records] == ["u1"]
    assert "Skipping attendance document broken" in caplog.text


def test_fetch_monthly_attendance_in_first_seen_order(source):
    datas = fetch_monthly_attendance(source, "2025-09")

    assert [data.user_id for data in datas] == ["u1", "u2"]
    asha = datas[0]
    assert asha.summary.present == 2
    assert asha.summary.absent == 28
    assert asha.summary.total_working_hours == pytest.approx(8.5)
    assert asha.record_for(12).is_pending
    assert asha.record_for(10).college == "North Campus"


def test_fetch_monthly_attendance_follows_selection(source):
    datas = fetch_monthly_attendance(source, "2025-09", user_ids=["u2", "ghost", "u1", "u2"])

    assert [data.user_id for data in datas] == ["u2", "u1"]


def test_fetch_excludes_other_months(source):
    datas = fetch_monthly_attendance(source, "2025-08")

    assert [data.user_id for data in datas] == ["u1"]
    assert datas[0].month == "August"
    assert datas[0].summary.present == 1


def test_overtime_threshold_from_settings(monkeypatch, default_settings, source):
    monkeypatch.setattr(reports, "settings", replace(default_settings, overtime_threshold_hours=8.0))

    asha = fetch_monthly_attendance(source, "2025-09", user_ids=["u1"])[0]

    assert asha.summary.total_overtime == pytest.approx(0.5)


def test_export_single_report(source):
    export = export_single_report(source, "u2", "2025-09")

    assert export.filename == "attendance_Ben_O_Hara_September_2025.pdf"
    assert export.media_type == "application/pdf"
    assert export.content.startswith(b"%PDF")


def test_export_single_report_for_unknown_user(source):
    with pytest.raises(NothingToExportError):
        export_single_report(source, "ghost", "2025-09")


def test_export_combined_report(source):
    export = export_combined_report(source, "2025-09", today=date(2025, 10, 1))

    assert export.filename == "attendance_combined_2025-10-01.pdf"
    assert export.content.startswith(b"%PDF")


def test_export_combined_report_with_nothing_selected():
    empty = InMemoryAttendanceSource()

    with pytest.raises(NothingToExportError):
        export_combined_report(empty, "2025-09")
    with pytest.raises(NothingToExportError):
        export_combined_report(InMemoryAttendanceSource([make_document("u1", "Asha", "2025-09-01")]), "2025-09")


def test_documents_with_malformed_date_are_not_counted(caplog):
    bad = make_document("u1", "Asha", "not a date", ["2025-09-10T09:00:00Z"], ["2025-09-10T17:00:00Z"])

    with caplog.at_level(logging.WARNING, logger="campus_attendance.aggregation"):
        datas = fetch_monthly_attendance(InMemoryAttendanceSource([bad]), "2025-09")

    assert datas == []
    assert "unparseable date 'not a date'" in caplog.text


def test_malformed_date_does_not_add_a_present_day(source):
    source.add(make_document("u1", "Asha", "10/09/2025??", ["2025-09-15T09:00:00Z"], ["2025-09-15T17:00:00Z"]))

    asha = fetch_monthly_attendance(source, "2025-09", user_ids=["u1"])[0]

    assert asha.summary.present == 2
    assert asha.record_for(15) is None
    assert asha.summary.total_working_hours == pytest.approx(8.5)
