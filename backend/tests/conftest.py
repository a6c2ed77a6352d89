from __future__ import annotations

import pytest

from campus_attendance import api, pdf_exports, reports, timeutil
from campus_attendance.config import Settings
from campus_attendance.sources import InMemoryAttendanceSource


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    """Pin every module to default settings regardless of the local .env."""
    pinned = Settings()
    for module in (timeutil, pdf_exports, reports, api):
        monkeypatch.setattr(module, "settings", pinned)
    return pinned


def make_document(user_id, user_name, day, checkins=(), checkouts=(), **extra):
    document = {
        "userId": user_id,
        "userName": user_name,
        "date": day,
        "checkinTimes": list(checkins),
        "checkoutTimes": list(checkouts),
    }
    document.update(extra)
    return document


@pytest.fixture
def september_documents():
    return [
        make_document(
            "u1",
            "Asha",
            "2025-09-10",
            ["2025-09-10T09:00:00Z"],
            ["2025-09-10T17:30:00Z"],
            college="North Campus",
        ),
        make_document("u2", "Ben O'Hara", "2025-09-11", ["2025-09-11T08:00:00Z"], ["2025-09-11T12:00:00Z"]),
        make_document("u1", "Asha", "2025-09-12", ["2025-09-12T10:00:00Z"]),
        make_document("u1", "Asha", "2025-08-29", ["2025-08-29T09:00:00Z"], ["2025-08-29T10:00:00Z"]),
    ]


@pytest.fixture
def source(september_documents):
    return InMemoryAttendanceSource(september_documents)
