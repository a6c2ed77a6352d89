from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError

from .aggregation import OvertimePolicy, daily_overtime_policy, group_attendance_by_user_and_month
from .config import settings
from .exceptions import InvalidPeriodError, NothingToExportError
from .pairing import build_attendance_rows
from .pdf_exports import (
    MEDIA_TYPE,
    combined_report_filename,
    generate_combined_report,
    generate_single_report,
    single_report_filename,
)
from .schemas import AttendanceRecord, MonthlyAttendanceData
from .sources import AttendanceSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportExport:
    filename: str
    content: bytes
    media_type: str = MEDIA_TYPE


def month_bounds(month_value: str) -> tuple[date, date, str]:
    try:
        start = datetime.strptime(str(month_value).strip(), "%Y-%m")
    except ValueError as exc:
        raise InvalidPeriodError("month must be in YYYY-MM format") from exc

    if start.month == 12:
        end = datetime(start.year + 1, 1, 1)
    else:
        end = datetime(start.year, start.month + 1, 1)

    return start.date(), end.date(), start.strftime("%Y-%m")


def load_records(documents: Iterable[Mapping[str, Any]]) -> list[AttendanceRecord]:
    records: list[AttendanceRecord] = []
    for document in documents:
        try:
            records.append(AttendanceRecord.from_document(document))
        except ValidationError as exc:
            logger.warning(
                "Skipping attendance document %s: %d validation error(s)",
                document.get("id", "<no id>"),
                exc.error_count(),
            )
    return records


def _overtime_policy() -> OvertimePolicy | None:
    threshold = settings.overtime_threshold_hours
    if threshold is None:
        return None
    return daily_overtime_policy(threshold)


def fetch_monthly_attendance(
    source: AttendanceSource,
    month_value: str,
    *,
    user_ids: Sequence[str] | None = None,
) -> list[MonthlyAttendanceData]:
    """Build per-user monthly data for ``month_value`` (``YYYY-MM``).

    Results follow ``user_ids`` order when given, else first appearance in
    the source. Users without any row in the month are left out.
    """
    start, end, normalized_month = month_bounds(month_value)
    documents = source.fetch_documents(start=start, end=end)
    rows = build_attendance_rows(load_records(documents))
    grouped = group_attendance_by_user_and_month(
        rows,
        month=start.month,
        year=start.year,
        overtime_policy=_overtime_policy(),
    )
    logger.debug(
        "Monthly attendance %s: %d document(s), %d day row(s), %d user(s)",
        normalized_month,
        len(documents),
        len(rows),
        len(grouped),
    )

    if user_ids is None:
        return list(grouped.values())

    selected: list[MonthlyAttendanceData] = []
    for user_id in dict.fromkeys(str(item) for item in user_ids):
        data = grouped.get(user_id)
        if data is None:
            logger.info("No attendance rows for user %s in %s", user_id, normalized_month)
            continue
        selected.append(data)
    return selected


def export_single_report(source: AttendanceSource, user_id: str, month_value: str) -> ReportExport:
    datas = fetch_monthly_attendance(source, month_value, user_ids=[user_id])
    if not datas:
        raise NothingToExportError(f"Nothing to export for user {user_id} in {month_value}")

    data = datas[0]
    return ReportExport(filename=single_report_filename(data), content=generate_single_report(data))


def export_combined_report(
    source: AttendanceSource,
    month_value: str,
    *,
    user_ids: Sequence[str] | None = None,
    today: date | None = None,
) -> ReportExport:
    datas = fetch_monthly_attendance(source, month_value, user_ids=user_ids)
    if not datas:
        raise NothingToExportError(f"Nothing to export for {month_value}")

    return ReportExport(filename=combined_report_filename(today), content=generate_combined_report(datas))
