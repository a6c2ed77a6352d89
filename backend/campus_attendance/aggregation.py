from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .schemas import AttendanceRow, AttendanceSummary, MonthlyAttendanceData
from .timeutil import days_in_month, month_name, month_number, parse_day, parse_timestamp

logger = logging.getLogger(__name__)

OvertimePolicy = Callable[[AttendanceRow], float]
BucketKey = tuple[str, str, int]


def daily_overtime_policy(threshold_hours: float) -> OvertimePolicy:
    """Overtime is the time worked beyond ``threshold_hours`` on each day."""
    threshold = max(0.0, float(threshold_hours))

    def _policy(row: AttendanceRow) -> float:
        return max(0.0, row.working_hours - threshold)

    return _policy


@dataclass
class _Bucket:
    user_id: str
    user_name: str
    month: str
    year: int
    days: dict[int, AttendanceRow] = field(default_factory=dict)


def _pick_instant(values: Iterable[Any], *, latest: bool) -> Any:
    parsed = [(parse_timestamp(value), value) for value in values if value is not None]
    valid = [item for item in parsed if item[0] is not None]
    if not valid:
        return parsed[0][1] if parsed else None
    chooser = max if latest else min
    return chooser(valid, key=lambda item: item[0])[1]


def _merge_rows(existing: AttendanceRow, incoming: AttendanceRow) -> AttendanceRow:
    return existing.model_copy(
        update={
            "checkin_time": _pick_instant((existing.checkin_time, incoming.checkin_time), latest=False),
            "checkout_time": _pick_instant((existing.checkout_time, incoming.checkout_time), latest=True),
            "working_hours": existing.working_hours + incoming.working_hours,
            "latitude": incoming.latitude if incoming.latitude is not None else existing.latitude,
            "longitude": incoming.longitude if incoming.longitude is not None else existing.longitude,
            "is_pending": existing.is_pending or incoming.is_pending,
            "session_count": existing.session_count + incoming.session_count,
        }
    )


def _finalize(bucket: _Bucket, overtime_policy: OvertimePolicy | None) -> MonthlyAttendanceData:
    size = days_in_month(bucket.year, month_number(bucket.month))
    records = [bucket.days.get(day) for day in range(1, size + 1)]
    present_rows = [row for row in records if row is not None]
    present = len(present_rows)

    overtime = 0.0
    if overtime_policy is not None:
        overtime = sum(max(0.0, overtime_policy(row)) for row in present_rows)

    return MonthlyAttendanceData(
        user_id=bucket.user_id,
        user_name=bucket.user_name,
        month=bucket.month,
        year=bucket.year,
        daily_records=records,
        summary=AttendanceSummary(
            present=present,
            absent=max(0, size - present),
            total_working_hours=sum(row.working_hours for row in present_rows),
            total_overtime=overtime,
        ),
    )


def group_attendance(
    rows: Iterable[AttendanceRow],
    *,
    overtime_policy: OvertimePolicy | None = None,
) -> dict[BucketKey, MonthlyAttendanceData]:
    """Group day rows into (user, month, year) buckets, in first-seen order.

    Rows whose date cannot be parsed are skipped. Several rows for the same
    user and day are merged into one: earliest check-in, latest check-out,
    summed hours. The day then counts once toward ``present``.
    """
    buckets: dict[BucketKey, _Bucket] = {}

    for row in rows:
        day = parse_day(row.date)
        if day is None:
            logger.warning("Skipping attendance row for user %s: unparseable date %r", row.user_id, row.date)
            continue

        key = (row.user_id, month_name(day.month), day.year)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = _Bucket(user_id=row.user_id, user_name=row.user_name, month=key[1], year=day.year)
            buckets[key] = bucket

        existing = bucket.days.get(day.day)
        if existing is None:
            bucket.days[day.day] = row
        else:
            logger.debug("Merging duplicate attendance rows for user %s on %s", row.user_id, day.isoformat())
            bucket.days[day.day] = _merge_rows(existing, row)

    return {key: _finalize(bucket, overtime_policy) for key, bucket in buckets.items()}


def group_attendance_by_user_and_month(
    rows: Iterable[AttendanceRow],
    *,
    month: Any = None,
    year: int | None = None,
    overtime_policy: OvertimePolicy | None = None,
) -> dict[str, MonthlyAttendanceData]:
    """Return one monthly bucket per user.

    With ``month``/``year`` the buckets are restricted to that period.
    Without a selection each user's most recent month is returned.
    """
    selected_month = month_name(month) if month is not None else None
    grouped: dict[str, MonthlyAttendanceData] = {}

    for (user_id, bucket_month, bucket_year), data in group_attendance(rows, overtime_policy=overtime_policy).items():
        if selected_month is not None and bucket_month != selected_month:
            continue
        if year is not None and bucket_year != int(year):
            continue

        current = grouped.get(user_id)
        if current is None or (data.year, data.month_number) > (current.year, current.month_number):
            grouped[user_id] = data

    return grouped
