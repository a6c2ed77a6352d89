from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator, Sequence

from .schemas import AttendanceRecord, AttendanceRow, AttendanceSession, EventType
from .timeutil import hours_between, parse_day, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Punch:
    raw: Any
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


def _split_punches(record: AttendanceRecord) -> tuple[list[_Punch], list[_Punch]]:
    if record.has_events:
        checkins: list[_Punch] = []
        checkouts: list[_Punch] = []
        for event in record.events or []:
            punch = _Punch(event.timestamp, event.latitude, event.longitude)
            if event.type is EventType.CHECK_IN:
                checkins.append(punch)
            elif event.type is EventType.CHECK_OUT:
                checkouts.append(punch)
        return checkins, checkouts

    return (
        [_Punch(value) for value in record.checkin_times or []],
        [_Punch(value) for value in record.checkout_times or []],
    )


def _record_day(record: AttendanceRecord) -> Any:
    day = parse_day(record.date)
    if day is None:
        # Kept raw; the monthly aggregator skips rows it cannot date.
        return record.date
    return day.isoformat()


def _pick_coordinates(
    record: AttendanceRecord,
    checkin: _Punch,
    checkout: _Punch | None,
) -> tuple[float | None, float | None]:
    for punch in (checkout, checkin):
        if punch is not None and punch.coordinates is not None:
            return punch.coordinates
    return record.latitude, record.longitude


def _build_session(
    record: AttendanceRecord,
    *,
    checkin: _Punch,
    checkin_at: datetime,
    checkout: _Punch | None = None,
    checkout_at: datetime | None = None,
) -> AttendanceSession:
    latitude, longitude = _pick_coordinates(record, checkin, checkout)
    return AttendanceSession(
        user_id=record.user_id,
        user_name=record.user_name,
        date=_record_day(record),
        checkin_time=checkin_at,
        checkout_time=checkout_at,
        working_hours=hours_between(checkin_at, checkout_at) if checkout_at else 0.0,
        latitude=latitude,
        longitude=longitude,
        is_pending=checkout_at is None,
    )


def _iter_pairs(record: AttendanceRecord) -> Iterator[AttendanceSession]:
    checkins, checkouts = _split_punches(record)
    i = 0
    j = 0

    while i < len(checkins) or j < len(checkouts):
        if i < len(checkins) and j < len(checkouts):
            checkin_at = parse_timestamp(checkins[i].raw)
            checkout_at = parse_timestamp(checkouts[j].raw)
            if checkin_at is None or checkout_at is None:
                logger.debug(
                    "Skipped pair for user %s: unparseable timestamp (in=%r, out=%r)",
                    record.user_id,
                    checkins[i].raw,
                    checkouts[j].raw,
                )
                i += 1
                j += 1
                continue

            if checkout_at >= checkin_at:
                yield _build_session(
                    record,
                    checkin=checkins[i],
                    checkin_at=checkin_at,
                    checkout=checkouts[j],
                    checkout_at=checkout_at,
                )
                i += 1
                j += 1
                continue

            logger.debug(
                "Discarded OUT at %s for user %s: earlier than pending IN at %s",
                checkout_at.isoformat(),
                record.user_id,
                checkin_at.isoformat(),
            )
            j += 1
            continue

        if i < len(checkins):
            checkin_at = parse_timestamp(checkins[i].raw)
            if checkin_at is None:
                logger.debug("Skipped unparseable IN %r for user %s", checkins[i].raw, record.user_id)
            else:
                yield _build_session(record, checkin=checkins[i], checkin_at=checkin_at)
            i += 1
            continue

        logger.debug("Discarded OUT %r for user %s without a matching IN", checkouts[j].raw, record.user_id)
        j += 1


class PairedSessions:
    """Restartable view over the sessions of one record.

    Each iteration re-runs the pairing from the raw record, so repeated
    iteration always yields the same sequence.
    """

    def __init__(self, record: AttendanceRecord) -> None:
        self.record = record

    def __iter__(self) -> Iterator[AttendanceSession]:
        return _iter_pairs(self.record)


def pair_sessions(record: AttendanceRecord) -> list[AttendanceSession]:
    return list(PairedSessions(record))


def collapse_sessions(
    sessions: Sequence[AttendanceSession],
    *,
    record: AttendanceRecord | None = None,
) -> AttendanceRow | None:
    """Reduce one day's sessions to the row shown in monthly reports."""
    if not sessions:
        return None

    completed = [session for session in sessions if not session.is_pending]
    located = [session for session in sessions if session.latitude is not None and session.longitude is not None]
    anchor = located[-1] if located else sessions[-1]

    return AttendanceRow(
        user_id=sessions[0].user_id,
        user_name=sessions[0].user_name,
        date=sessions[0].date,
        checkin_time=min(session.checkin_time for session in sessions),
        checkout_time=max((session.checkout_time for session in completed), default=None),
        working_hours=sum(session.working_hours for session in sessions),
        latitude=anchor.latitude,
        longitude=anchor.longitude,
        college=record.college if record else None,
        method=record.method if record else None,
        similarity=record.similarity if record else None,
        is_pending=len(completed) < len(sessions),
        session_count=len(sessions),
    )


def build_attendance_rows(records: Iterable[AttendanceRecord]) -> list[AttendanceRow]:
    rows: list[AttendanceRow] = []
    for record in records:
        row = collapse_sessions(pair_sessions(record), record=record)
        if row is not None:
            rows.append(row)
    return rows
