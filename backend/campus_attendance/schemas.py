from __future__ import annotations

import datetime as dt
import re
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .timeutil import days_in_month, month_name, month_number

RawTimestamp = Union[dt.datetime, float, str]

_CHECK_IN_LABELS = {"checkin", "in", "clockin", "punchin", "entry"}
_CHECK_OUT_LABELS = {"checkout", "out", "clockout", "punchout", "exit"}


class EventType(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


def normalize_event_type(value: Any) -> EventType | None:
    if value is None:
        return None
    if isinstance(value, EventType):
        return value
    key = re.sub(r"[\s_\-]", "", str(value)).lower()
    if key in _CHECK_IN_LABELS:
        return EventType.CHECK_IN
    if key in _CHECK_OUT_LABELS:
        return EventType.CHECK_OUT
    return None


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _display_name(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return text or "Unknown"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class AttendanceEvent(_DocumentModel):
    """One observed check-in or check-out."""

    type: Optional[EventType] = Field(
        default=None,
        validation_alias=AliasChoices("type", "eventType", "event_type"),
    )
    timestamp: Optional[RawTimestamp] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "time", "at"),
    )
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    confidence: Optional[float] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> EventType | None:
        return normalize_event_type(value)

    @field_validator("latitude", "longitude", "confidence", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> float | None:
        return _optional_float(value)


class AttendanceRecord(_DocumentModel):
    """Raw attendance for one user on one day.

    Carries either an ordered ``events`` list or the flattened
    ``checkin_times``/``checkout_times`` arrays. Timestamps stay unparsed so
    that pairing can skip a malformed one without rejecting the record.
    """

    user_id: str
    user_name: str = "Unknown"
    date: Optional[Union[dt.datetime, dt.date, str]] = None
    college: Optional[str] = None
    method: Optional[str] = None
    similarity: Optional[Union[float, str]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    events: Optional[list[AttendanceEvent]] = None
    checkin_times: Optional[list[RawTimestamp]] = None
    checkout_times: Optional[list[RawTimestamp]] = None

    @field_validator("user_name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> str:
        return _display_name(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> float | None:
        return _optional_float(value)

    @field_validator("checkin_times", "checkout_times", mode="before")
    @classmethod
    def _drop_empty_times(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [item for item in value if item is not None]
        return value

    @property
    def has_events(self) -> bool:
        return bool(self.events)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "AttendanceRecord":
        payload = dict(document)
        for single_key, list_key, snake_key in (
            ("checkinTime", "checkinTimes", "checkin_times"),
            ("checkoutTime", "checkoutTimes", "checkout_times"),
        ):
            if list_key in payload or snake_key in payload:
                continue
            single = payload.get(single_key)
            if single is not None and single != "":
                payload[list_key] = [single]
        return cls.model_validate(payload)


class AttendanceSession(_DocumentModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
    )

    user_id: str
    user_name: str
    date: Optional[Union[dt.datetime, dt.date, str]] = None
    checkin_time: dt.datetime
    checkout_time: Optional[dt.datetime] = None
    working_hours: float = 0.0
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_pending: bool = False


class AttendanceRow(_DocumentModel):
    """Simplified per-user per-day row consumed by the monthly aggregator."""

    user_id: str
    user_name: str = "Unknown"
    date: Optional[Union[dt.datetime, dt.date, str]] = None
    checkin_time: Optional[RawTimestamp] = None
    checkout_time: Optional[RawTimestamp] = None
    working_hours: float = 0.0
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    college: Optional[str] = None
    method: Optional[str] = None
    similarity: Optional[Union[float, str]] = None
    is_pending: bool = False
    session_count: int = 0

    @field_validator("user_name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> str:
        return _display_name(value)

    @field_validator("working_hours", mode="before")
    @classmethod
    def _non_negative_hours(cls, value: Any) -> float:
        hours = _optional_float(value)
        if hours is None or hours != hours or hours < 0:
            return 0.0
        return hours

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> float | None:
        return _optional_float(value)


class AttendanceSummary(_DocumentModel):
    present: int = 0
    absent: int = 0
    total_working_hours: float = 0.0
    total_overtime: float = 0.0


class MonthlyAttendanceData(_DocumentModel):
    """One user's attendance for one calendar month.

    ``daily_records`` holds exactly one slot per day of the month, indexed
    by ``day - 1``; ``None`` marks an absent day.
    """

    user_id: str
    user_name: str = "Unknown"
    month: str
    year: int
    daily_records: list[Optional[AttendanceRow]] = Field(default_factory=list)
    summary: AttendanceSummary = Field(default_factory=AttendanceSummary)

    @field_validator("user_name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> str:
        return _display_name(value)

    @field_validator("month", mode="before")
    @classmethod
    def _canonical_month(cls, value: Any) -> str:
        return month_name(month_number(value))

    @field_validator("daily_records", mode="before")
    @classmethod
    def _records_from_mapping(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        by_day = {int(day): record for day, record in value.items()}
        size = max(by_day, default=0)
        return [by_day.get(day) for day in range(1, size + 1)]

    @model_validator(mode="after")
    def _fit_days(self) -> "MonthlyAttendanceData":
        size = self.days_in_month
        if len(self.daily_records) > size:
            raise ValueError(f"{len(self.daily_records)} daily records for a {size}-day month")
        if len(self.daily_records) < size:
            self.daily_records = list(self.daily_records) + [None] * (size - len(self.daily_records))
        return self

    @property
    def month_number(self) -> int:
        return month_number(self.month)

    @property
    def days_in_month(self) -> int:
        return days_in_month(self.year, self.month_number)

    def record_for(self, day: int) -> AttendanceRow | None:
        if 1 <= day <= len(self.daily_records):
            return self.daily_records[day - 1]
        return None
