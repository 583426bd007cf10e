# app/utils/time_window.py
"""
Reservation window value type.

A booking is entered as a calendar date plus two wall-clock times in the
deployment's time zone (settings.TIMEZONE). TimeWindow turns that into a pair
of timezone-aware instants so overlap and expiry checks never touch strings.
The store keeps naive UTC instants (see `start_utc` / `end_utc`).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings
from app.exceptions import ValidationError


def get_zone(name: Optional[str] = None) -> ZoneInfo:
    tz_name = name or settings.TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        raise ValidationError.single("timezone", f"Unknown time zone '{tz_name}'")


def to_utc_naive(moment: datetime) -> datetime:
    """Aware → naive UTC. Naive values are assumed to already be UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_date(value: Union[str, date], field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError.single(field, f"'{value}' is not a valid date (YYYY-MM-DD)")


def _parse_time(value: Union[str, time], field: str) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError.single(field, f"'{value}' is not a valid time (HH:MM)")


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start_at, end_at) of aware datetimes."""

    start_at: datetime
    end_at: datetime

    def __post_init__(self):
        if self.start_at.tzinfo is None or self.end_at.tzinfo is None:
            raise ValueError("TimeWindow bounds must be timezone-aware")
        if not self.start_at < self.end_at:
            raise ValidationError.single("end_time", "End time must be after start time")

    # ── Constructors ──────────────────────────────────────────────────────
    @classmethod
    def from_booking(cls, booking_date, start_time, end_time, tz_name: Optional[str] = None) -> "TimeWindow":
        """Build from a date and two wall-clock times that fall on that date."""
        zone = get_zone(tz_name)
        day = _parse_date(booking_date, "booking_date")
        start = _parse_time(start_time, "start_time")
        end = _parse_time(end_time, "end_time")
        return cls(datetime.combine(day, start, tzinfo=zone), datetime.combine(day, end, tzinfo=zone))

    @classmethod
    def instant(cls, moment: Optional[datetime] = None, tz_name: Optional[str] = None) -> "TimeWindow":
        """A one-second window at `moment` (default: now) — used for "right now" queries."""
        zone = get_zone(tz_name)
        moment = moment or datetime.now(zone)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=zone)
        return cls(moment, moment + timedelta(seconds=1))

    # ── Views ─────────────────────────────────────────────────────────────
    @property
    def booking_date(self) -> date:
        return self.start_at.date()

    @property
    def start_time(self) -> time:
        return self.start_at.timetz().replace(tzinfo=None)

    @property
    def end_time(self) -> time:
        return self.end_at.timetz().replace(tzinfo=None)

    @property
    def start_utc(self) -> datetime:
        return to_utc_naive(self.start_at)

    @property
    def end_utc(self) -> datetime:
        return to_utc_naive(self.end_at)

    @property
    def duration(self) -> timedelta:
        return self.end_at - self.start_at

    @property
    def duration_hours(self) -> float:
        return round(self.duration.total_seconds() / 3600, 4)

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start_at < other.end_at and other.start_at < self.end_at

    def contains(self, moment: datetime) -> bool:
        return self.start_at <= moment < self.end_at

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.end_at <= now

    def __str__(self):
        return f"{self.booking_date.isoformat()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"
