from __future__ import annotations

from datetime import date, datetime, timedelta, timezone as dt_timezone

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime


def local_timezone() -> dt_timezone:
    hours = getattr(settings, "ATTENDANCE_UTC_OFFSET_HOURS", 7)
    return dt_timezone(timedelta(hours=hours))


def local_now() -> datetime:
    return timezone.now().astimezone(local_timezone())


def to_local(dt: datetime) -> datetime:
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, dt_timezone.utc)
    return dt.astimezone(local_timezone())


def normalize_scan_time(raw: str | None) -> datetime:
    """Turn an optional device timestamp into local wall-clock time.

    Device clocks report UTC without an offset, so naive values are read as
    UTC and shifted by the configured local offset. Values that do carry an
    offset are converted. Without a timestamp the current local time is used.
    """
    if not raw:
        return local_now()

    parsed = parse_datetime(raw.strip())
    if parsed is None:
        raise ValueError(f"Invalid timestamp: {raw!r}")
    return to_local(parsed)


def local_day(dt: datetime) -> date:
    return to_local(dt).date()


def start_of_day(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=local_timezone())
