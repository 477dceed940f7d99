from __future__ import annotations

import calendar
import datetime as dt
import re

_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def local_date(value: dt.date) -> dt.date:
    """Calendar day of ``value`` in local time."""
    # datetime is a subclass of date, so check it first.
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def to_key(value: dt.date) -> str:
    """Canonical YYYY-MM-DD key for the local calendar day of ``value``.

    Aware datetimes are moved to local time first, never to UTC.
    """
    d = local_date(value)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def from_key(key: str) -> dt.date:
    if not isinstance(key, str) or not _KEY_RE.match(key):
        raise ValueError(f"Invalid date key: {key!r}. Expected YYYY-MM-DD.")
    return dt.date.fromisoformat(key)


def today_local() -> dt.date:
    return dt.datetime.now().date()


def is_past(value: dt.date, reference_today: dt.date) -> bool:
    # Fixed-width keys compare lexicographically in chronological order.
    return to_key(value) < to_key(reference_today)


def month_bounds(value: dt.date) -> tuple[str, str]:
    d = local_date(value)
    last_day = calendar.monthrange(d.year, d.month)[1]
    return to_key(d.replace(day=1)), to_key(d.replace(day=last_day))
