from __future__ import annotations

import datetime as dt
import json
import os
from typing import Mapping

from polygym.datekeys import from_key, local_date, to_key

WEEKDAY_SLOTS: tuple[str, ...] = (
    "07:00 - 08:00",
    "09:00 - 10:00",
    "12:00 - 13:00",
    "15:00 - 16:00",
    "17:00 - 18:00",
)

WEEKEND_SLOTS: tuple[str, ...] = (
    "09:00 - 10:00",
    "11:00 - 12:00",
    "16:00 - 17:00",
)

# Fixed agenda for specific days; wins over the weekday rule.
DEFAULT_OVERRIDES: dict[str, tuple[str, ...]] = {
    "2025-08-01": ("08:00 - 09:00", "10:00 - 11:00", "14:00 - 15:00"),
    "2025-08-02": ("09:00 - 10:00", "12:00 - 13:00", "16:00 - 17:00"),
    "2025-08-03": ("07:00 - 08:00", "11:00 - 12:00", "15:00 - 16:00"),
    "2025-08-10": ("09:00 - 10:00", "11:00 - 12:00", "15:00 - 16:00"),
}


class SlotCatalog:
    """Bookable slot labels per day.

    Pure lookup: whether a past day may show slots is the caller's decision.
    """

    def __init__(self, overrides: Mapping[str, tuple[str, ...]] | None = None) -> None:
        self._overrides = dict(DEFAULT_OVERRIDES if overrides is None else overrides)

    def slots_for(self, day: dt.date) -> tuple[str, ...]:
        # Key and weekday must describe the same local day.
        d = local_date(day)
        override = self._overrides.get(to_key(d))
        if override is not None:
            return tuple(override)

        # Monday == 0 ... Saturday == 5, Sunday == 6
        if d.weekday() >= 5:
            return WEEKEND_SLOTS
        return WEEKDAY_SLOTS


def load_overrides(path: str) -> dict[str, tuple[str, ...]]:
    """Read a {"YYYY-MM-DD": ["HH:MM - HH:MM", ...]} table from a JSON file."""
    if not os.path.exists(path):
        raise RuntimeError(f"Schedule file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Schedule file {path} is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise RuntimeError(f"Schedule file {path} must contain an object keyed by date")

    overrides: dict[str, tuple[str, ...]] = {}
    for key, slots in raw.items():
        try:
            from_key(key)
        except ValueError as e:
            raise RuntimeError(f"Schedule file {path}: {e}") from e

        if not isinstance(slots, list) or not all(isinstance(s, str) and s.strip() for s in slots):
            raise RuntimeError(f"Schedule file {path}: slots for {key} must be a list of labels")

        overrides[key] = tuple(s.strip() for s in slots)
    return overrides
