from __future__ import annotations

import datetime as dt
import json
import time

import pytest

from polygym.datekeys import to_key
from polygym.slot_catalog import WEEKDAY_SLOTS, WEEKEND_SLOTS, SlotCatalog, load_overrides


@pytest.fixture
def new_york_local_time(monkeypatch: pytest.MonkeyPatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    # POSIX rule string, so no tz database is needed.
    monkeypatch.setenv("TZ", "EST+05EDT,M3.2.0,M11.1.0")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_weekend_without_override_uses_weekend_template() -> None:
    catalog = SlotCatalog()
    saturday = dt.date(2026, 10, 24)
    sunday = dt.date(2026, 10, 25)

    assert catalog.slots_for(saturday) == WEEKEND_SLOTS
    assert catalog.slots_for(sunday) == WEEKEND_SLOTS
    assert len(WEEKEND_SLOTS) == 3


def test_weekday_without_override_uses_weekday_template() -> None:
    tuesday = dt.date(2026, 10, 20)
    assert SlotCatalog().slots_for(tuesday) == WEEKDAY_SLOTS
    assert len(WEEKDAY_SLOTS) == 5
    assert WEEKDAY_SLOTS[0] == "07:00 - 08:00"


def test_override_wins_over_weekend_default() -> None:
    # 2025-08-10 is a Sunday.
    assert SlotCatalog().slots_for(dt.date(2025, 8, 10)) == (
        "09:00 - 10:00",
        "11:00 - 12:00",
        "15:00 - 16:00",
    )


def test_override_wins_over_weekday_default() -> None:
    catalog = SlotCatalog({"2026-10-20": ("06:00 - 07:00",)})
    assert catalog.slots_for(dt.date(2026, 10, 20)) == ("06:00 - 07:00",)
    # Other days keep the weekday rule.
    assert catalog.slots_for(dt.date(2026, 10, 21)) == WEEKDAY_SLOTS


def test_empty_override_table_disables_defaults() -> None:
    assert SlotCatalog({}).slots_for(dt.date(2025, 8, 10)) == WEEKEND_SLOTS


def test_load_overrides_reads_json_table(tmp_path) -> None:
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps({"2026-12-24": ["10:00 - 11:00", " 12:00 - 13:00 "]}), encoding="utf-8")

    overrides = load_overrides(str(path))
    assert overrides == {"2026-12-24": ("10:00 - 11:00", "12:00 - 13:00")}


def test_load_overrides_rejects_bad_date_key(tmp_path) -> None:
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps({"24/12/2026": ["10:00 - 11:00"]}), encoding="utf-8")

    with pytest.raises(RuntimeError, match=r"Invalid date key"):
        load_overrides(str(path))


def test_load_overrides_rejects_non_list_slots(tmp_path) -> None:
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps({"2026-12-24": "10:00 - 11:00"}), encoding="utf-8")

    with pytest.raises(RuntimeError, match=r"must be a list"):
        load_overrides(str(path))


def test_load_overrides_rejects_invalid_json_and_missing_file(tmp_path) -> None:
    path = tmp_path / "schedule.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RuntimeError, match=r"not valid JSON"):
        load_overrides(str(path))
    with pytest.raises(RuntimeError, match=r"not found"):
        load_overrides(str(tmp_path / "missing.json"))


def test_aware_datetime_uses_weekday_of_the_local_day(new_york_local_time) -> None:
    # Saturday 02:00 UTC is still Friday evening in New York.
    moment = dt.datetime(2026, 10, 24, 2, 0, tzinfo=dt.timezone.utc)
    catalog = SlotCatalog()

    assert to_key(moment) == "2026-10-23"
    assert catalog.slots_for(moment) == WEEKDAY_SLOTS


def test_aware_datetime_override_lookup_uses_local_day(new_york_local_time) -> None:
    catalog = SlotCatalog({"2026-10-23": ("06:00 - 07:00",)})
    assert catalog.slots_for(dt.datetime(2026, 10, 24, 2, 0, tzinfo=dt.timezone.utc)) == ("06:00 - 07:00",)
