from __future__ import annotations

import asyncio
import json
import logging

import pytest

from polygym.domain import Reservation, ReservationConflict, StoreUnavailable
from polygym.file_store import JsonFileReservationStore
from polygym.store import InMemoryReservationStore, reservation_from_record, reservation_id


def _reservation(date_key: str = "2026-10-20", slot: str = "07:00 - 08:00", user_id: str = "u1") -> Reservation:
    return Reservation(user_id=user_id, date_key=date_key, slot=slot, display_name="Ana Pérez", email="ana@example.com")


def test_reservation_id_strips_non_alphanumerics_from_slot() -> None:
    assert reservation_id("u1", "2026-10-20", "07:00 - 08:00") == "u1_2026-10-20_07000800"
    assert reservation_id("u1", "2026-10-20", "07:00 - 08:00") == reservation_id("u1", "2026-10-20", "07:00 - 08:00")


def test_reservation_from_record_accepts_legacy_field_names() -> None:
    r = reservation_from_record(
        {"uid": "u1", "fecha": "2025-08-10", "slot": "09:00 - 10:00", "displayName": "Ana", "email": None}
    )
    assert (r.user_id, r.date_key, r.slot, r.email, r.created_at) == ("u1", "2025-08-10", "09:00 - 10:00", None, None)


def test_memory_store_create_then_find() -> None:
    store = InMemoryReservationStore()

    async def scenario():
        stored = await store.create(_reservation())
        found = await store.find_by_user_and_date("u1", "2026-10-20")
        other_user = await store.find_by_user_and_date("u2", "2026-10-20")
        return stored, found, other_user

    stored, found, other_user = asyncio.run(scenario())
    assert stored.created_at is not None
    assert found == stored
    assert other_user is None


def test_memory_store_rejects_same_reservation_id() -> None:
    store = InMemoryReservationStore()

    async def scenario():
        await store.create(_reservation())
        await store.create(_reservation())

    with pytest.raises(ReservationConflict):
        asyncio.run(scenario())
    assert len(store.all()) == 1


def test_memory_store_range_scan_is_inclusive_and_per_user() -> None:
    store = InMemoryReservationStore()

    async def scenario():
        for key in ("2026-09-30", "2026-10-01", "2026-10-15", "2026-10-31", "2026-11-01"):
            await store.create(_reservation(date_key=key))
        await store.create(_reservation(date_key="2026-10-10", user_id="u2"))
        return await store.find_by_user_and_date_range("u1", "2026-10-01", "2026-10-31")

    found = asyncio.run(scenario())
    assert [r.date_key for r in found] == ["2026-10-01", "2026-10-15", "2026-10-31"]


def test_memory_store_warns_when_race_left_two_reservations(caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryReservationStore()

    async def scenario():
        first = await store.create(_reservation(slot="07:00 - 08:00"))
        await store.create(_reservation(slot="09:00 - 10:00"))
        return first, await store.find_by_user_and_date("u1", "2026-10-20")

    with caplog.at_level(logging.WARNING, logger="polygym.store"):
        first, found = asyncio.run(scenario())

    assert found == first
    assert "Found 2 reservations" in caplog.text


def test_file_store_persists_between_instances(tmp_path) -> None:
    path = tmp_path / "data" / "reservations.json"

    async def write():
        return await JsonFileReservationStore(str(path)).create(_reservation())

    async def read():
        return await JsonFileReservationStore(str(path)).find_by_user_and_date("u1", "2026-10-20")

    stored = asyncio.run(write())
    found = asyncio.run(read())

    assert found == stored
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["reservations"][0]["date"] == "2026-10-20"
    assert raw["reservations"][0]["userId"] == "u1"
    assert raw["reservations"][0]["createdAt"]


def test_file_store_missing_file_is_empty(tmp_path) -> None:
    store = JsonFileReservationStore(str(tmp_path / "none.json"))
    assert asyncio.run(store.find_by_user_and_date_range("u1", "2026-10-01", "2026-10-31")) == []
    assert asyncio.run(store.fetch_profile("u1")) is None


def test_file_store_reads_profiles(tmp_path) -> None:
    path = tmp_path / "reservations.json"
    path.write_text(json.dumps({"reservations": [], "profiles": {"u1": {"nombre": "Ana"}}}), encoding="utf-8")

    assert asyncio.run(JsonFileReservationStore(str(path)).fetch_profile("u1")) == {"nombre": "Ana"}


def test_file_store_corrupted_file_is_store_unavailable(tmp_path) -> None:
    path = tmp_path / "reservations.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        asyncio.run(JsonFileReservationStore(str(path)).find_by_user_and_date("u1", "2026-10-20"))
    # The broken file is left untouched for inspection.
    assert path.read_text(encoding="utf-8") == "{broken"


@pytest.mark.parametrize("content", ["[]", '"text"', '{"reservations": {"u1": 1}}'])
def test_file_store_unexpected_layout_is_store_unavailable(tmp_path, content: str) -> None:
    path = tmp_path / "reservations.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StoreUnavailable, match=r"unexpected layout"):
        asyncio.run(JsonFileReservationStore(str(path)).find_by_user_and_date("u1", "2026-10-20"))


def test_file_store_skips_non_object_records(tmp_path) -> None:
    path = tmp_path / "reservations.json"
    good = {"userId": "u1", "date": "2026-10-20", "slot": "07:00 - 08:00", "displayName": "Ana"}
    path.write_text(json.dumps({"reservations": ["junk", 42, good]}), encoding="utf-8")

    found = asyncio.run(JsonFileReservationStore(str(path)).find_by_user_and_date("u1", "2026-10-20"))
    assert found is not None and found.slot == "07:00 - 08:00"
