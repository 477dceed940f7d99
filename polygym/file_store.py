from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any

from polygym.domain import Reservation, StoreUnavailable
from polygym.store import (
    InMemoryReservationStore,
    reservation_from_record,
    reservation_id,
    reservation_to_record,
)

logger = logging.getLogger(__name__)


def load_records(path: str) -> tuple[dict[str, Reservation], dict[str, dict[str, Any]]]:
    if not os.path.exists(path):
        return {}, {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        # Fail instead of starting empty; the next save would overwrite the file.
        raise StoreUnavailable(f"Cannot read reservation file {path} ({type(e).__name__}: {e})") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("reservations", []), list):
        raise StoreUnavailable(f"Reservation file {path} has an unexpected layout")

    records: dict[str, Reservation] = {}
    for item in raw.get("reservations", []):
        try:
            r = reservation_from_record(item)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed reservation record in %s: %r", path, item)
            continue
        records[reservation_id(r.user_id, r.date_key, r.slot)] = r

    profiles = raw.get("profiles", {})
    if not isinstance(profiles, dict):
        profiles = {}
    return records, profiles


def save_records(path: str, records: dict[str, Reservation], profiles: dict[str, dict[str, Any]]) -> None:
    data = {
        "reservations": [reservation_to_record(records[rid]) for rid in sorted(records)],
        "profiles": profiles,
    }

    folder = os.path.dirname(os.path.abspath(path))
    try:
        if folder and not os.path.exists(folder):
            os.makedirs(folder, exist_ok=True)

        # Atomic write
        with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
            json.dump(data, tf, ensure_ascii=False, indent=2)
            tmp_name = tf.name

        os.replace(tmp_name, path)
    except OSError as e:
        raise StoreUnavailable(f"Cannot write reservation file {path} ({type(e).__name__}: {e})") from e


class JsonFileReservationStore(InMemoryReservationStore):
    """Reservations kept in a local JSON file; re-read before every operation."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    def _reload(self) -> None:
        self._records, self._profiles = load_records(self.path)

    async def find_by_user_and_date(self, user_id: str, date_key: str) -> Reservation | None:
        self._reload()
        return await super().find_by_user_and_date(user_id, date_key)

    async def find_by_user_and_date_range(self, user_id: str, start_key: str, end_key: str) -> list[Reservation]:
        self._reload()
        return await super().find_by_user_and_date_range(user_id, start_key, end_key)

    async def create(self, reservation: Reservation) -> Reservation:
        self._reload()
        stored = await super().create(reservation)
        save_records(self.path, self._records, self._profiles)
        logger.info("Reservation saved to %s", self.path)
        return stored

    async def fetch_profile(self, user_id: str) -> dict[str, Any] | None:
        self._reload()
        return await super().fetch_profile(user_id)
