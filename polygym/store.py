from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any, Iterable, Protocol

from dateutil.parser import isoparse

from polygym.domain import Reservation, ReservationConflict

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")


def reservation_id(user_id: str, date_key: str, slot: str) -> str:
    """Deterministic document id, so a retried write targets the same record."""
    return f"{user_id}_{date_key}_{_NON_ALNUM_RE.sub('', slot)}"


def reservation_to_record(r: Reservation) -> dict[str, Any]:
    return {
        "userId": r.user_id,
        "displayName": r.display_name,
        "email": r.email,
        "date": r.date_key,
        "slot": r.slot,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }


def reservation_from_record(data: dict[str, Any]) -> Reservation:
    # uid/fecha are the legacy field names written by the web dashboard.
    created_raw = data.get("createdAt")
    if isinstance(created_raw, dt.datetime):
        created_at: dt.datetime | None = created_raw
    elif created_raw:
        created_at = isoparse(str(created_raw))
    else:
        created_at = None

    return Reservation(
        user_id=str(data.get("userId") or data["uid"]),
        date_key=str(data.get("date") or data["fecha"]),
        slot=str(data["slot"]),
        display_name=str(data.get("displayName") or ""),
        email=data.get("email") or None,
        created_at=created_at,
    )


def pick_single(user_id: str, date_key: str, found: Iterable[Reservation]) -> Reservation | None:
    """Return the one reservation for (user, day); warn if the race left more than one."""
    items = sorted(found, key=lambda r: (r.created_at is None, r.created_at or dt.datetime.min, r.slot))
    if not items:
        return None
    if len(items) > 1:
        logger.warning(
            "Found %d reservations for user=%s date=%s (slots: %s); using the earliest",
            len(items),
            user_id,
            date_key,
            ", ".join(r.slot for r in items),
        )
    return items[0]


class ReservationStore(Protocol):
    async def find_by_user_and_date(self, user_id: str, date_key: str) -> Reservation | None: ...

    async def find_by_user_and_date_range(self, user_id: str, start_key: str, end_key: str) -> list[Reservation]: ...

    async def create(self, reservation: Reservation) -> Reservation: ...

    async def fetch_profile(self, user_id: str) -> dict[str, Any] | None: ...


class InMemoryReservationStore:
    """Dict-backed store with the same semantics as the remote one.

    Like the remote store it does not enforce (user, date) uniqueness; only the
    reservation id is unique.
    """

    def __init__(self, profiles: dict[str, dict[str, Any]] | None = None) -> None:
        self._records: dict[str, Reservation] = {}
        self._profiles = dict(profiles or {})

    def _now(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc)

    def all(self) -> list[Reservation]:
        return sorted(self._records.values(), key=lambda r: (r.date_key, r.user_id, r.slot))

    async def find_by_user_and_date(self, user_id: str, date_key: str) -> Reservation | None:
        found = [r for r in self._records.values() if r.user_id == user_id and r.date_key == date_key]
        return pick_single(user_id, date_key, found)

    async def find_by_user_and_date_range(self, user_id: str, start_key: str, end_key: str) -> list[Reservation]:
        return sorted(
            (r for r in self._records.values() if r.user_id == user_id and start_key <= r.date_key <= end_key),
            key=lambda r: (r.date_key, r.slot),
        )

    async def create(self, reservation: Reservation) -> Reservation:
        rid = reservation_id(reservation.user_id, reservation.date_key, reservation.slot)
        if rid in self._records:
            raise ReservationConflict(f"Reservation {rid} already exists")

        stored = Reservation(
            user_id=reservation.user_id,
            date_key=reservation.date_key,
            slot=reservation.slot,
            display_name=reservation.display_name,
            email=reservation.email,
            created_at=self._now(),
        )
        self._records[rid] = stored
        logger.debug("Stored reservation %s", rid)
        return stored

    async def fetch_profile(self, user_id: str) -> dict[str, Any] | None:
        return self._profiles.get(user_id)
