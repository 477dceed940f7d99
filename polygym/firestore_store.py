from __future__ import annotations

import logging
from typing import Any

import httpx
from dateutil.parser import isoparse

from polygym.domain import Reservation, ReservationConflict, StoreUnavailable
from polygym.store import pick_single, reservation_from_record, reservation_id

logger = logging.getLogger(__name__)

BASE_URL = "https://firestore.googleapis.com/v1"

_CONFLICT_STATUSES = {"ALREADY_EXISTS", "FAILED_PRECONDITION"}


def _string(value: str) -> dict[str, Any]:
    return {"stringValue": value}


def _nullable_string(value: str | None) -> dict[str, Any]:
    return {"nullValue": None} if value is None else {"stringValue": value}


def _decode_value(value: dict[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return isoparse(value["timestampValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: _decode_value(v) for name, v in fields.items()}


def _field_filter(field: str, op: str, value: str) -> dict[str, Any]:
    return {"fieldFilter": {"field": {"fieldPath": field}, "op": op, "value": _string(value)}}


def _error_status(r: httpx.Response) -> str | None:
    try:
        data = r.json()
    except ValueError:
        return None
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None
    return (data.get("error") or {}).get("status")


def _json_body(r: httpx.Response, what: str) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise StoreUnavailable(f"Firestore {what} returned a non-JSON body ({e})") from e


class FirestoreReservationStore:
    """Reservation store backed by the Firestore REST API.

    Lookups use structured queries (equality on the user, equality or an
    inclusive range on the date key). Creates go through ``:commit`` with an
    ``exists: false`` precondition, so re-sending the same reservation id is
    reported as a conflict rather than overwriting, and ``createdAt`` is set
    by the server.
    """

    def __init__(
        self,
        *,
        project_id: str,
        id_token: str | None = None,
        api_key: str | None = None,
        reservations_collection: str = "reservas",
        users_collection: str = "users",
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.project_id = project_id
        self.reservations_collection = reservations_collection
        self.users_collection = users_collection
        self._id_token = id_token
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def documents_path(self) -> str:
        return f"projects/{self.project_id}/databases/(default)/documents"

    @property
    def documents_url(self) -> str:
        return f"{BASE_URL}/{self.documents_path}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {}
        if self._id_token:
            headers["Authorization"] = f"Bearer {self._id_token}"
        params = {"key": self._api_key} if self._api_key else None

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
                return await client.request(method, url, headers=headers, params=params, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"Firestore request failed ({type(e).__name__}: {e})") from e

    async def _run_query(self, filters: list[dict[str, Any]]) -> list[Reservation]:
        body = {
            "structuredQuery": {
                "from": [{"collectionId": self.reservations_collection}],
                "where": {"compositeFilter": {"op": "AND", "filters": filters}},
            }
        }
        r = await self._send("POST", f"{self.documents_url}:runQuery", json=body)
        if r.status_code != 200:
            raise StoreUnavailable(f"Firestore query failed: HTTP {r.status_code} {_error_status(r) or ''}".strip())

        body = _json_body(r, "query")
        if not isinstance(body, list):
            raise StoreUnavailable("Firestore query returned an unexpected body")

        found: list[Reservation] = []
        for item in body:
            doc = item.get("document") if isinstance(item, dict) else None
            if not doc:
                continue
            data = decode_fields(doc.get("fields", {}))
            try:
                found.append(reservation_from_record(data))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed reservation document %s", doc.get("name"))
        return found

    async def find_by_user_and_date(self, user_id: str, date_key: str) -> Reservation | None:
        found = await self._run_query(
            [
                _field_filter("userId", "EQUAL", user_id),
                _field_filter("date", "EQUAL", date_key),
            ]
        )
        return pick_single(user_id, date_key, found)

    async def find_by_user_and_date_range(self, user_id: str, start_key: str, end_key: str) -> list[Reservation]:
        found = await self._run_query(
            [
                _field_filter("userId", "EQUAL", user_id),
                _field_filter("date", "GREATER_THAN_OR_EQUAL", start_key),
                _field_filter("date", "LESS_THAN_OR_EQUAL", end_key),
            ]
        )
        return sorted(found, key=lambda r: (r.date_key, r.slot))

    async def create(self, reservation: Reservation) -> Reservation:
        rid = reservation_id(reservation.user_id, reservation.date_key, reservation.slot)
        body = {
            "writes": [
                {
                    "update": {
                        "name": f"{self.documents_path}/{self.reservations_collection}/{rid}",
                        "fields": {
                            "userId": _string(reservation.user_id),
                            "displayName": _string(reservation.display_name),
                            "email": _nullable_string(reservation.email),
                            "date": _string(reservation.date_key),
                            "slot": _string(reservation.slot),
                        },
                    },
                    "updateTransforms": [{"fieldPath": "createdAt", "setToServerValue": "REQUEST_TIME"}],
                    "currentDocument": {"exists": False},
                }
            ]
        }

        r = await self._send("POST", f"{self.documents_url}:commit", json=body)
        if r.status_code == 409 or _error_status(r) in _CONFLICT_STATUSES:
            raise ReservationConflict(f"Reservation {rid} already exists")
        if r.status_code != 200:
            raise StoreUnavailable(f"Firestore commit failed: HTTP {r.status_code} {_error_status(r) or ''}".strip())

        data = _json_body(r, "commit")
        if not isinstance(data, dict):
            raise StoreUnavailable("Firestore commit returned an unexpected body")
        created_at = None
        write_results = data.get("writeResults") or [{}]
        transforms = write_results[0].get("transformResults") or []
        if transforms:
            created_at = _decode_value(transforms[0])
        elif data.get("commitTime"):
            created_at = isoparse(data["commitTime"])

        logger.info("Reservation %s committed", rid)
        return Reservation(
            user_id=reservation.user_id,
            date_key=reservation.date_key,
            slot=reservation.slot,
            display_name=reservation.display_name,
            email=reservation.email,
            created_at=created_at,
        )

    async def fetch_profile(self, user_id: str) -> dict[str, Any] | None:
        r = await self._send("GET", f"{self.documents_url}/{self.users_collection}/{user_id}")
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise StoreUnavailable(f"Firestore profile read failed: HTTP {r.status_code}")
        body = _json_body(r, "profile read")
        if not isinstance(body, dict):
            raise StoreUnavailable("Firestore profile read returned an unexpected body")
        return decode_fields(body.get("fields", {}))
