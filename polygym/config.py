from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

STORE_BACKENDS = {"file", "firestore"}


def _parse_telegram_chat_ids(raw: str) -> tuple[str, ...]:
    # TELEGRAM_CHAT_ID supports a single value or a comma-separated list.
    # Examples:
    #   TELEGRAM_CHAT_ID=123456789
    #   TELEGRAM_CHAT_ID=123456789,-1001234567890
    parts = [p.strip() for p in raw.split(",")]
    parts = [p for p in parts if p]

    seen: set[str] = set()
    result: list[str] = []
    for p in parts:
        # Groups/supergroups have negative ids.
        try:
            int(p)
        except ValueError as e:
            raise RuntimeError(f"Invalid TELEGRAM_CHAT_ID value: {p!r}. Expected integer chat id.") from e

        if p == "0":
            raise RuntimeError("Invalid TELEGRAM_CHAT_ID value: '0' is not a valid chat id")

        if p in seen:
            continue
        seen.add(p)
        result.append(p)

    return tuple(result)


@dataclass(frozen=True)
class Settings:
    # Signed-in member; no user id means nobody can reserve.
    user_id: str | None = None
    user_display_name: str | None = None
    user_email: str | None = None

    store_backend: str = "file"
    store_file: str = "reservations.json"

    firebase_project_id: str | None = None
    firebase_api_key: str | None = None
    firebase_id_token: str | None = None
    reservations_collection: str = "reservas"
    users_collection: str = "users"
    request_timeout_seconds: float = 20.0

    # Optional JSON table of per-day slot overrides
    schedule_file: str | None = None

    # Reservation confirmations; empty chat ids disables them.
    telegram_bot_token: str | None = None
    telegram_chat_ids: tuple[str, ...] = ()


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    store_backend = os.getenv("STORE_BACKEND", "file").strip().lower()
    if store_backend not in STORE_BACKENDS:
        raise RuntimeError(f"Invalid STORE_BACKEND value: {store_backend!r}. Expected one of: file, firestore")

    firebase_project_id = _optional("FIREBASE_PROJECT_ID")
    if store_backend == "firestore" and not firebase_project_id:
        raise RuntimeError("Missing required environment variable: FIREBASE_PROJECT_ID")

    try:
        request_timeout_seconds = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "20"))
    except ValueError as e:
        raise RuntimeError("REQUEST_TIMEOUT_SECONDS must be a number") from e
    if request_timeout_seconds <= 0:
        raise RuntimeError("REQUEST_TIMEOUT_SECONDS must be > 0")

    telegram_bot_token = _optional("TELEGRAM_BOT_TOKEN")
    telegram_chat_ids = _parse_telegram_chat_ids(os.getenv("TELEGRAM_CHAT_ID", ""))
    if telegram_chat_ids and not telegram_bot_token:
        raise RuntimeError("TELEGRAM_CHAT_ID is set but TELEGRAM_BOT_TOKEN is missing")

    return Settings(
        user_id=_optional("POLYGYM_USER_ID"),
        user_display_name=_optional("POLYGYM_USER_DISPLAY_NAME"),
        user_email=_optional("POLYGYM_USER_EMAIL"),
        store_backend=store_backend,
        store_file=os.getenv("STORE_FILE", "reservations.json"),
        firebase_project_id=firebase_project_id,
        firebase_api_key=_optional("FIREBASE_API_KEY"),
        firebase_id_token=_optional("FIREBASE_ID_TOKEN"),
        reservations_collection=os.getenv("RESERVATIONS_COLLECTION", "reservas"),
        users_collection=os.getenv("USERS_COLLECTION", "users"),
        request_timeout_seconds=request_timeout_seconds,
        schedule_file=_optional("SCHEDULE_FILE"),
        telegram_bot_token=telegram_bot_token,
        telegram_chat_ids=telegram_chat_ids,
    )
