from __future__ import annotations

import logging
from typing import Any

from polygym.config import Settings
from polygym.domain import Identity, StoreUnavailable
from polygym.store import ReservationStore

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Usuario"


def identity_from_settings(settings: Settings) -> Identity | None:
    if not settings.user_id:
        return None
    return Identity(
        user_id=settings.user_id,
        display_name=settings.user_display_name,
        email=settings.user_email,
    )


def display_name_from_profile(identity: Identity, profile: dict[str, Any] | None) -> str:
    # profile "nombre apellido" -> auth display name -> email -> generic
    if profile:
        nombre = str(profile.get("nombre") or "").strip()
        apellido = str(profile.get("apellido") or "").strip()
        full_name = f"{nombre} {apellido}".strip()
        if full_name:
            return full_name
    return identity.display_name or identity.email or DEFAULT_DISPLAY_NAME


async def resolve_display_name(identity: Identity, store: ReservationStore) -> str:
    try:
        profile = await store.fetch_profile(identity.user_id)
    except StoreUnavailable as e:
        logger.warning("Profile lookup failed for user=%s (%s)", identity.user_id, e)
        profile = None
    return display_name_from_profile(identity, profile)
