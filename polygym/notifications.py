from __future__ import annotations

import logging

from polygym.config import Settings
from polygym.domain import Reservation
from polygym.telegram_notifier import send_telegram_message

logger = logging.getLogger(__name__)


def format_confirmation(reservation: Reservation) -> str:
    return (
        "Polygym: reserva confirmada.\n"
        f"Fecha: {reservation.date_key}\n"
        f"Horario: {reservation.slot}\n"
        f"A nombre de: {reservation.display_name}"
    )


def notify_reserved(settings: Settings, reservation: Reservation) -> list[str]:
    """Best-effort Telegram confirmation; returns the chat ids that failed."""
    if not settings.telegram_bot_token or not settings.telegram_chat_ids:
        return []

    text = format_confirmation(reservation)
    failed: list[str] = []
    for chat_id in settings.telegram_chat_ids:
        try:
            send_telegram_message(
                bot_token=settings.telegram_bot_token,
                chat_id=chat_id,
                text=text,
                timeout_seconds=settings.request_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Failed to send telegram confirmation to chat_id=%s (%s: %s)", chat_id, type(e).__name__, e)
            failed.append(chat_id)
    return failed
