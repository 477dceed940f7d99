from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Identity:
    """The signed-in gym member, as supplied by the identity collaborator."""

    user_id: str
    display_name: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class Reservation:
    """One booked slot for one user on one day.

    At most one reservation exists per (user_id, date_key).
    """

    date_key: str  # YYYY-MM-DD
    slot: str
    user_id: str
    display_name: str
    email: str | None = None
    created_at: dt.datetime | None = None


class ReservationState(str, Enum):
    LOADING = "loading"
    NO_RESERVATION = "no_reservation"
    CHECKING = "checking"
    RESERVED = "reserved"
    CONFLICT = "conflict"


class ReservationError(RuntimeError):
    """Base class for everything the workflow surfaces to the UI.

    user_message is what the member sees; str(exc) is for logs.
    """

    user_message = "No se pudo completar la operación"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class NotAuthenticated(ReservationError):
    user_message = "Debes iniciar sesión para reservar"


class PastDateSelected(ReservationError):
    user_message = "Selecciona una fecha futura"


class UnknownSlot(ReservationError):
    def __init__(self, slot: str) -> None:
        self.slot = slot
        self.user_message = f"El horario {slot!r} no está disponible para esta fecha"
        super().__init__(f"Slot not offered for the selected date: {slot!r}")


class AlreadyReserved(ReservationError):
    def __init__(self, existing: Reservation) -> None:
        self.existing = existing
        self.user_message = f"Ya tienes una reserva para el {existing.date_key} ({existing.slot})."
        super().__init__(f"Already reserved {existing.slot!r} on {existing.date_key}")


class StoreUnavailable(ReservationError):
    """Transport or auth failure talking to the reservation store."""

    user_message = "No se pudo conectar con el servidor de reservas"


class ReservationConflict(ReservationError):
    """The store already holds a record under the same reservation id."""

    user_message = "No se pudo guardar la reserva"
