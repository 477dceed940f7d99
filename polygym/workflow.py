from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from typing import Callable

from polygym.datekeys import is_past, month_bounds, to_key, today_local
from polygym.domain import (
    AlreadyReserved,
    Identity,
    NotAuthenticated,
    PastDateSelected,
    Reservation,
    ReservationConflict,
    ReservationError,
    ReservationState,
    StoreUnavailable,
    UnknownSlot,
)
from polygym.identity import resolve_display_name
from polygym.slot_catalog import SlotCatalog
from polygym.store import ReservationStore

logger = logging.getLogger(__name__)

NOTICE_PICK_FUTURE = "Selecciona una fecha futura"
NOTICE_NO_SLOTS = "No hay horarios disponibles"


@dataclass(frozen=True)
class DayView:
    """Everything the UI needs to render the selected day."""

    date_key: str | None = None
    is_past: bool = False
    slots: tuple[str, ...] = ()
    state: ReservationState = ReservationState.NO_RESERVATION
    reservation: Reservation | None = None
    # DateKey -> True for days of the visible month that carry a reservation
    month_index: dict[str, bool] = field(default_factory=dict)
    notice: str | None = None

    @property
    def reserved_slot(self) -> str | None:
        return self.reservation.slot if self.reservation else None


@dataclass(frozen=True)
class ReserveResult:
    reservation: Reservation
    # False when an existing booking for the day was found and adopted.
    created: bool


class ReservationWorkflow:
    """Per-session state for the selected day and its reservation.

    Each select_date() starts a new generation; any store response that
    resolves after a newer selection is dropped instead of applied.
    """

    def __init__(
        self,
        store: ReservationStore,
        catalog: SlotCatalog | None = None,
        identity: Identity | None = None,
        *,
        today: Callable[[], dt.date] = today_local,
    ) -> None:
        self._store = store
        self._catalog = catalog or SlotCatalog()
        self._identity = identity
        self._today = today

        self._view = DayView()
        self._selected: dt.date | None = None
        self._generation = 0
        self._display_name: str | None = None

    @property
    def view(self) -> DayView:
        return self._view

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _update(self, generation: int, **changes: object) -> None:
        if self._is_current(generation):
            self._view = replace(self._view, **changes)

    async def select_date(self, day: dt.date) -> DayView:
        self._generation += 1
        generation = self._generation
        self._selected = day

        key = to_key(day)
        past = is_past(day, self._today())
        slots = () if past else self._catalog.slots_for(day)
        if past:
            notice = NOTICE_PICK_FUTURE
        elif not slots:
            notice = NOTICE_NO_SLOTS
        else:
            notice = None

        self._view = DayView(
            date_key=key,
            is_past=past,
            slots=slots,
            state=ReservationState.LOADING,
            notice=notice,
        )

        if self._identity is None:
            self._update(generation, state=ReservationState.NO_RESERVATION)
            return self._view

        user_id = self._identity.user_id
        start_key, end_key = month_bounds(day)

        try:
            if past:
                day_reservation = None
                month = await self._store.find_by_user_and_date_range(user_id, start_key, end_key)
            else:
                day_reservation, month = await asyncio.gather(
                    self._store.find_by_user_and_date(user_id, key),
                    self._store.find_by_user_and_date_range(user_id, start_key, end_key),
                )
        except StoreUnavailable as e:
            if not self._is_current(generation):
                logger.debug("Ignoring store failure for superseded selection %s", key)
                return self._view
            logger.error("Loading reservations for %s failed (%s: %s)", key, type(e).__name__, e)
            self._view = DayView(
                date_key=key,
                is_past=past,
                state=ReservationState.NO_RESERVATION,
                notice=StoreUnavailable.user_message,
            )
            return self._view

        if not self._is_current(generation):
            logger.debug("Dropping stale reservation results for %s", key)
            return self._view

        self._view = replace(
            self._view,
            state=ReservationState.RESERVED if day_reservation else ReservationState.NO_RESERVATION,
            reservation=day_reservation,
            month_index={r.date_key: True for r in month},
        )
        logger.info(
            "Selected %s: slots=%d reserved=%s month_marks=%d",
            key,
            len(slots),
            day_reservation.slot if day_reservation else None,
            len(self._view.month_index),
        )
        return self._view

    async def _acting_display_name(self, identity: Identity) -> str:
        if self._display_name is None:
            self._display_name = await resolve_display_name(identity, self._store)
        return self._display_name

    def _settle(self, generation: int, reservation: Reservation, *, created: bool) -> ReserveResult:
        if self._is_current(generation):
            index = dict(self._view.month_index)
            index[reservation.date_key] = True
            self._view = replace(
                self._view,
                state=ReservationState.RESERVED,
                reservation=reservation,
                month_index=index,
                notice=None,
            )
        return ReserveResult(reservation=reservation, created=created)

    async def reserve(self, slot: str) -> ReserveResult:
        identity = self._identity
        if identity is None:
            raise NotAuthenticated()
        if self._selected is None:
            raise ReservationError("No date selected")

        day = self._selected
        key = to_key(day)
        generation = self._generation

        if is_past(day, self._today()):
            raise PastDateSelected()
        if slot not in self._view.slots:
            raise UnknownSlot(slot)

        current = self._view.reservation
        if self._view.state is ReservationState.RESERVED and current is not None and current.slot != slot:
            raise AlreadyReserved(current)

        self._update(generation, state=ReservationState.CHECKING)
        try:
            # State may be stale (another tab/device); ask the store again.
            existing = await self._store.find_by_user_and_date(identity.user_id, key)
            if existing is not None:
                logger.info("User %s already has %s on %s; adopting it", identity.user_id, existing.slot, key)
                return self._settle(generation, existing, created=False)

            candidate = Reservation(
                user_id=identity.user_id,
                date_key=key,
                slot=slot,
                display_name=await self._acting_display_name(identity),
                email=identity.email,
            )
            try:
                stored = await self._store.create(candidate)
            except ReservationConflict:
                self._update(generation, state=ReservationState.CONFLICT)
                existing = await self._store.find_by_user_and_date(identity.user_id, key)
                if existing is None:
                    self._update(generation, state=ReservationState.NO_RESERVATION)
                    raise
                logger.info("Create conflicted for %s on %s; adopting %s", identity.user_id, key, existing.slot)
                return self._settle(generation, existing, created=False)

        except StoreUnavailable as e:
            logger.error("Reserving %s on %s failed (%s: %s)", slot, key, type(e).__name__, e)
            if self._is_current(generation):
                self._view = DayView(
                    date_key=key,
                    state=ReservationState.NO_RESERVATION,
                    notice=StoreUnavailable.user_message,
                )
            raise

        logger.info("Reserved %s on %s for user %s", slot, key, identity.user_id)
        return self._settle(generation, stored, created=True)
