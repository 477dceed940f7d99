import argparse
import asyncio
import logging

from polygym.config import Settings, load_settings
from polygym.datekeys import from_key, today_local
from polygym.domain import ReservationError
from polygym.file_store import JsonFileReservationStore
from polygym.firestore_store import FirestoreReservationStore
from polygym.identity import identity_from_settings
from polygym.notifications import notify_reserved
from polygym.slot_catalog import SlotCatalog, load_overrides
from polygym.store import ReservationStore
from polygym.workflow import DayView, ReservationWorkflow


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def build_store(settings: Settings) -> ReservationStore:
    if settings.store_backend == "firestore":
        return FirestoreReservationStore(
            project_id=settings.firebase_project_id or "",
            id_token=settings.firebase_id_token,
            api_key=settings.firebase_api_key,
            reservations_collection=settings.reservations_collection,
            users_collection=settings.users_collection,
            timeout_seconds=settings.request_timeout_seconds,
        )
    return JsonFileReservationStore(settings.store_file)


def build_catalog(settings: Settings) -> SlotCatalog:
    if settings.schedule_file:
        return SlotCatalog(load_overrides(settings.schedule_file))
    return SlotCatalog()


def render(view: DayView) -> str:
    lines = [f"Fecha: {view.date_key}"]

    if view.slots:
        for slot in view.slots:
            if view.reserved_slot == slot:
                lines.append(f"  [x] {slot}  Reservado")
            elif view.reserved_slot:
                lines.append(f"  [-] {slot}")
            else:
                lines.append(f"  [ ] {slot}  Reservar")
    if view.notice:
        lines.append(view.notice)

    marked = sorted(k for k, v in view.month_index.items() if v)
    if marked:
        lines.append("Días con reserva este mes: " + ", ".join(marked))
    return "\n".join(lines)


async def _run(settings: Settings, *, day_key: str | None, slot: str | None) -> int:
    workflow = ReservationWorkflow(
        build_store(settings),
        build_catalog(settings),
        identity_from_settings(settings),
    )

    day = from_key(day_key) if day_key else today_local()
    view = await workflow.select_date(day)

    if slot is None:
        print(render(view))
        return 0

    try:
        result = await workflow.reserve(slot)
    except ReservationError as e:
        print(render(workflow.view))
        print(e.user_message)
        return 1

    print(render(workflow.view))
    r = result.reservation
    if not result.created:
        print(f"Ya tienes una reserva para el {r.date_key} ({r.slot}).")
        return 0

    print(f"Reserva guardada para {r.slot} el {r.date_key}")
    notify_reserved(settings, r)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Polygym: gym slot reservations")
    parser.add_argument("--date", help="Day to show, YYYY-MM-DD (default: today)")
    parser.add_argument("--reserve", metavar="SLOT", help='Reserve a slot, e.g. "07:00 - 08:00"')
    args = parser.parse_args(argv)

    if args.date:
        try:
            from_key(args.date)
        except ValueError as e:
            parser.error(str(e))

    _setup_logging()
    settings = load_settings()

    return asyncio.run(_run(settings, day_key=args.date, slot=args.reserve))


if __name__ == "__main__":
    raise SystemExit(main())
