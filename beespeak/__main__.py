"""
Main entry point for BeeSpeak.

Run with: python -m beespeak [command]

    listen [--hive ID | --qr CODE] [--tag T]
                                     dictate inspections (default)
    dashboard                        totals, recent inspections, upcoming checks
    history HIVE                     inspections of one hive, newest first
    apiaries                         list apiaries and hives
    add-apiary NAME                  create an apiary
    add-hive NAME [--apiary ID]      create a hive
    add-treatment HIVE PRODUCT DOSAGE [--check-in-days N]
    add-harvest HIVE WEIGHT_KG
    export [PATH]                    write all records as JSON
    delete-apiary ID | delete-hive ID | delete-treatment ID
"""

import argparse
import signal
import sys
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Union

from . import __version__
from .audio import AudioEngine
from .commands import describe_command
from .config import Config
from .input import DictationKeys
from .metrics import MetricsWriter
from .notifications import LocalNotificationScheduler
from .output import play_command_sound, play_busy_sound
from .photos import PhotoManager
from .providers import create_provider
from .session import InspectionController, InspectionSession, InspectionError, NoActiveSessionError
from .speech import MicrophoneCapture
from .store import InspectionStore, StoreError, HiveNotFoundError, VARROA_ALERT_LEVELS
from .types import Harvest, Inspection, SessionFlags

# Longest check interval add-treatment accepts, in days
MAX_CHECK_IN_DAYS = 3650


def check_in_days(value: str) -> float:
    """argparse type for --check-in-days: a finite number of days, 0 to MAX_CHECK_IN_DAYS."""
    try:
        days = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not 0 <= days <= MAX_CHECK_IN_DAYS:
        raise argparse.ArgumentTypeError(f"must be between 0 and {MAX_CHECK_IN_DAYS} days")
    return days


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="beespeak", description="Voice-driven hive inspection records")
    parser.add_argument("--data-dir", type=Path, default=None, help="defaults to ~/.beespeak")
    sub = parser.add_subparsers(dest="command")

    listen = sub.add_parser("listen", help="dictate inspections")
    target = listen.add_mutually_exclusive_group()
    target.add_argument("--hive", help="hive id to inspect")
    target.add_argument("--qr", help="scanned QR payload of the hive to inspect")
    listen.add_argument("--tag", action="append", default=[], help="tag added to each inspection (repeatable)")

    sub.add_parser("apiaries", help="list apiaries and hives")
    sub.add_parser("dashboard", help="totals, recent inspections and upcoming checks")

    history = sub.add_parser("history", help="inspections of one hive")
    history.add_argument("hive")

    add_apiary = sub.add_parser("add-apiary", help="create an apiary")
    add_apiary.add_argument("name")
    add_apiary.add_argument("--lat", type=float)
    add_apiary.add_argument("--lon", type=float)
    add_apiary.add_argument("--notes", default="")

    add_hive = sub.add_parser("add-hive", help="create a hive")
    add_hive.add_argument("name")
    add_hive.add_argument("--apiary")
    add_hive.add_argument("--qr", default="")
    add_hive.add_argument("--type", default=None)
    add_hive.add_argument("--notes", default="")

    add_treatment = sub.add_parser("add-treatment", help="record a treatment")
    add_treatment.add_argument("hive")
    add_treatment.add_argument("product")
    add_treatment.add_argument("dosage")
    add_treatment.add_argument("--check-in-days", type=check_in_days)
    add_treatment.add_argument("--notes", default="")

    add_harvest = sub.add_parser("add-harvest", help="record a harvest")
    add_harvest.add_argument("hive")
    add_harvest.add_argument("weight_kg", type=float)
    add_harvest.add_argument("--notes", default="")

    export = sub.add_parser("export", help="export all records as JSON")
    export.add_argument("path", nargs="?", type=Path)

    for name in ("apiary", "hive", "treatment"):
        delete = sub.add_parser(f"delete-{name}", help=f"delete a {name}")
        delete.add_argument("id")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Config.load(args.data_dir)

    try:
        store = InspectionStore.open(config.store_file)
    except StoreError as e:
        print(e)
        return 1

    command = args.command or "listen"
    try:
        if command == "listen":
            return listen(
                config,
                store,
                hive_id=getattr(args, "hive", None),
                qr=getattr(args, "qr", None),
                tags=getattr(args, "tag", []),
            )
        if command == "apiaries":
            print_apiaries(store)
        elif command == "dashboard":
            print_dashboard(store)
        elif command == "history":
            print_history(store, args.hive)
        elif command == "add-apiary":
            apiary = store.add_apiary(args.name, latitude=args.lat, longitude=args.lon, notes=args.notes)
            print(apiary.id)
        elif command == "add-hive":
            hive = store.add_hive(
                args.name,
                apiary_id=args.apiary,
                qr_string=args.qr,
                type=args.type or config.default_hive_type,
                notes=args.notes,
            )
            print(hive.id)
        elif command == "add-treatment":
            add_treatment(store, args)
        elif command == "add-harvest":
            harvest = store.add_harvest(Harvest(hive_id=args.hive, weight_kg=args.weight_kg, notes=args.notes))
            print(harvest.id)
        elif command == "export":
            document = store.export_json()
            if args.path:
                args.path.write_text(document)
                print(f"Exported to {args.path}")
            else:
                print(document)
        elif command.startswith("delete-"):
            delete_record(store, command, args.id)
    except (StoreError, InspectionError) as e:
        print(e)
        return 1
    return 0


def add_treatment(store: InspectionStore, args: argparse.Namespace) -> None:
    next_check = None
    if args.check_in_days is not None:
        next_check = datetime.now() + timedelta(days=args.check_in_days)

    # The reminder itself is armed by `listen`, which reschedules pending checks
    controller = InspectionController(store)
    treatment = controller.add_treatment(
        args.hive, args.product, args.dosage, next_check_date=next_check, notes=args.notes
    )
    print(treatment.id)


def print_apiaries(store: InspectionStore) -> None:
    for apiary in store.list_apiaries():
        print(f"{apiary.name}  [{apiary.id}]")
        for hive in store.list_hives(apiary.id):
            print(f"  {hive.name} ({hive.type})  [{hive.id}]  qr={hive.qr_string}")
    unassigned = [h for h in store.list_hives() if h.apiary_id is None]
    if unassigned:
        print("(no apiary)")
        for hive in unassigned:
            print(f"  {hive.name} ({hive.type})  [{hive.id}]  qr={hive.qr_string}")


def print_dashboard(store: InspectionStore) -> None:
    summary = store.summary()
    print(f"Hives: {summary.total_hives}  Inspections: {summary.total_inspections}  "
          f"Varroa alerts: {summary.varroa_alerts}  Harvest: {summary.total_harvest_kg:.1f} kg")

    hive_names = {h.id: h.name for h in store.list_hives()}
    print("Recent inspections:")
    for inspection in summary.recent_inspections:
        alert = "  !" if inspection.varroa_level in VARROA_ALERT_LEVELS else ""
        print(f"  {inspection.date:%Y-%m-%d %H:%M}  {hive_names.get(inspection.hive_id, inspection.hive_id)}{alert}")
    if not summary.recent_inspections:
        print("  (none)")

    print("Upcoming checks:")
    for treatment in summary.upcoming_treatments:
        print(f"  {treatment.next_check_date:%Y-%m-%d}  {hive_names.get(treatment.hive_id, treatment.hive_id)}  "
              f"{treatment.product}  [{treatment.id}]")
    if not summary.upcoming_treatments:
        print("  (none)")


def print_history(store: InspectionStore, hive_id: str) -> None:
    hive = store.get_hive(hive_id)
    if hive is None:
        raise HiveNotFoundError(hive_id)
    print(f"{hive.name}  [{hive.id}]")
    for inspection in store.inspections_for(hive.id):
        tags = f"  #{' #'.join(inspection.tags)}" if inspection.tags else ""
        print(f"  {inspection.date:%Y-%m-%d %H:%M}  {format_flags(inspection)}{tags}")


def delete_record(store: InspectionStore, command: str, record_id: str) -> None:
    controller = InspectionController(store)
    if command == "delete-apiary":
        controller.delete_apiary(record_id)
    elif command == "delete-hive":
        controller.delete_hive(record_id)
    else:
        controller.delete_treatment(record_id)
    print(f"Deleted {record_id}")


def format_flags(flags: Union[SessionFlags, Inspection]) -> str:
    def tri(value, yes="Yes", no="No"):
        return "-" if value is None else (yes if value else no)

    return (
        f"Queen: {tri(flags.queen_seen)} | Eggs: {tri(flags.eggs_present)} | "
        f"Brood: {tri(flags.brood_pattern_good, 'Good', 'Poor')} | "
        f"Queen cells: {tri(flags.queen_cells, 'Present', 'Absent')} | "
        f"Varroa: {flags.varroa_level.value}"
    )


def make_reset_handler(controller: InspectionController):
    """Shift+Esc: stop listening and clear the open inspection form."""
    def on_reset() -> None:
        controller.stop_listening()
        try:
            controller.reset()
        except NoActiveSessionError:
            return
        print("  Inspection form cleared")

    return on_reset


def listen(
    config: Config,
    store: InspectionStore,
    hive_id: Optional[str] = None,
    qr: Optional[str] = None,
    tags: Iterable[str] = (),
) -> int:
    """Run a dictation loop until Ctrl+C."""
    from pynput import keyboard

    print(f"BeeSpeak v{__version__} starting...")
    snapshot = config.snapshot()

    if qr:
        hive = store.find_hive_by_qr(qr)
        if hive is None:
            print(f"No hive with QR code {qr!r}")
            return 1
        hive_id = hive.id
    hive_id = hive_id or snapshot.default_hive_id

    metrics = MetricsWriter(config.metrics_file)
    scheduler = LocalNotificationScheduler()
    hive_names = {h.id: h.name for h in store.list_hives()}
    pending = scheduler.reschedule_pending(store.list_treatments(), hive_names)
    print(f"  Treatment reminders: {pending}")

    capture = MicrophoneCapture(AudioEngine(config), create_provider(snapshot))
    if not capture.authorize():
        print("Speech recognition authorization denied. Check GROQ_API_KEY.")
        scheduler.shutdown()
        metrics.shutdown()
        return 1

    photos = PhotoManager(config.photos_dir, Path(config.camera_dir).expanduser() if config.camera_dir else None)
    controller = InspectionController(
        store,
        capture=capture,
        scheduler=scheduler,
        photos=photos,
        metrics=metrics,
        on_feedback=(lambda _command: play_command_sound()) if snapshot.feedback_sound else None,
        on_busy=play_busy_sound if snapshot.feedback_sound else None,
        default_hive_id=hive_id or "",
        tags=tags,
    )

    def on_lifecycle(command: str, session: InspectionSession) -> None:
        print(f"  > {describe_command(command)}")

    controller.on_lifecycle = on_lifecycle

    if hive_id:
        try:
            controller.start_inspection(hive_id)
        except HiveNotFoundError as e:
            print(e)
            return 1
    else:
        print("  No hive selected; say \"start inspection\" after choosing one with --hive or --qr")

    def on_stop() -> None:
        controller.stop_listening()
        session = controller.active_session
        if session is not None:
            print(f"  {format_flags(session.flags)}")

    keys = DictationKeys(config)
    keys.on_start = controller.start_listening
    keys.on_stop = on_stop
    keys.on_reset = make_reset_handler(controller)

    listener = keyboard.Listener(on_press=keys.on_key_press, on_release=keys.on_key_release)
    listener.start()

    done = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: done.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: done.set())

    print(f"Ready! Hold {config.trigger_key} to dictate, double-tap for pocket mode.")
    print("Say \"save\" to store the inspection. Press Ctrl+C to quit.")

    try:
        done.wait()
    finally:
        print("\nShutting down...")
        listener.stop()
        capture.shutdown()
        if controller.is_busy:
            print("  Unsaved inspection discarded")
            controller.cancel_inspection()
        scheduler.shutdown()
        metrics.shutdown()
        print("Goodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
