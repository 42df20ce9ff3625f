"""
Inspection session management.

An InspectionSession is one hive inspection from start to save/cancel. It
accumulates flags from dictated utterances and discrete voice commands.
The InspectionController owns the active session, relays lifecycle
commands and talks to the injected capabilities (store, speech capture,
reminder scheduler, photos).
"""

import threading
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, Iterable, List, Optional
from uuid import UUID, uuid4

from .commands import match_command, apply_command, is_lifecycle_command
from .flags import extract_flags, apply_flags
from .metrics import MetricsWriter, log_session_start, log_utterance, log_command, log_session_complete
from .notifications import NotificationScheduler
from .photos import PhotoManager
from .speech import SpeechCapture, SpeechError
from .store import InspectionStore, HiveNotFoundError, StoreError
from .types import (
    SessionFlags, InspectionFlags, VarroaLevel, Inspection, Treatment, PhotoItem,
    ParsedCommandLog, BOOLEAN_FLAG_FIELDS,
)


class InspectionError(Exception):
    """An inspection operation was not possible."""


class NoActiveSessionError(InspectionError):
    def __init__(self):
        super().__init__("No inspection in progress")


@dataclass
class InspectionSession:
    """
    Represents one inspection in progress.

    Utterances are handled one at a time: flags mentioned in the utterance
    are merged first, then a recognized command is applied, so the command
    wins if the two disagree.
    """
    hive_id: str
    id: UUID = field(default_factory=uuid4)
    start_time: float = field(default_factory=time.time)
    started_at: datetime = field(default_factory=datetime.now)
    flags: SessionFlags = field(default_factory=SessionFlags)
    utterances: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    photos: List[PhotoItem] = field(default_factory=list)
    parsed_commands: ParsedCommandLog = field(default_factory=list)
    frame: int = 0

    @property
    def transcript(self) -> str:
        return " ".join(self.utterances)

    def handle_utterance(self, text: str) -> Optional[str]:
        """
        Feed one finalized utterance into the session.

        Returns:
            The recognized command id, or None
        """
        text = text.strip()
        if not text:
            return None

        self.utterances.append(text)
        self.apply_patch(extract_flags(text))

        command = match_command(text)
        if command is not None:
            self.apply_command(command)
        return command

    def apply_patch(self, patch: InspectionFlags) -> None:
        self.flags = apply_flags(self.flags, patch)

    def apply_command(self, command: str) -> None:
        """Log a command and apply its flag effect, if it has one."""
        self.parsed_commands.append(command)
        self.flags = apply_command(self.flags, command)

    def toggle_flag(self, name: str) -> None:
        """Manual toggle: True becomes unset, anything else becomes True."""
        if name not in BOOLEAN_FLAG_FIELDS:
            raise ValueError(f"Unknown flag: {name}")
        current = getattr(self.flags, name)
        self.flags = self.flags.with_field(name, None if current is True else True)

    def set_varroa_level(self, level: VarroaLevel) -> None:
        self.flags = self.flags.with_field("varroa_level", VarroaLevel(level))

    def add_tag(self, tag: str) -> None:
        tag = tag.strip()
        if tag and tag not in self.tags:
            self.tags.append(tag)

    def reset(self) -> None:
        """Clear the form but keep the session open on the same hive."""
        self.flags = SessionFlags()
        self.utterances = []
        self.tags = []
        self.photos = []
        self.parsed_commands = []
        self.frame = 0

    def to_inspection(self) -> Inspection:
        return Inspection(
            hive_id=self.hive_id,
            date=datetime.now(),
            queen_seen=self.flags.queen_seen,
            eggs_present=self.flags.eggs_present,
            brood_pattern_good=self.flags.brood_pattern_good,
            queen_cells=self.flags.queen_cells,
            varroa_level=self.flags.varroa_level,
            photos=[p.path for p in self.photos],
            transcript=self.transcript,
            tags=list(self.tags),
        )


class InspectionController:
    """
    Owns the active inspection and relays voice lifecycle commands.

    Only one inspection runs at a time; starting another while one is
    active is rejected. Capabilities are injected, never looked up globally.

    Usage:
        controller = InspectionController(store, capture=capture, scheduler=scheduler)
        controller.start_inspection(hive.id)
        controller.start_listening()
        # utterances arrive on the capture thread via on_utterance()
    """

    def __init__(
        self,
        store: InspectionStore,
        capture: Optional[SpeechCapture] = None,
        scheduler: Optional[NotificationScheduler] = None,
        photos: Optional[PhotoManager] = None,
        metrics: Optional[MetricsWriter] = None,
        on_feedback: Optional[Callable[[str], None]] = None,
        on_busy: Optional[Callable[[], None]] = None,
        default_hive_id: str = "",
        tags: Iterable[str] = (),
    ):
        self.store = store
        self.capture = capture
        self.scheduler = scheduler
        self.photos = photos
        self.metrics = metrics
        self.on_feedback = on_feedback
        self.on_busy = on_busy
        self.default_hive_id = default_hive_id
        # Added to every inspection started by this controller
        self.tags: List[str] = list(tags)

        # Called after each lifecycle command with (command, session)
        self.on_lifecycle: Optional[Callable[[str, InspectionSession], None]] = None

        self.active_session: Optional[InspectionSession] = None
        self._lock = threading.RLock()

    # Lifecycle

    def start_inspection(self, hive_id: Optional[str] = None) -> Optional[InspectionSession]:
        """
        Create and start a new session.

        Returns None if an inspection is already in progress.
        """
        hive_id = hive_id or self.default_hive_id
        with self._lock:
            if self.active_session is not None:
                print(f"[Session] Inspection {self.active_session.id} already in progress")
                if self.on_busy:
                    self.on_busy()
                return None

            hive = self.store.get_hive(hive_id)
            if hive is None:
                raise HiveNotFoundError(hive_id)

            session = InspectionSession(hive_id=hive.id)
            for tag in self.tags:
                session.add_tag(tag)
            self.active_session = session

        print(f"[Session] Inspecting {hive.name}")
        log_session_start(self.metrics, str(session.id), hive.id)
        return session

    def save_inspection(self) -> Inspection:
        """Persist the active session and close it."""
        with self._lock:
            session = self._require_session()
            inspection = session.to_inspection()
            self.store.save_inspection(inspection)
            if self.photos:
                self.photos.release()
            self._close(session, "saved")
        print(f"[Session] Saved inspection {inspection.id}")
        return inspection

    def cancel_inspection(self) -> None:
        """Discard the active session and its photos."""
        with self._lock:
            session = self._require_session()
            if self.photos:
                self.photos.clear()
            self._close(session, "discarded")
        print("[Session] Inspection discarded")

    def reset(self) -> None:
        """Clear the active session's form and photos."""
        with self._lock:
            session = self._require_session()
            if self.photos:
                self.photos.clear()
            session.reset()

    def _close(self, session: InspectionSession, outcome: str) -> None:
        self.active_session = None
        log_session_complete(
            self.metrics,
            str(session.id),
            outcome=outcome,
            duration_ms=(time.time() - session.start_time) * 1000,
            commands=list(session.parsed_commands),
        )

    def _require_session(self) -> InspectionSession:
        if self.active_session is None:
            raise NoActiveSessionError()
        return self.active_session

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self.active_session is not None

    # Speech

    def start_listening(self) -> bool:
        """
        Start speech capture. A failure is reported and leaves us idle.

        Returns:
            True if capture started
        """
        if self.capture is None:
            print("[Session] No speech capture configured")
            return False

        try:
            self.capture.start(self.on_utterance)
        except SpeechError as e:
            print(f"[Session] Failed to start recording: {e}")
            return False
        return True

    def stop_listening(self) -> None:
        if self.capture is not None and self.capture.is_recording:
            self.capture.stop()

    def on_utterance(self, text: str) -> Optional[str]:
        """
        Handle one finalized utterance from speech capture.

        Returns:
            The recognized command, or None
        """
        with self._lock:
            session = self.active_session
            if session is None:
                return self._on_idle_utterance(text)

            command = session.handle_utterance(text)
            log_utterance(self.metrics, str(session.id), text, _set_flags(session.flags))
            if command is None:
                return None

            print(f"[Session] Command: {command}")
            log_command(self.metrics, str(session.id), command)
            if self.on_feedback:
                self.on_feedback(command)

            if is_lifecycle_command(command):
                self._dispatch(command, session)
            return command

    def _on_idle_utterance(self, text: str) -> Optional[str]:
        """With no inspection open, only "start inspection" is acted on."""
        command = match_command(text)
        if command != "start_inspection":
            return None

        try:
            session = self.start_inspection()
        except HiveNotFoundError as e:
            print(f"[Session] Cannot start inspection: {e}")
            return command

        if session is not None:
            session.parsed_commands.append(command)
            if self.on_feedback:
                self.on_feedback(command)
            if self.on_lifecycle:
                self.on_lifecycle(command, session)
        return command

    def _dispatch(self, command: str, session: InspectionSession) -> None:
        """Run the controller side of a lifecycle command."""
        try:
            if command in ("save", "finish_inspection"):
                self.save_inspection()
            elif command == "cancel":
                self.cancel_inspection()
            elif command == "add_photo":
                self._add_photo(session)
            elif command == "next_frame":
                session.frame += 1
                print(f"[Session] Frame {session.frame}")
            elif command == "start_inspection":
                print("[Session] Inspection already in progress")
        except StoreError as e:
            print(f"[Session] Failed to save: {e}")

        if self.on_lifecycle:
            self.on_lifecycle(command, session)

    def _add_photo(self, session: InspectionSession) -> None:
        if self.photos is None:
            print("[Session] No photo source configured")
            return

        try:
            item = self.photos.import_latest(session.hive_id)
        except OSError as e:
            print(f"[Session] Failed to save photo: {e}")
            return

        if item is None:
            print("[Session] No new photo to add")
            return
        session.photos.append(item)
        print(f"[Session] Added photo {item.path}")

    # Manual edits

    def toggle_flag(self, name: str) -> SessionFlags:
        with self._lock:
            session = self._require_session()
            session.toggle_flag(name)
            return session.flags

    def set_varroa_level(self, level: VarroaLevel) -> SessionFlags:
        with self._lock:
            session = self._require_session()
            session.set_varroa_level(level)
            return session.flags

    # Treatments

    def add_treatment(
        self,
        hive_id: str,
        product: str,
        dosage: str,
        next_check_date: Optional[datetime] = None,
        notes: str = "",
    ) -> Treatment:
        """Record a treatment and schedule its check reminder when dated."""
        hive = self.store.get_hive(hive_id)
        if hive is None:
            raise HiveNotFoundError(hive_id)

        treatment = Treatment(
            hive_id=hive.id,
            product=product,
            dosage=dosage,
            next_check_date=next_check_date,
            notes=notes,
        )
        if next_check_date is not None and self.scheduler is not None:
            treatment.notification_id = self.scheduler.schedule_treatment_reminder(treatment, hive.name)

        try:
            return self.store.add_treatment(treatment)
        except StoreError:
            self._cancel_reminders([treatment])
            raise

    def delete_treatment(self, treatment_id: str) -> Treatment:
        """Delete a treatment and cancel its pending reminder."""
        treatment = self.store.delete_treatment(treatment_id)
        self._cancel_reminders([treatment])
        return treatment

    def delete_hive(self, hive_id: str) -> None:
        """Delete a hive with all its records. Its inspection must not be open."""
        with self._lock:
            if self.active_session is not None and self.active_session.hive_id == hive_id:
                raise InspectionError(f"Hive {hive_id} is being inspected")
            removed = self.store.delete_hive(hive_id)
        self._cancel_reminders(removed)

    def delete_apiary(self, apiary_id: str) -> None:
        """Delete an apiary, its hives and their records."""
        with self._lock:
            session = self.active_session
            if session is not None:
                hive = self.store.get_hive(session.hive_id)
                if hive is not None and hive.apiary_id == apiary_id:
                    raise InspectionError(f"Hive {hive.name} is being inspected")
            removed = self.store.delete_apiary(apiary_id)
        self._cancel_reminders(removed)

    def _cancel_reminders(self, treatments: Iterable[Treatment]) -> None:
        if self.scheduler is None:
            return
        for treatment in treatments:
            if treatment.notification_id:
                self.scheduler.cancel(treatment.notification_id)


def _set_flags(flags: SessionFlags) -> dict:
    """Flags that currently hold a value, for metrics."""
    data = asdict(flags)
    data["varroa_level"] = flags.varroa_level.value
    return {k: v for k, v in data.items() if v is not None and v != VarroaLevel.NONE.value}
