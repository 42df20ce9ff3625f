"""
Treatment reminder scheduling.

The scheduler is passed into whatever needs it. LocalNotificationScheduler
keeps one timer per reminder and only fires while the process is running;
reschedule_pending() re-arms reminders from the store at startup.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional
from uuid import uuid4

from .output import notify
from .types import Treatment


REMINDER_TITLE = "Treatment Check Reminder"


class NotificationError(Exception):
    """A reminder could not be scheduled."""


class NoDateProvidedError(NotificationError):
    def __init__(self):
        super().__init__("No next check date provided for treatment")


def reminder_body(treatment: Treatment, hive_name: str) -> str:
    return f"Time to check treatment for {hive_name}: {treatment.product}"


class NotificationScheduler(ABC):
    """Capability for scheduling treatment check reminders."""

    @abstractmethod
    def schedule_treatment_reminder(self, treatment: Treatment, hive_name: str) -> str:
        """
        Schedule a reminder at treatment.next_check_date.

        Returns:
            Notification id, used to cancel the reminder later

        Raises:
            NoDateProvidedError: treatment has no next_check_date
        """
        pass

    @abstractmethod
    def cancel(self, notification_id: str) -> None:
        pass


class LocalNotificationScheduler(NotificationScheduler):
    """
    In-process scheduler using threading.Timer and system notifications.

    Usage:
        scheduler = LocalNotificationScheduler()
        treatment.notification_id = scheduler.schedule_treatment_reminder(treatment, hive.name)
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        send: Callable[[str, str], None] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._send = send or (lambda title, body: notify(body, title=title))
        self._now = now
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule_treatment_reminder(
        self,
        treatment: Treatment,
        hive_name: str,
        notification_id: Optional[str] = None,
    ) -> str:
        if treatment.next_check_date is None:
            raise NoDateProvidedError()

        notification_id = notification_id or str(uuid4())
        body = reminder_body(treatment, hive_name)
        delay = max(0.0, (treatment.next_check_date - self._now()).total_seconds())

        timer = threading.Timer(delay, self._fire, args=(notification_id, body))
        timer.daemon = True
        with self._lock:
            self._timers[notification_id] = timer
        timer.start()

        print(f"[Reminders] {hive_name}: {treatment.product} at {treatment.next_check_date:%Y-%m-%d %H:%M}")
        return notification_id

    def _fire(self, notification_id: str, body: str) -> None:
        with self._lock:
            if self._timers.pop(notification_id, None) is None:
                return  # Cancelled
        self._send(REMINDER_TITLE, body)

    def cancel(self, notification_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()

    def reschedule_pending(self, treatments: Iterable[Treatment], hive_names: Dict[str, str]) -> int:
        """
        Re-arm reminders that are still in the future.

        Returns:
            Number of reminders scheduled
        """
        now = self._now()
        count = 0
        for treatment in treatments:
            if treatment.next_check_date is None or treatment.next_check_date <= now:
                continue
            hive_name = hive_names.get(treatment.hive_id, treatment.hive_id)
            self.schedule_treatment_reminder(treatment, hive_name, treatment.notification_id)
            count += 1
        return count

    @property
    def pending_ids(self) -> list:
        with self._lock:
            return list(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
