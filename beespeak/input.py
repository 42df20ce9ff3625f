"""
Push-to-talk key handling for dictation.

Hold the trigger key to dictate one burst. Double-tap it to enter pocket
mode, where listening stays on hands-free until the key is pressed again or
the safety timeout passes. Shift+Esc always stops listening.
"""

import threading
import time
from typing import Optional, Callable, Literal

from .config import Config


DictationState = Literal["idle", "push_to_talk", "pocket"]
Action = Literal["start", "stop", None]


class DictationKeys:
    """
    Turns raw pynput key events into start/stop dictation intents.

    Callbacks run outside the internal lock, so a slow stop (waiting for the
    last utterance to be transcribed) does not hold up key handling.

    Usage:
        keys = DictationKeys(config)
        keys.on_start = controller.start_listening
        keys.on_stop = controller.stop_listening

        listener = keyboard.Listener(
            on_press=keys.on_key_press,
            on_release=keys.on_key_release
        )
    """

    def __init__(self, config: Config):
        self.config = config
        self.state: DictationState = "idle"
        self.last_press_time: float = 0.0
        self._lock = threading.Lock()
        self._pocket_timer: Optional[threading.Timer] = None

        self.on_start: Optional[Callable[[], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self.on_reset: Optional[Callable[[], None]] = None

        self._trigger_held = False
        self._shift_held = False

    def on_key_press(self, key) -> None:
        from pynput.keyboard import Key

        if key in (Key.shift, Key.shift_r):
            self._shift_held = True
            return

        if key == Key.esc and self._shift_held:
            self.reset()
            return

        if not self._is_trigger_key(key):
            return

        with self._lock:
            if self._trigger_held:
                return  # key repeat
            self._trigger_held = True
            action = self._press(time.time())

        self._run(action)

    def on_key_release(self, key) -> None:
        from pynput.keyboard import Key

        if key in (Key.shift, Key.shift_r):
            self._shift_held = False
            return

        if not self._is_trigger_key(key):
            return

        with self._lock:
            self._trigger_held = False
            action: Action = None
            if self.state == "push_to_talk":
                self.state = "idle"
                action = "stop"

        self._run(action)

    def _press(self, now: float) -> Action:
        """State transition for a trigger press. Must hold lock."""
        double_tap = now - self.last_press_time < self.config.double_tap_threshold
        self.last_press_time = now

        if self.state == "pocket":
            self.state = "idle"
            self._cancel_pocket_timer()
            return "stop"

        if double_tap:
            # The first tap already started and stopped a short burst
            self.state = "pocket"
            self._arm_pocket_timer()
            return "start"

        if self.state == "idle":
            self.state = "push_to_talk"
            return "start"

        return None

    def _run(self, action: Action) -> None:
        if action == "start" and self.on_start:
            self.on_start()
        elif action == "stop" and self.on_stop:
            self.on_stop()

    def _is_trigger_key(self, key) -> bool:
        """Match the configured trigger name (e.g. "alt_r", "f17") or a single character."""
        from pynput.keyboard import Key, KeyCode

        trigger_name = self.config.trigger_key

        if hasattr(Key, trigger_name):
            return key == getattr(Key, trigger_name)

        if isinstance(key, KeyCode) and key.char is not None:
            return key.char.lower() == trigger_name.lower()

        return False

    def _arm_pocket_timer(self) -> None:
        self._cancel_pocket_timer()
        self._pocket_timer = threading.Timer(self.config.toggle_mode_timeout, self._pocket_timeout)
        self._pocket_timer.daemon = True
        self._pocket_timer.start()

    def _pocket_timeout(self) -> None:
        with self._lock:
            if self.state != "pocket":
                return
            self.state = "idle"
            self._pocket_timer = None
        print("Pocket mode timeout - stopping dictation")
        self._run("stop")

    def _cancel_pocket_timer(self) -> None:
        if self._pocket_timer:
            self._pocket_timer.cancel()
            self._pocket_timer = None

    def reset(self) -> None:
        """Emergency stop: back to idle no matter what."""
        with self._lock:
            was_active = self.state != "idle"
            self.state = "idle"
            self._trigger_held = False
            self._cancel_pocket_timer()

        if self.on_reset:
            self.on_reset()
        elif was_active and self.on_stop:
            self.on_stop()

        print("Dictation reset")
