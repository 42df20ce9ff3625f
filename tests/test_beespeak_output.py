"""
Tests for beespeak notifications and sounds.
"""

import subprocess
from unittest.mock import patch


class TestOutput:
    def test_escape_for_applescript(self):
        from beespeak.output import _escape_for_applescript

        assert _escape_for_applescript('Hive "A"\\1\n') == 'Hive \\"A\\"\\\\1\\n'

    def test_notify_runs_osascript(self):
        from beespeak.output import notify

        with patch("beespeak.output.subprocess.run") as run:
            notify("Time to check treatment", title="Treatment Check Reminder")

        args, kwargs = run.call_args
        assert args[0] == ["osascript"]
        assert b'with title "Treatment Check Reminder"' in kwargs["input"]

    def test_missing_command_does_not_raise(self):
        """Test platforms without osascript/afplay just print."""
        from beespeak.output import notify, play_sound

        with patch("beespeak.output.subprocess.run", side_effect=FileNotFoundError("afplay")):
            notify("hello")
            play_sound("Tink")

    def test_timeout_does_not_raise(self):
        from beespeak.output import play_command_sound

        with patch("beespeak.output.subprocess.run", side_effect=subprocess.TimeoutExpired("afplay", 2.0)):
            play_command_sound()
