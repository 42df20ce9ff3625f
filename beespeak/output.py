"""
Feedback output: system notifications and sounds.

Uses macOS system commands. On other platforms the commands are missing
and each call just prints why it could not run.
"""

import subprocess


def _escape_for_applescript(text: str) -> str:
    """Escape special characters for AppleScript string."""
    # Order matters: backslash first
    text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    text = text.replace("\r", "\\r")
    text = text.replace("\n", "\\n")
    text = text.replace("\t", "\\t")
    return text


def notify(message: str, title: str = "BeeSpeak") -> None:
    """
    Show a macOS notification.

    Args:
        message: Notification body
        title: Notification title
    """
    try:
        escaped_message = _escape_for_applescript(message)
        escaped_title = _escape_for_applescript(title)
        script = f'''
        display notification "{escaped_message}" with title "{escaped_title}" sound name "default"
        '''
        subprocess.run(
            ["osascript"],
            input=script.encode("utf-8"),
            capture_output=True,
            timeout=2.0
        )
    except (OSError, subprocess.SubprocessError) as e:
        print(f"notify error: {e}")


def play_sound(sound_name: str = "Tink") -> None:
    """
    Play a system sound.

    Args:
        sound_name: Name of sound in /System/Library/Sounds/
    """
    try:
        subprocess.run(
            ["afplay", f"/System/Library/Sounds/{sound_name}.aiff"],
            capture_output=True,
            timeout=2.0
        )
    except (OSError, subprocess.SubprocessError) as e:
        print(f"play_sound error: {e}")


def play_command_sound() -> None:
    """Confirm that a voice command was recognized."""
    play_sound("Tink")


def play_busy_sound() -> None:
    """Play a sound indicating an inspection is already in progress."""
    play_sound("Basso")
