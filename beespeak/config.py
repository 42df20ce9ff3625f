"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots for session isolation.
"""

from pathlib import Path
from typing import Optional
import json
import os

from .types import ConfigSnapshot


# Defaults
DEFAULT_CONFIG = {
    # Audio
    "mic_name": "",
    "sample_rate": 16000,
    "preroll_seconds": 0.5,
    "silence_threshold": 1.2,  # pause length that ends an utterance
    "min_utterance_seconds": 0.5,

    # Input
    "trigger_key": "alt_r",
    "double_tap_threshold": 0.3,
    "toggle_mode_timeout": 600,

    # Transcription
    "transcription_model": "whisper-large-v3",
    "language": "en",

    # Session
    "default_hive_id": "",
    "default_hive_type": "Langstroth",
    "feedback_sound": True,

    # Photos
    "camera_dir": "",  # folder new photos appear in, e.g. a synced phone camera roll
}


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for session
    """

    def __init__(self, data_dir: Optional[Path] = None):
        # Audio
        self.mic_name: str = ""
        self.sample_rate: int = 16000
        self.preroll_seconds: float = 0.5
        self.silence_threshold: float = 1.2
        self.min_utterance_seconds: float = 0.5

        # Input
        self.trigger_key: str = "alt_r"
        self.double_tap_threshold: float = 0.3
        self.toggle_mode_timeout: float = 600

        # Transcription
        self.transcription_model: str = "whisper-large-v3"
        self.language: str = "en"

        # API Keys
        self.groq_api_key: str = ""

        # Session
        self.default_hive_id: str = ""
        self.default_hive_type: str = "Langstroth"
        self.feedback_sound: bool = True

        # Photos
        self.camera_dir: str = ""

        # Paths
        self.data_dir: Path = data_dir or Path.home() / ".beespeak"
        self.store_file: Path = self.data_dir / "beespeak.json"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"
        self.settings_file: Path = self.data_dir / "settings.json"
        self.env_file: Path = self.data_dir / ".env"
        self.photos_dir: Path = self.data_dir / "InspectionPhotos"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls(data_dir)
        config._ensure_data_dir()
        config._load_env()
        config._load_settings()
        return config

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Load API keys from .env file and environment."""
        env_file = Path(".env")
        if env_file.exists():
            self._parse_env_file(env_file)

        if self.env_file.exists():
            self._parse_env_file(self.env_file)

        # Environment variables override file values
        self.groq_api_key = os.getenv("GROQ_API_KEY", self.groq_api_key)

    def _parse_env_file(self, env_file: Path) -> None:
        """Parse a .env file and extract API keys."""
        try:
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip("'\"")

                    if key == "GROQ_API_KEY":
                        self.groq_api_key = value
        except OSError as e:
            print(f"Error loading {env_file}: {e}")

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        # Project root first, then ~/.beespeak/settings.json overrides
        project_settings = Path("settings.json")
        if project_settings.exists():
            self._apply_settings_file(project_settings)

        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error loading {settings_file}: {e}")
            return

        # Apply settings with type validation
        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            try:
                setattr(self, key, _coerce(data[key], default))
            except (TypeError, ValueError):
                print(f"Ignoring invalid setting {key}={data[key]!r} in {settings_file}")

    def save_settings(self) -> None:
        """Save user-editable settings to settings.json."""
        data = {
            "mic_name": self.mic_name,
            "trigger_key": self.trigger_key,
            "default_hive_id": self.default_hive_id,
            "feedback_sound": self.feedback_sound,
            "camera_dir": self.camera_dir,
        }

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def snapshot(self) -> ConfigSnapshot:
        """Return immutable copy for session isolation."""
        return ConfigSnapshot(
            mic_name=self.mic_name,
            sample_rate=self.sample_rate,
            preroll_seconds=self.preroll_seconds,
            silence_threshold=self.silence_threshold,
            min_utterance_seconds=self.min_utterance_seconds,
            transcription_model=self.transcription_model,
            language=self.language,
            groq_api_key=self.groq_api_key,
            default_hive_id=self.default_hive_id,
            default_hive_type=self.default_hive_type,
            feedback_sound=self.feedback_sound,
        )


def _coerce(value, default):
    """Coerce a settings value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return type(default)(value)
