"""
Shared type definitions for BeeSpeak.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, List
from uuid import UUID, uuid4

import numpy as np


class VarroaLevel(str, Enum):
    """Mite load observed during an inspection. NONE means not recorded."""
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class InspectionFlags:
    """
    Sparse patch of inspection flags extracted from one utterance.

    A field left at None was not mentioned. It does not mean False.
    """
    queen_seen: Optional[bool] = None
    eggs_present: Optional[bool] = None
    brood_pattern_good: Optional[bool] = None
    queen_cells: Optional[bool] = None
    varroa_level: VarroaLevel = VarroaLevel.NONE

    def is_empty(self) -> bool:
        return (
            self.queen_seen is None
            and self.eggs_present is None
            and self.brood_pattern_good is None
            and self.queen_cells is None
            and self.varroa_level is VarroaLevel.NONE
        )


@dataclass(frozen=True)
class SessionFlags:
    """Flags accumulated over a whole inspection session."""
    queen_seen: Optional[bool] = None
    eggs_present: Optional[bool] = None
    brood_pattern_good: Optional[bool] = None
    queen_cells: Optional[bool] = None
    varroa_level: VarroaLevel = VarroaLevel.NONE

    def with_field(self, name: str, value) -> "SessionFlags":
        return replace(self, **{name: value})


# Boolean flag fields shared by InspectionFlags and SessionFlags
BOOLEAN_FLAG_FIELDS = ("queen_seen", "eggs_present", "brood_pattern_good", "queen_cells")


@dataclass
class TranscriptionResult:
    """Result from a provider transcribing one utterance of audio."""
    text: str
    provider: str
    mic: str
    latency_ms: int
    confidence: Optional[float] = None


@dataclass
class ConfigSnapshot:
    """
    Immutable snapshot of configuration for a session.
    Ensures config changes mid-session don't cause inconsistency.
    """
    # Audio
    mic_name: str
    sample_rate: int
    preroll_seconds: float
    silence_threshold: float
    min_utterance_seconds: float

    # Transcription
    transcription_model: str
    language: str
    groq_api_key: str

    # Session
    default_hive_id: str = ""
    default_hive_type: str = "Langstroth"
    feedback_sound: bool = True


@dataclass
class PhotoItem:
    """Reference to a photo captured during an inspection."""
    path: str
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=datetime.now)


# Records persisted by InspectionStore

@dataclass
class Inspection:
    hive_id: str
    date: datetime = field(default_factory=datetime.now)
    queen_seen: Optional[bool] = None
    eggs_present: Optional[bool] = None
    brood_pattern_good: Optional[bool] = None
    queen_cells: Optional[bool] = None
    varroa_level: VarroaLevel = VarroaLevel.NONE
    photos: List[str] = field(default_factory=list)
    transcript: str = ""
    tags: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class Treatment:
    hive_id: str
    product: str
    dosage: str
    date: datetime = field(default_factory=datetime.now)
    notes: str = ""
    next_check_date: Optional[datetime] = None
    notification_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class Harvest:
    hive_id: str
    weight_kg: float
    date: datetime = field(default_factory=datetime.now)
    notes: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class Hive:
    name: str
    apiary_id: Optional[str] = None
    qr_string: str = ""
    type: str = "Langstroth"
    notes: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self):
        # Hives without a printed label are scanned by their id
        if not self.qr_string:
            self.qr_string = self.id


@dataclass
class Apiary:
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class DashboardSummary:
    """Totals and short lists shown by the dashboard."""
    total_hives: int
    total_inspections: int
    varroa_alerts: int  # inspections with Medium or High varroa
    total_harvest_kg: float
    recent_inspections: List[Inspection] = field(default_factory=list)
    upcoming_treatments: List[Treatment] = field(default_factory=list)


# Type aliases
AudioChunk = np.ndarray  # mono float32 samples for one utterance
ParsedCommandLog = List[str]
