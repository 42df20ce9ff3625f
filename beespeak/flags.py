"""
Inspection flag extraction from dictated transcripts.

Each flag dimension has its own positive and negative phrase sets. This
table is independent of the command table in commands.py; a single
utterance can both set flags here and trigger a command there.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .types import InspectionFlags, SessionFlags, VarroaLevel, BOOLEAN_FLAG_FIELDS


@dataclass(frozen=True)
class FlagPhrases:
    """Phrase sets for one tri-state flag."""
    field: str
    positive: Tuple[str, ...]
    negative: Tuple[str, ...]

    def detect(self, lowered: str) -> Optional[bool]:
        """Positive phrases win; negative only counts when no positive is present."""
        if any(p in lowered for p in self.positive):
            return True
        if any(p in lowered for p in self.negative):
            return False
        return None


FLAG_PHRASES: Tuple[FlagPhrases, ...] = (
    FlagPhrases(
        "queen_seen",
        positive=("queen seen", "saw queen"),
        negative=("queen not seen", "no queen"),
    ),
    FlagPhrases(
        "eggs_present",
        positive=("eggs present", "eggs seen"),
        negative=("eggs not present", "no eggs"),
    ),
    FlagPhrases(
        "brood_pattern_good",
        positive=("brood good", "good brood"),
        negative=("brood bad", "poor brood"),
    ),
    FlagPhrases(
        "queen_cells",
        positive=("queen cells present", "queen cells seen"),
        negative=("queen cells absent", "no queen cells"),
    ),
)

# Checked in this order; the first level mentioned wins
VARROA_PHRASES: Tuple[Tuple[VarroaLevel, Tuple[str, ...]], ...] = (
    (VarroaLevel.HIGH, ("varroa high", "high varroa")),
    (VarroaLevel.MEDIUM, ("varroa medium", "medium varroa")),
    (VarroaLevel.LOW, ("varroa low", "low varroa")),
)


def _detect_varroa(lowered: str) -> VarroaLevel:
    for level, phrases in VARROA_PHRASES:
        if any(p in lowered for p in phrases):
            return level
    return VarroaLevel.NONE


def extract_flags(transcript: str) -> InspectionFlags:
    """
    Extract a sparse flag patch from a transcript.

    Examples:
        "queen seen, eggs not present, varroa high"
            -> queen_seen=True, eggs_present=False, varroa_level=HIGH
        "varroa low varroa high" -> varroa_level=HIGH
    """
    lowered = transcript.lower()
    detected = {phrases.field: phrases.detect(lowered) for phrases in FLAG_PHRASES}
    return InspectionFlags(varroa_level=_detect_varroa(lowered), **detected)


def apply_flags(current: SessionFlags, patch: InspectionFlags) -> SessionFlags:
    """
    Merge an extracted patch into the session flags.

    Only fields the patch actually sets are overwritten. Applying the same
    patch twice gives the same result as applying it once.
    """
    updates = {}
    for name in BOOLEAN_FLAG_FIELDS:
        value = getattr(patch, name)
        if value is not None:
            updates[name] = value
    if patch.varroa_level is not VarroaLevel.NONE:
        updates["varroa_level"] = patch.varroa_level

    if not updates:
        return current
    return replace(current, **updates)
