"""
Discrete voice command matching.

Commands are recognized by plain substring search over the lowercased
transcript. The table is walked in declaration order and the first command
with a matching phrase wins, so "save the queen seen notes" resolves to
"queen_seen" because that entry is declared before "save".
"""

from typing import Dict, Optional, Tuple

from .types import SessionFlags, VarroaLevel


# Ordered: earlier entries win when a transcript holds phrases from several
COMMAND_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "start_inspection": ("start inspection", "begin inspection"),
    "finish_inspection": ("finish inspection", "end inspection", "complete inspection"),
    "queen_seen": ("queen seen", "saw queen", "queen present"),
    "queen_not_seen": ("queen not seen", "no queen", "queen absent"),
    "eggs_present": ("eggs present", "eggs seen", "has eggs"),
    "eggs_not_present": ("eggs not present", "no eggs", "eggs absent"),
    "brood_good": ("brood good", "brood pattern good", "good brood"),
    "brood_bad": ("brood bad", "brood pattern bad", "poor brood"),
    "queen_cells_present": ("queen cells present", "queen cells seen", "has queen cells"),
    "queen_cells_absent": ("queen cells absent", "no queen cells", "queen cells not present"),
    "varroa_low": ("varroa low", "low varroa"),
    "varroa_medium": ("varroa medium", "medium varroa"),
    "varroa_high": ("varroa high", "high varroa"),
    "add_photo": ("add photo", "take photo", "capture photo"),
    "next_frame": ("next frame", "mark frame"),
    "save": ("save", "save inspection"),
    "cancel": ("cancel", "discard"),
}

# Each flag command sets exactly one session field
FLAG_COMMANDS: Dict[str, Tuple[str, object]] = {
    "queen_seen": ("queen_seen", True),
    "queen_not_seen": ("queen_seen", False),
    "eggs_present": ("eggs_present", True),
    "eggs_not_present": ("eggs_present", False),
    "brood_good": ("brood_pattern_good", True),
    "brood_bad": ("brood_pattern_good", False),
    "queen_cells_present": ("queen_cells", True),
    "queen_cells_absent": ("queen_cells", False),
    "varroa_low": ("varroa_level", VarroaLevel.LOW),
    "varroa_medium": ("varroa_level", VarroaLevel.MEDIUM),
    "varroa_high": ("varroa_level", VarroaLevel.HIGH),
}

# Forwarded to the session controller, never touch flags
LIFECYCLE_COMMANDS = frozenset({
    "start_inspection",
    "finish_inspection",
    "add_photo",
    "next_frame",
    "save",
    "cancel",
})


def match_command(
    transcript: str,
    table: Optional[Dict[str, Tuple[str, ...]]] = None,
) -> Optional[str]:
    """
    Find the voice command spoken in a transcript.

    Only lowercasing is applied; punctuation and accents are kept as-is.

    Args:
        transcript: Full utterance text (partial or final)
        table: Ordered command table, defaults to COMMAND_KEYWORDS

    Returns:
        Command id of the first entry with a contained phrase, or None
    """
    if table is None:
        table = COMMAND_KEYWORDS

    lowered = transcript.lower()
    for command, phrases in table.items():
        for phrase in phrases:
            if phrase in lowered:
                return command
    return None


def is_flag_command(command: str) -> bool:
    return command in FLAG_COMMANDS


def is_lifecycle_command(command: str) -> bool:
    return command in LIFECYCLE_COMMANDS


def apply_command(current: SessionFlags, command: str) -> SessionFlags:
    """
    Apply the flag effect of a recognized command.

    Lifecycle and unknown commands return the flags unchanged.
    """
    effect = FLAG_COMMANDS.get(command)
    if effect is None:
        return current
    field_name, value = effect
    return current.with_field(field_name, value)


def describe_command(command: str) -> str:
    """Human-readable label, e.g. "queen_cells_absent" -> "Queen Cells Absent"."""
    return command.replace("_", " ").title()
