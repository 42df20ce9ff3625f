"""
BeeSpeak - Voice-driven record keeping for beekeepers.

This package provides:
- Keyword command matching for spoken inspection commands
- Flag extraction from free-form dictation (queen, eggs, brood, queen cells, varroa)
- Inspection sessions that merge dictation and commands into one record
- Microphone capture with pause-based utterances and cloud transcription
- A JSON store for apiaries, hives, inspections, treatments and harvests
- Treatment check reminders

Main entry point: python -m beespeak
"""

__version__ = "1.0.0"
