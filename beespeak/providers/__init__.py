"""
Transcription providers with lifecycle management.

Each provider holds its own state (HTTP clients, model names)
and provides a consistent interface for transcribing one utterance.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..types import TranscriptionResult, ConfigSnapshot
from ..validate import ValidationResult


class Provider(ABC):
    """
    Base class for transcription providers.

    Subclasses must implement:
    - initialize(): Create HTTP client / load model
    - transcribe(): Transcribe audio to text
    - shutdown(): Free resources
    """

    name: str = "base"

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the provider."""
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once initialize() has produced a usable client."""
        pass

    @abstractmethod
    def transcribe(self, audio: np.ndarray, mic_name: str = "") -> TranscriptionResult:
        """
        Transcribe audio to text.

        Args:
            audio: Audio data as numpy array (16kHz, mono, float32)
            mic_name: Name of the microphone (for result metadata)

        Returns:
            TranscriptionResult with text and timing info
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Shutdown the provider and free resources."""
        pass

    def check_access(self) -> ValidationResult:
        """Confirm the provider will accept requests. Local providers always do."""
        return ValidationResult(valid=True)


def create_provider(config: ConfigSnapshot) -> Optional[Provider]:
    """Build the configured provider, or None when no API key is set."""
    if not config.groq_api_key:
        print("[Providers] GROQ_API_KEY not configured")
        return None

    from .groq import GroqProvider

    provider = GroqProvider(
        config.groq_api_key,
        model=config.transcription_model,
        language=config.language,
        sample_rate=config.sample_rate,
    )
    provider.initialize()
    return provider
