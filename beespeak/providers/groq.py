"""
Groq Whisper API provider for cloud transcription.
"""

import io
import time

import numpy as np
import soundfile as sf

from . import Provider
from ..types import TranscriptionResult
from ..validate import ValidationResult, validate_groq_key


# Biases Whisper toward the inspection vocabulary
INSPECTION_PROMPT = "Beehive inspection notes: queen, eggs, brood pattern, queen cells, varroa mites."


def _audio_to_wav_bytes(audio: np.ndarray, sample_rate: int = 16000) -> bytes:
    """Convert numpy audio array to WAV bytes."""
    audio_int16 = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    sf.write(buffer, audio_int16, sample_rate, format="WAV", subtype="PCM_16")
    buffer.seek(0)
    return buffer.getvalue()


class GroqProvider(Provider):
    """
    Cloud transcription using Groq's Whisper API.

    Fast cloud-based transcription with low latency.
    """

    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-large-v3",
        language: str = "en",
        sample_rate: int = 16000,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.sample_rate = sample_rate
        self.client = None

    def initialize(self) -> None:
        """Create Groq client."""
        try:
            from groq import Groq

            self.client = Groq(api_key=self.api_key)
            print(f"[{self.name}] Initialized (model: {self.model})")

        except Exception as e:
            print(f"[{self.name}] Failed to initialize: {e}")
            self.client = None

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    def transcribe(self, audio: np.ndarray, mic_name: str = "") -> TranscriptionResult:
        """
        Transcribe audio using Groq Whisper API.

        Args:
            audio: Audio data (16kHz, mono, float32)
            mic_name: Microphone name for metadata

        Returns:
            TranscriptionResult with text and timing. Text is empty on error.
        """
        start = time.time()
        text = ""

        if self.client is None:
            return TranscriptionResult(
                text="",
                provider=self.name,
                mic=mic_name,
                latency_ms=0,
            )

        try:
            audio_file = io.BytesIO(_audio_to_wav_bytes(audio, self.sample_rate))
            audio_file.name = "utterance.wav"

            response = self.client.audio.transcriptions.create(
                file=audio_file,
                model=self.model,
                language=self.language,
                prompt=INSPECTION_PROMPT,
                temperature=0.0,
            )

            text = response.text.strip()

        except Exception as e:
            print(f"[{self.name}] Transcription error: {e}")
            text = ""

        latency_ms = int((time.time() - start) * 1000)

        return TranscriptionResult(
            text=text,
            provider=self.name,
            mic=mic_name,
            latency_ms=latency_ms,
        )

    def check_access(self) -> ValidationResult:
        """Validate the API key and model against the Groq models endpoint."""
        return validate_groq_key(self.api_key, model=self.model)

    def shutdown(self) -> None:
        """Close client."""
        self.client = None
        print(f"[{self.name}] Shutdown")
