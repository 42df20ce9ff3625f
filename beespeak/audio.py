"""
Audio engine for microphone capture with a pre-roll buffer and
pause-based utterance segmentation.

Each time the speaker pauses for `silence_threshold` seconds the audio so
far is emitted as one utterance chunk, so dictation is delivered to the
transcriber one finished phrase at a time.
"""

import threading
from collections import deque
from typing import List, Optional, Callable

import numpy as np

from .types import AudioChunk
from .config import Config


# Constants
DEFAULT_BLOCKSIZE = 1024
SILENCE_THRESHOLD_DB = -35  # dB threshold for silence detection
TRAILING_SILENCE_SECONDS = 0.3  # Keep this much silence at end of utterance


class AudioEngine:
    """
    Manages one mic stream with a pre-roll buffer.
    Detects pauses to emit utterance chunks during recording.

    Thread-safe: all public methods can be called from any thread.

    Usage:
        engine = AudioEngine(config)
        engine.initialize()

        engine.on_chunk_ready = capture.on_chunk_ready
        engine.start_recording()
        # ... beekeeper speaks ...
        final_chunk = engine.stop_recording()
    """

    def __init__(self, config: Config):
        self.config = config

        self.stream: Optional["sd.InputStream"] = None
        self.mic_name: str = ""
        self.preroll: deque = deque(maxlen=1)
        self.current_chunk: List[np.ndarray] = []

        # State
        self.is_recording: bool = False
        self.silence_duration: float = 0.0
        self._heard_speech: bool = False
        self._lock = threading.Lock()

        # Callback for utterance emission
        self.on_chunk_ready: Optional[Callable[[AudioChunk], None]] = None

        # Computed values
        self._preroll_samples = int(config.preroll_seconds * config.sample_rate)
        self._min_utterance_samples = int(config.min_utterance_seconds * config.sample_rate)

    def initialize(self) -> Optional[str]:
        """
        Open the configured mic (or the system default input).

        Returns:
            Name of the opened mic, or None if no input could be opened
        """
        import sounddevice as sd

        try:
            device_index = None
            if self.config.mic_name:
                device_index = self._find_device(self.config.mic_name)
                if device_index is None:
                    print(f"Mic not found: {self.config.mic_name}")
                    return None

            preroll_chunks = max(1, int(self._preroll_samples / DEFAULT_BLOCKSIZE))
            self.preroll = deque(maxlen=preroll_chunks)
            self.current_chunk = []

            stream = sd.InputStream(
                device=device_index,
                samplerate=self.config.sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=DEFAULT_BLOCKSIZE,
                callback=self._audio_callback,
            )
            stream.start()
            self.stream = stream
            self.mic_name = self.config.mic_name or "default"
            print(f"Initialized mic: {self.mic_name}")
            return self.mic_name

        except Exception as e:
            print(f"Failed to initialize mic {self.config.mic_name or 'default'}: {e}")
            return None

    def _find_device(self, mic_name: str) -> Optional[int]:
        """Find device index by name (fuzzy matching)."""
        import sounddevice as sd

        devices = sd.query_devices()
        mic_lower = mic_name.lower()

        # Exact match first
        for i, d in enumerate(devices):
            if d["max_input_channels"] > 0:
                if d["name"].lower() == mic_lower:
                    return i

        # Substring match
        for i, d in enumerate(devices):
            if d["max_input_channels"] > 0:
                if mic_lower in d["name"].lower():
                    return i

        return None

    def start_recording(self) -> None:
        """Begin capturing audio. Dumps preroll into current chunk."""
        with self._lock:
            self.is_recording = True
            self.silence_duration = 0.0
            self._heard_speech = False
            self.current_chunk = list(self.preroll)

    def stop_recording(self) -> AudioChunk:
        """
        Stop recording and return the final utterance.

        Disconnects on_chunk_ready before returning so a late callback
        cannot deliver a chunk after the caller has moved on.
        """
        with self._lock:
            self.is_recording = False
            self.on_chunk_ready = None
            self.silence_duration = 0.0
            return self._flush_current_chunk()

    def shutdown(self) -> None:
        """Close the stream cleanly."""
        # Close outside the lock to avoid deadlock with the audio callback
        with self._lock:
            self.is_recording = False
            self.on_chunk_ready = None
            stream = self.stream
            self.stream = None
            self.preroll.clear()
            self.current_chunk = []

        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                print(f"Error closing stream {self.mic_name}: {e}")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """
        Called by sounddevice for each audio block.

        Fills the pre-roll while idle, builds the utterance while recording,
        and emits it once the speaker has paused long enough.
        """
        if status:
            print(f"Audio callback status ({self.mic_name}): {status}")

        audio = indata.copy().flatten()

        with self._lock:
            if not self.is_recording:
                self.preroll.append(audio)
                return

            self.current_chunk.append(audio)

            if not self._is_silence(audio):
                self.silence_duration = 0.0
                self._heard_speech = True
                return

            self.silence_duration += frames / self.config.sample_rate
            if self.silence_duration < self.config.silence_threshold:
                return

            if not self._heard_speech:
                # Nothing but room noise so far, keep the buffer from growing
                self.current_chunk = []
                self.silence_duration = 0.0
                return

            chunk_samples = sum(len(b) for b in self.current_chunk)
            if chunk_samples < self._min_utterance_samples:
                self.silence_duration = 0.0
                return

            excess_silence = self.silence_duration - TRAILING_SILENCE_SECONDS
            if excess_silence > 0:
                self._trim_trailing_samples(int(excess_silence * self.config.sample_rate))

            chunk = self._flush_current_chunk()
            self.silence_duration = 0.0
            self._heard_speech = False
            callback = self.on_chunk_ready

        # Deliver outside the lock so the callback may call stop_recording()
        if callback is not None and len(chunk) > 0:
            callback(chunk)

    def _is_silence(self, audio: np.ndarray) -> bool:
        """Check if audio block is silence."""
        if len(audio) == 0:
            return True

        rms = np.sqrt(np.mean(audio ** 2))
        if rms == 0:
            return True

        db = 20 * np.log10(rms)
        return db < SILENCE_THRESHOLD_DB

    def _trim_trailing_samples(self, samples_to_trim: int) -> None:
        """
        Trim samples from the end of the current utterance.

        Must be called with lock held.
        """
        buffers = self.current_chunk
        remaining_to_trim = samples_to_trim
        while remaining_to_trim > 0 and buffers:
            last_buffer = buffers[-1]
            if len(last_buffer) <= remaining_to_trim:
                remaining_to_trim -= len(last_buffer)
                buffers.pop()
            else:
                buffers[-1] = last_buffer[:-remaining_to_trim]
                remaining_to_trim = 0

    def _flush_current_chunk(self) -> AudioChunk:
        """
        Flush the current utterance buffer and return its samples.

        Must be called with lock held.
        """
        if self.current_chunk:
            chunk = np.concatenate(self.current_chunk)
        else:
            chunk = np.array([], dtype=np.float32)
        self.current_chunk = []
        return chunk
