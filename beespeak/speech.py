"""
Speech capture: microphone audio in, finalized utterance text out.

The inspection controller only sees the SpeechCapture interface. The
microphone implementation transcribes each utterance on a single worker
thread, so utterances reach the callback one at a time and in order.
"""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Callable, List, Optional

from .audio import AudioEngine
from .providers import Provider
from .types import AudioChunk


UtteranceCallback = Callable[[str], None]


class SpeechError(Exception):
    """Speech capture could not be started."""
    message = "Speech capture error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


class RecognizerUnavailableError(SpeechError):
    message = "Speech recognizer is not available"


class AudioEngineError(SpeechError):
    message = "Audio engine error"


class AuthorizationDeniedError(SpeechError):
    message = "Speech recognition authorization denied"


# ValidationResult error prefixes that mean the configuration was refused
DENIED_ERRORS = ("Invalid key", "Key too short", "Unknown model")


class SpeechCapture(ABC):
    """
    Capability that turns speech into utterance strings.

    start() is the only fallible step. After a failed start no utterances
    are ever delivered.
    """

    def authorize(self) -> bool:
        """Ask for permission to capture. Captures that need none return True."""
        return True

    @abstractmethod
    def start(self, on_utterance: UtteranceCallback) -> None:
        """Begin capturing; raises SpeechError if capture cannot start."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing and deliver any final utterance before returning."""
        pass

    @property
    @abstractmethod
    def is_recording(self) -> bool:
        pass


class MicrophoneCapture(SpeechCapture):
    """
    SpeechCapture backed by AudioEngine and a transcription provider.

    Usage:
        capture = MicrophoneCapture(AudioEngine(config), provider)
        capture.start(controller.on_utterance)
        # ... beekeeper dictates ...
        capture.stop()
    """

    def __init__(self, engine: AudioEngine, provider: Optional[Provider], timeout: float = 30.0):
        self.engine = engine
        self.provider = provider
        self.timeout = timeout

        self._on_utterance: Optional[UtteranceCallback] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self._recording = False
        self._authorized: Optional[bool] = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    def authorize(self) -> bool:
        """Check the provider will accept our credentials."""
        if self.provider is None:
            self._authorized = False
            return False

        result = self.provider.check_access()
        if result.valid:
            print(f"[Capture] {self.provider.name} authorized ({result.latency_ms}ms)")
            self._authorized = True
        elif (result.error or "").startswith(DENIED_ERRORS):
            print(f"[Capture] {self.provider.name} rejected configuration: {result.error}")
            self._authorized = False
        else:
            # Network trouble is not a denial; transcription may still work later
            print(f"[Capture] Could not verify {self.provider.name}: {result.error}")
            self._authorized = True
        return self._authorized

    def start(self, on_utterance: UtteranceCallback) -> None:
        if self._authorized is False:
            raise AuthorizationDeniedError()

        if self.provider is None or not self.provider.is_ready:
            raise RecognizerUnavailableError()

        if self.engine.stream is None and self.engine.initialize() is None:
            raise AudioEngineError("No microphone could be opened")

        with self._lock:
            self._on_utterance = on_utterance
            self._executor = ThreadPoolExecutor(max_workers=1)
            self._pending = []

        self.engine.on_chunk_ready = self.on_chunk_ready
        self.engine.start_recording()
        self._recording = True
        print("[Capture] Listening")

    def on_chunk_ready(self, chunk: AudioChunk) -> None:
        """Called by AudioEngine when the speaker pauses."""
        if len(chunk) == 0:
            return

        with self._lock:
            if self._executor is None:
                return
            future = self._executor.submit(self._transcribe, chunk)
            self._pending.append(future)

    def _transcribe(self, chunk: AudioChunk) -> None:
        result = self.provider.transcribe(chunk, self.engine.mic_name)
        text = result.text.strip()
        if not text:
            return

        duration = len(chunk) / self.engine.config.sample_rate
        print(f"[Capture] {duration:.1f}s in {result.latency_ms/1000:.2f}s -> \"{text}\"")

        callback = self._on_utterance
        if callback is None:
            return

        # Report now rather than when stop() collects the future
        try:
            callback(text)
        except Exception as e:
            print(f"[Capture] Utterance handler failed: {e}")

    def stop(self) -> None:
        if not self._recording:
            return

        final_chunk = self.engine.stop_recording()
        self._recording = False
        self.on_chunk_ready(final_chunk)

        with self._lock:
            pending = list(self._pending)
            executor = self._executor

        for future in pending:
            try:
                future.result(timeout=self.timeout)
            except Exception as e:
                print(f"[Capture] Utterance failed: {e}")

        with self._lock:
            self._executor = None
            self._pending = []
            self._on_utterance = None

        if executor is not None:
            executor.shutdown(wait=False)
        print("[Capture] Stopped")

    def shutdown(self) -> None:
        self.stop()
        self.engine.shutdown()
        if self.provider is not None:
            self.provider.shutdown()
