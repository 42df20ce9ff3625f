"""
Tests for beespeak AudioEngine.

Includes both unit tests (mocked) and hardware tests (real mic).
"""

import os
import pytest
import numpy as np
from collections import deque
from unittest.mock import Mock, patch


BLOCK = 1024


def make_config(silence_threshold=0.2, min_utterance_seconds=0.1, mic_name=""):
    from beespeak.config import Config

    config = Mock(spec=Config)
    config.mic_name = mic_name
    config.preroll_seconds = 0.5
    config.silence_threshold = silence_threshold
    config.min_utterance_seconds = min_utterance_seconds
    config.sample_rate = 16000
    return config


def speech_block():
    return np.full((BLOCK, 1), 0.1, dtype=np.float32)


def silence_block():
    return np.zeros((BLOCK, 1), dtype=np.float32)


class TestAudioEngineUnit:
    """Unit tests with mocked sounddevice."""

    def test_computed_sizes(self):
        """Test pre-roll and minimum utterance sizes in samples."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config(min_utterance_seconds=0.5))

        assert engine._preroll_samples == 8000  # 0.5 * 16000
        assert engine._min_utterance_samples == 8000

    def test_silence_detection(self):
        """Test silence detection with various audio levels."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())

        assert engine._is_silence(np.zeros(BLOCK, dtype=np.float32)) == True
        assert engine._is_silence(np.array([], dtype=np.float32)) == True
        assert engine._is_silence(np.full(BLOCK, 0.0001, dtype=np.float32)) == True
        assert engine._is_silence(np.full(BLOCK, 0.1, dtype=np.float32)) == False
        assert engine._is_silence(np.full(BLOCK, 0.5, dtype=np.float32)) == False

    def test_flush_current_chunk(self):
        """Test chunk flushing concatenates buffers correctly."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        engine.current_chunk = [
            np.array([1, 2, 3], dtype=np.float32),
            np.array([4, 5, 6], dtype=np.float32),
        ]

        chunk = engine._flush_current_chunk()

        np.testing.assert_array_equal(chunk, [1, 2, 3, 4, 5, 6])
        assert engine.current_chunk == []
        assert len(engine._flush_current_chunk()) == 0

    def test_trim_trailing_samples(self):
        """Test trimming across buffer boundaries."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        engine.current_chunk = [
            np.array([1, 2, 3], dtype=np.float32),
            np.array([4, 5], dtype=np.float32),
        ]

        engine._trim_trailing_samples(3)

        np.testing.assert_array_equal(engine._flush_current_chunk(), [1, 2])

    def test_start_recording_dumps_preroll(self):
        """Test that preroll is dumped into current chunk on start."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        engine.preroll = deque([
            np.array([1, 2], dtype=np.float32),
            np.array([3, 4], dtype=np.float32),
        ])

        engine.start_recording()

        assert engine.is_recording is True
        assert len(engine.current_chunk) == 2

    def test_idle_blocks_fill_preroll(self):
        """Test audio goes to the pre-roll while not recording."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        engine.preroll = deque(maxlen=2)

        for _ in range(3):
            engine._audio_callback(speech_block(), BLOCK, None, None)

        assert len(engine.preroll) == 2
        assert engine.current_chunk == []

    def test_stop_recording_disconnects_callback(self):
        """Test that callback is disconnected on stop (race condition prevention)."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        engine.on_chunk_ready = Mock()
        engine.start_recording()
        engine._audio_callback(speech_block(), BLOCK, None, None)

        final = engine.stop_recording()

        assert engine.on_chunk_ready is None
        assert engine.is_recording is False
        assert len(final) == BLOCK

    def test_pause_emits_utterance(self):
        """Test a pause after speech delivers one chunk."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        on_chunk = Mock()
        engine.on_chunk_ready = on_chunk
        engine.start_recording()

        for _ in range(3):
            engine._audio_callback(speech_block(), BLOCK, None, None)
        for _ in range(4):  # 4 * 64ms >= 200ms pause
            engine._audio_callback(silence_block(), BLOCK, None, None)

        on_chunk.assert_called_once()
        chunk = on_chunk.call_args.args[0]
        assert len(chunk) == 7 * BLOCK
        assert engine.current_chunk == []

    def test_long_pause_trims_trailing_silence(self):
        """Test only a short tail of silence is kept."""
        from beespeak.audio import AudioEngine, TRAILING_SILENCE_SECONDS

        engine = AudioEngine(make_config(silence_threshold=0.5))
        on_chunk = Mock()
        engine.on_chunk_ready = on_chunk
        engine.start_recording()

        for _ in range(3):
            engine._audio_callback(speech_block(), BLOCK, None, None)
        for _ in range(8):  # 8 * 64ms = 512ms
            engine._audio_callback(silence_block(), BLOCK, None, None)

        chunk = on_chunk.call_args.args[0]
        kept_silence = len(chunk) - 3 * BLOCK
        assert kept_silence <= int(TRAILING_SILENCE_SECONDS * 16000) + 1

    def test_silence_only_emits_nothing(self):
        """Test room noise alone never reaches the transcriber."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        on_chunk = Mock()
        engine.on_chunk_ready = on_chunk
        engine.start_recording()

        for _ in range(10):
            engine._audio_callback(silence_block(), BLOCK, None, None)

        on_chunk.assert_not_called()
        assert len(engine.current_chunk) < 4

    def test_short_utterance_waits(self):
        """Test utterances under the minimum length are not emitted yet."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config(min_utterance_seconds=1.0))
        on_chunk = Mock()
        engine.on_chunk_ready = on_chunk
        engine.start_recording()

        engine._audio_callback(speech_block(), BLOCK, None, None)
        for _ in range(4):
            engine._audio_callback(silence_block(), BLOCK, None, None)

        on_chunk.assert_not_called()
        assert len(engine.stop_recording()) == 5 * BLOCK

    def test_initialize_missing_mic(self):
        """Test a configured mic that is not connected."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config(mic_name="Field Headset"))
        devices = [{"name": "MacBook Pro Microphone", "max_input_channels": 1}]

        sd = Mock()
        sd.query_devices.return_value = devices
        with patch.dict("sys.modules", {"sounddevice": sd}):
            assert engine.initialize() is None
        assert engine.stream is None

    def test_find_device_substring(self):
        """Test fuzzy mic matching skips output-only devices."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        devices = [
            {"name": "Field Headset Output", "max_input_channels": 0},
            {"name": "Field Headset Mic", "max_input_channels": 1},
        ]

        sd = Mock()
        sd.query_devices.return_value = devices
        with patch.dict("sys.modules", {"sounddevice": sd}):
            assert engine._find_device("field headset") == 1

    def test_initialize_opens_stream(self):
        """Test the default input is opened and started."""
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        stream = Mock()

        sd = Mock()
        sd.InputStream.return_value = stream
        with patch.dict("sys.modules", {"sounddevice": sd}):
            assert engine.initialize() == "default"
        input_stream = sd.InputStream

        stream.start.assert_called_once()
        assert input_stream.call_args.kwargs["channels"] == 1
        assert input_stream.call_args.kwargs["callback"] == engine._audio_callback

        engine.shutdown()
        stream.close.assert_called_once()
        assert engine.stream is None


@pytest.mark.skipif(
    not os.getenv("TEST_HARDWARE"),
    reason="Set TEST_HARDWARE=1 to run hardware tests"
)
class TestAudioEngineHardware:
    """Tests with the real default microphone."""

    def test_record_short_clip(self):
        import time
        from beespeak.audio import AudioEngine

        engine = AudioEngine(make_config())
        assert engine.initialize() is not None
        try:
            engine.start_recording()
            time.sleep(0.5)
            chunk = engine.stop_recording()
            assert len(chunk) > 0
        finally:
            engine.shutdown()
