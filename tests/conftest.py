"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from streamscribe.config import SttConfig

SAMPLE_RATE = 16000


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_path.write_text("""
stt:
  sample_rate: 16000
  vad_window_size: 512
  vad_threshold: 0.4
  vad_min_silence_ms: 500
  vad_backend: "rms"
  whisper_model: "tiny"
  whisper_language: "de"

logging:
  level: "DEBUG"
  file: null
""")
    return config_path


# ==================== Audio Fixtures ====================

def tone_samples(seconds: float, amplitude: float = 0.5, freq: float = 440.0) -> np.ndarray:
    t = np.arange(int(SAMPLE_RATE * seconds)) / SAMPLE_RATE
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def to_pcm(samples: np.ndarray) -> bytes:
    return (np.asarray(samples) * 32767).astype("<i2").tobytes()


@pytest.fixture
def tone_pcm():
    """Factory for a sustained sine tone as 16-bit PCM bytes."""
    def make(seconds: float, amplitude: float = 0.5) -> bytes:
        return to_pcm(tone_samples(seconds, amplitude))
    return make


@pytest.fixture
def silence_pcm():
    """Factory for digital silence as 16-bit PCM bytes."""
    def make(seconds: float) -> bytes:
        return bytes(int(SAMPLE_RATE * seconds) * 2)
    return make


@pytest.fixture
def stt_config():
    """Config using the energy scorer so no model is needed."""
    return SttConfig(
        sample_rate=SAMPLE_RATE,
        vad_window_size=512,
        vad_threshold=0.3,
        vad_min_silence_ms=600,
        vad_min_speech_ms=500,
        vad_max_speech_ms=15000,
        vad_backend="rms",
        whisper_model="tiny",
        whisper_device="cpu",
        whisper_compute_type="int8",
        num_threads=1,
    )


# ==================== Mock Fixtures ====================

class FakeRecognizer:
    """Recognizer returning canned fragments and recording every call."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def recognize(self, audio, sample_rate, language, temperature):
        self.calls.append((audio, sample_rate, language, temperature))
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = [f" utterance {len(self.calls)}"]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_recognizer():
    return FakeRecognizer()


@pytest.fixture
def make_recognizer():
    """Factory for a recognizer with scripted responses (lists of fragments or exceptions)."""
    return FakeRecognizer


@pytest.fixture
def mock_whisper_model():
    """Create a mock Whisper model."""
    mock_model = MagicMock()
    first = MagicMock()
    first.text = " Test"
    second = MagicMock()
    second.text = " transcription"
    mock_model.transcribe.return_value = (iter([first, second]), MagicMock())
    return mock_model


@pytest.fixture
def mock_vad_model():
    """Create a mock Silero VAD model."""
    mock_model = MagicMock()
    mock_model.return_value = MagicMock(item=MagicMock(return_value=0.8))
    mock_model.reset_states = MagicMock()
    return mock_model

