"""Speech-to-text transcription of closed voice segments."""

import asyncio
import io
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from faster_whisper import WhisperModel

from ..config import SttConfig
from ..errors import TranscriptionFailed
from .vad import SegmentClosure, VoiceSegment
from .wav import encode_wav

logger = logging.getLogger(__name__)


class Recognizer(Protocol):
    """Transcribes a WAV container into text fragments, in order."""

    def recognize(
        self,
        audio: bytes,
        sample_rate: int,
        language: str,
        temperature: float,
    ) -> Iterable[str]: ...


@dataclass
class TranscriptionResult:
    """A finalized utterance."""
    text: str
    sequence: int
    start_ms: int
    duration_ms: int
    closure: SegmentClosure


class WhisperRecognizer:
    """Recognizer backed by faster-whisper."""

    def __init__(self, config: SttConfig):
        self.config = config
        self.model_name = config.whisper_model
        self.device = config.device
        self.compute_type = config.whisper_compute_type
        self.beam_size = config.whisper_beam_size
        self.cpu_threads = config.num_threads

        self._model: Optional[WhisperModel] = None
        self._model_lock = threading.Lock()

    def _load_model(self) -> None:
        """Load the Whisper model."""
        logger.info(f"Loading Whisper model: {self.model_name} on {self.device}")
        try:
            self._model = WhisperModel(
                self.model_name,
                device=self.device,
                compute_type=self.compute_type,
                cpu_threads=self.cpu_threads,
            )
            logger.info("Whisper model loaded")
        except Exception as e:
            logger.error(f"Failed to load Whisper model: {e}")
            raise

    def ensure_loaded(self) -> WhisperModel:
        with self._model_lock:
            if self._model is None:
                self._load_model()
            return self._model

    def recognize(
        self,
        audio: bytes,
        sample_rate: int,
        language: str,
        temperature: float,
    ) -> list[str]:
        model = self.ensure_loaded()

        # faster-whisper decodes the container itself and resamples as needed
        segments, _info = model.transcribe(
            io.BytesIO(audio),
            language=language,
            temperature=temperature,
            beam_size=self.beam_size,
            vad_filter=False,  # We already did VAD
        )
        return [seg.text for seg in segments]

    @property
    def is_loaded(self) -> bool:
        return self._model is not None


class SegmentTranscriber:
    """Encodes a voice segment and runs it through the recognizer off the event loop."""

    def __init__(self, config: SttConfig, recognizer: Recognizer):
        self.recognizer = recognizer
        self.sample_rate = config.sample_rate
        self.language = config.whisper_language
        self.temperature = config.whisper_temperature

    def _recognize(self, audio: bytes) -> list[str]:
        # Iterate inside the worker thread; recognizers may return lazy generators
        return list(
            self.recognizer.recognize(audio, self.sample_rate, self.language, self.temperature)
        )

    async def transcribe(self, segment: VoiceSegment) -> Optional[TranscriptionResult]:
        """
        Transcribe one segment.

        Returns:
            The result, or None when the segment is empty or the text is blank

        Raises:
            TranscriptionFailed: if the recognizer raised
        """
        if len(segment) == 0:
            return None

        audio = encode_wav(segment.samples, self.sample_rate)
        try:
            fragments = await asyncio.to_thread(self._recognize, audio)
        except Exception as e:
            raise TranscriptionFailed(segment.sequence, e) from e

        text = "".join(fragments).strip()
        if not text:
            logger.debug(f"Segment {segment.sequence} produced no text")
            return None

        logger.debug(f"Transcribed utterance {segment.sequence}: {text}")
        return TranscriptionResult(
            text=text,
            sequence=segment.sequence,
            start_ms=segment.start_ms,
            duration_ms=segment.duration_ms,
            closure=segment.closure,
        )
