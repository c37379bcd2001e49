"""Voice activity detection and speech segmentation."""

import copy
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import numpy as np
import torch

from ..config import SttConfig

logger = logging.getLogger(__name__)


class VadScorer(Protocol):
    """Scores one window of samples with a speech probability in [0, 1]."""

    def score(self, window: np.ndarray) -> float: ...

    def reset(self) -> None: ...


_SILERO_BASE_MODEL = None
_SILERO_LOCK = threading.Lock()


def load_silero_model(repo: str, num_threads: int):
    """Load the Silero VAD model once per process."""
    global _SILERO_BASE_MODEL
    with _SILERO_LOCK:
        if _SILERO_BASE_MODEL is None:
            torch.set_num_threads(num_threads)
            logger.info("Loading Silero VAD model...")
            try:
                model, _utils = torch.hub.load(
                    repo_or_dir=repo,
                    model="silero_vad",
                    force_reload=False,
                    onnx=False,
                )
            except Exception as e:
                logger.error(f"Failed to load Silero VAD: {e}")
                raise
            model.eval()
            _SILERO_BASE_MODEL = model
            logger.info("Silero VAD model loaded")
        return _SILERO_BASE_MODEL


class SileroVadScorer:
    """Silero VAD scorer with per-connection model state."""

    def __init__(self, config: SttConfig):
        self.sample_rate = config.sample_rate
        self.repo = config.vad_model_repo

        base_model = load_silero_model(self.repo, config.num_threads)
        # Recurrent state lives inside the model, so each scorer gets its own copy
        try:
            self._model = copy.deepcopy(base_model)
        except Exception:
            logger.debug("Silero model not copyable, loading a fresh instance")
            self._model, _utils = torch.hub.load(
                repo_or_dir=self.repo,
                model="silero_vad",
                force_reload=False,
                onnx=False,
            )
        self._model.eval()
        self.reset()

    def score(self, window: np.ndarray) -> float:
        tensor = torch.from_numpy(np.array(window, dtype=np.float32))
        with torch.no_grad():
            return float(self._model(tensor, self.sample_rate).item())

    def reset(self) -> None:
        if hasattr(self._model, "reset_states"):
            self._model.reset_states()


class RmsVadScorer:
    """Energy-based scorer: window RMS relative to a reference level, capped at 1."""

    def __init__(self, reference_rms: float = 0.05):
        if reference_rms <= 0:
            raise ValueError("reference_rms must be positive")
        self.reference_rms = reference_rms

    def score(self, window: np.ndarray) -> float:
        if len(window) == 0:
            return 0.0
        rms = float(np.sqrt(np.mean(np.square(window, dtype=np.float64))))
        return min(1.0, rms / self.reference_rms)

    def reset(self) -> None:
        pass


def create_vad_scorer(config: SttConfig) -> VadScorer:
    """Build the scorer selected by config.vad_backend."""
    if config.vad_backend == "rms":
        return RmsVadScorer()
    return SileroVadScorer(config)


class SegmenterState(Enum):
    SILENT = "silent"
    SPEAKING = "speaking"
    ENDING_PENDING_CONFIRMATION = "ending_pending_confirmation"


class SegmentClosure(Enum):
    """Why a segment was closed."""
    SILENCE = "silence"
    MAX_DURATION = "max_duration"
    FLUSH = "flush"


@dataclass(frozen=True)
class VoiceSegment:
    """A closed, contiguous utterance."""
    samples: np.ndarray
    sequence: int
    start_sample: int
    sample_rate: int
    closure: SegmentClosure

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration_ms(self) -> int:
        return int(len(self.samples) * 1000 / self.sample_rate)

    @property
    def start_ms(self) -> int:
        return int(self.start_sample * 1000 / self.sample_rate)


class VoiceActivitySegmenter:
    """
    Turns a stream of scored windows into closed speech segments.

    A segment opens on the first window scoring above the threshold and then
    takes every following window until a contiguous run of low-scoring windows
    reaches min_silence. The trailing silence run is not part of the emitted
    segment. Segments that would grow past max_speech are split, and segments
    shorter than min_speech are dropped as noise. Closed segments wait in a
    FIFO queue until the consumer pops them.
    """

    def __init__(self, config: SttConfig, scorer: VadScorer):
        self.config = config
        self.scorer = scorer
        self.sample_rate = config.sample_rate
        self.window_size = config.vad_window_size
        self.threshold = config.vad_threshold

        self.min_silence_samples = config.min_silence_samples
        self.min_speech_samples = config.min_speech_samples
        self.max_speech_samples = config.max_speech_samples

        self._queue: deque[VoiceSegment] = deque()
        self._next_sequence = 0
        self._reset_segment()
        self._position = 0
        self._trailing_silence = 0
        self._heard_speech = False

    def _reset_segment(self) -> None:
        self._state = SegmenterState.SILENT
        self._windows: list[np.ndarray] = []
        self._segment_start = 0
        self._silence_run = 0

    def _open_segment(self, state: SegmenterState = SegmenterState.SPEAKING) -> None:
        self._state = state
        self._windows = []
        self._segment_start = self._position
        self._silence_run = 0

    @property
    def _segment_samples(self) -> int:
        return len(self._windows) * self.window_size

    def accept_window(self, window: np.ndarray) -> float:
        """
        Score one window and advance the state machine.

        Returns:
            The window's speech probability
        """
        if len(window) != self.window_size:
            raise ValueError(f"Expected a window of {self.window_size} samples, got {len(window)}")

        prob = self.scorer.score(window)
        is_speech = prob > self.threshold

        if self._state is SegmenterState.SILENT:
            if is_speech:
                self._open_segment()
                logger.debug(f"Speech started at {self._position * 1000 // self.sample_rate}ms")
        elif self._segment_samples + self.window_size > self.max_speech_samples:
            logger.debug("Maximum speech duration reached, splitting segment")
            self._close(SegmentClosure.MAX_DURATION)
            self._open_segment()

        if self._state is not SegmenterState.SILENT:
            self._windows.append(window)
            if is_speech:
                self._silence_run = 0
                self._state = SegmenterState.SPEAKING
            else:
                self._silence_run += self.window_size
                self._state = SegmenterState.ENDING_PENDING_CONFIRMATION
                if self._silence_run >= self.min_silence_samples:
                    self._close(SegmentClosure.SILENCE)

        self._position += self.window_size
        if is_speech:
            self._trailing_silence = 0
            self._heard_speech = True
        else:
            self._trailing_silence += self.window_size

        return prob

    def _close(self, closure: SegmentClosure) -> None:
        """Close the open segment, queueing it unless it is too short."""
        speech_samples = self._segment_samples - self._silence_run
        start = self._segment_start
        windows = self._windows
        self._reset_segment()

        if speech_samples <= 0:
            return
        if speech_samples < self.min_speech_samples:
            logger.debug(
                f"Speech segment too short ({speech_samples * 1000 // self.sample_rate}ms), discarding"
            )
            return

        samples = np.concatenate(windows)[:speech_samples]
        segment = VoiceSegment(
            samples=samples,
            sequence=self._next_sequence,
            start_sample=start,
            sample_rate=self.sample_rate,
            closure=closure,
        )
        self._next_sequence += 1
        self._queue.append(segment)
        logger.debug(
            f"Speech segment {segment.sequence}: {segment.duration_ms}ms ({closure.value})"
        )

    def flush(self) -> None:
        """Close any open segment regardless of trailing silence."""
        if self._state is not SegmenterState.SILENT:
            self._close(SegmentClosure.FLUSH)
        self._reset_segment()

    def is_empty(self) -> bool:
        return not self._queue

    def front(self) -> VoiceSegment:
        """Peek at the oldest closed segment."""
        if not self._queue:
            raise IndexError("No closed segments")
        return self._queue[0]

    def pop(self) -> VoiceSegment:
        """Dequeue the oldest closed segment."""
        if not self._queue:
            raise IndexError("No closed segments")
        return self._queue.popleft()

    def reset(self) -> None:
        """Drop all state, including queued segments."""
        self._queue.clear()
        self._reset_segment()
        self._position = 0
        self._trailing_silence = 0
        self._heard_speech = False
        self.scorer.reset()

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def is_speaking(self) -> bool:
        """Check if a segment is currently open."""
        return self._state is not SegmenterState.SILENT

    @property
    def heard_speech(self) -> bool:
        return self._heard_speech

    @property
    def silence_ms(self) -> int:
        """Duration of the current run of non-speech windows."""
        return int(self._trailing_silence * 1000 / self.sample_rate)

    @property
    def pending_segments(self) -> int:
        return len(self._queue)

    @property
    def open_segment_ms(self) -> Optional[int]:
        if self._state is SegmenterState.SILENT:
            return None
        return int(self._segment_samples * 1000 / self.sample_rate)
