"""Streaming pipeline: audio chunks in, finalized utterances out."""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import numpy as np

from .audio.decoder import chunk_duration_ms, decode_chunk
from .audio.transcriber import (
    Recognizer,
    SegmentTranscriber,
    TranscriptionResult,
    WhisperRecognizer,
)
from .audio.vad import VadScorer, VoiceActivitySegmenter, create_vad_scorer, load_silero_model
from .audio.window import WindowAccumulator
from .config import SttConfig
from .errors import MalformedAudioChunk, StreamCancelled, TranscriptionFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Receives the current silence duration in ms, returns True to end the stream
ShouldStop = Callable[[int], bool]
ScorerFactory = Callable[[SttConfig], VadScorer]

_END_OF_STREAM = object()


@dataclass
class StreamStats:
    """Counters for one audio stream."""
    chunks: int = 0
    dropped_chunks: int = 0
    audio_ms: float = 0.0
    windows: int = 0
    segments: int = 0
    failed_segments: int = 0
    results: int = 0
    discarded_samples: int = 0


class StreamOrchestrator:
    """
    Drives one audio connection through decode, windowing, segmentation and transcription.

    Each orchestrator owns its accumulator, segmenter and segment queue, so
    independent connections never share mutable state. Chunks are processed
    strictly in arrival order. On end of input the open segment is flushed and
    transcribed; on cancellation nothing is flushed.
    """

    def __init__(
        self,
        config: SttConfig,
        scorer: VadScorer,
        transcriber: SegmentTranscriber,
        cancel_event: Optional[asyncio.Event] = None,
        should_stop: Optional[ShouldStop] = None,
    ):
        self.config = config.validate()
        self.accumulator = WindowAccumulator(config.vad_window_size)
        self.segmenter = VoiceActivitySegmenter(config, scorer)
        self.transcriber = transcriber
        self.cancel_event = cancel_event
        self.should_stop = should_stop
        self.stats = StreamStats()

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise StreamCancelled()

    async def _cancellable(self, awaitable: Awaitable[T]) -> T:
        """Await, giving up as soon as the cancel event is set."""
        if self.cancel_event is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            done, _pending = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        # In-flight work is abandoned; a worker thread may still finish on its own
        task.cancel()
        raise StreamCancelled()

    @staticmethod
    async def _next_chunk(iterator: AsyncIterator[bytes]):
        try:
            return await iterator.__anext__()
        except StopAsyncIteration:
            return _END_OF_STREAM

    def _decode(self, chunk: bytes) -> Optional[np.ndarray]:
        try:
            return decode_chunk(chunk)
        except MalformedAudioChunk as e:
            logger.warning(f"{e}, dropping chunk")
            self.stats.dropped_chunks += 1
            return None

    async def _drain(self) -> AsyncIterator[TranscriptionResult]:
        """Transcribe every queued segment in FIFO order."""
        while not self.segmenter.is_empty():
            self._check_cancelled()
            segment = self.segmenter.front()
            self.stats.segments += 1
            try:
                result = await self._cancellable(self.transcriber.transcribe(segment))
            except TranscriptionFailed as e:
                logger.warning(f"{e}, skipping segment")
                self.stats.failed_segments += 1
                result = None
            self.segmenter.pop()

            if result is not None:
                self._check_cancelled()
                self.stats.results += 1
                yield result

    def _stop_requested(self) -> bool:
        if self.should_stop is None or not self.segmenter.heard_speech:
            return False
        return bool(self.should_stop(self.segmenter.silence_ms))

    async def results(self, audio_stream: AsyncIterable[bytes]) -> AsyncIterator[TranscriptionResult]:
        """Stream a TranscriptionResult for every non-empty utterance."""
        logger.info(
            f"Audio stream started: {self.config.sample_rate}Hz, "
            f"{self.config.vad_window_size}-sample windows"
        )
        iterator = audio_stream.__aiter__()
        try:
            while True:
                self._check_cancelled()
                chunk = await self._cancellable(self._next_chunk(iterator))
                if chunk is _END_OF_STREAM:
                    break
                self._check_cancelled()

                self.stats.chunks += 1
                samples = self._decode(chunk)
                if samples is None:
                    continue
                self.stats.audio_ms += chunk_duration_ms(len(chunk), self.config.sample_rate)

                for window in self.accumulator.push(samples):
                    self.segmenter.accept_window(window)
                    self.stats.windows += 1
                    async for result in self._drain():
                        yield result

                if self._stop_requested():
                    logger.info(f"Stopping after {self.segmenter.silence_ms}ms of silence")
                    aclose = getattr(iterator, "aclose", None)
                    if aclose is not None:
                        await aclose()
                    break

            self._check_cancelled()
            self.segmenter.flush()
            self.stats.discarded_samples += len(self.accumulator.drain())
            async for result in self._drain():
                yield result
        finally:
            logger.info(
                f"Audio stream ended: {self.stats.audio_ms:.0f}ms in {self.stats.chunks} chunks "
                f"({self.stats.dropped_chunks} dropped), {self.stats.segments} segments "
                f"({self.stats.failed_segments} failed), {self.stats.results} results"
            )

    async def text_chunks(self, audio_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """Stream the text of every non-empty utterance."""
        async for result in self.results(audio_stream):
            yield result.text


class SttService:
    """
    Shared speech-to-text service.

    Holds the recognizer for the whole process and creates a fresh
    StreamOrchestrator, with its own VAD scorer, for every audio stream.
    """

    def __init__(
        self,
        config: SttConfig,
        scorer_factory: Optional[ScorerFactory] = None,
        recognizer: Optional[Recognizer] = None,
    ):
        self.config = config.validate()
        self._scorer_factory = scorer_factory or create_vad_scorer
        self.recognizer = recognizer if recognizer is not None else WhisperRecognizer(config)
        self.transcriber = SegmentTranscriber(config, self.recognizer)

    def warm_up(self) -> None:
        """Load models ahead of the first stream."""
        if isinstance(self.recognizer, WhisperRecognizer):
            self.recognizer.ensure_loaded()
        if self._scorer_factory is create_vad_scorer and self.config.vad_backend == "silero":
            load_silero_model(self.config.vad_model_repo, self.config.num_threads)

    def create_stream(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        should_stop: Optional[ShouldStop] = None,
    ) -> StreamOrchestrator:
        return StreamOrchestrator(
            self.config,
            self._scorer_factory(self.config),
            self.transcriber,
            cancel_event=cancel_event,
            should_stop=should_stop,
        )

    async def generate_text_chunks(
        self,
        audio_stream: AsyncIterable[bytes],
        cancel_event: Optional[asyncio.Event] = None,
        should_stop: Optional[ShouldStop] = None,
    ) -> AsyncIterator[str]:
        """Transcribe an audio stream, yielding each utterance as soon as it is ready."""
        stream = self.create_stream(cancel_event=cancel_event, should_stop=should_stop)
        async for text in stream.text_chunks(audio_stream):
            yield text
