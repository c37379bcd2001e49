"""Audio pipeline components: decoding, windowing, segmentation and transcription."""

from .decoder import decode_chunk, encode_pcm16
from .transcriber import SegmentTranscriber, TranscriptionResult, WhisperRecognizer
from .vad import RmsVadScorer, SileroVadScorer, VoiceActivitySegmenter, VoiceSegment
from .window import WindowAccumulator

__all__ = [
    "decode_chunk",
    "encode_pcm16",
    "RmsVadScorer",
    "SegmentTranscriber",
    "SileroVadScorer",
    "TranscriptionResult",
    "VoiceActivitySegmenter",
    "VoiceSegment",
    "WhisperRecognizer",
    "WindowAccumulator",
]
