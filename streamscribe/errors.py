"""Error taxonomy for the streaming speech-to-text pipeline."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced in logs."""

    CONFIGURATION = "ERR_CONFIG"
    MALFORMED_CHUNK = "ERR_MALFORMED_CHUNK"
    TRANSCRIPTION_FAILED = "ERR_TRANSCRIPTION_FAILED"
    CANCELLED = "ERR_CANCELLED"


class SttError(Exception):
    """Base class for pipeline errors."""

    code: ErrorCode


class ConfigurationError(SttError):
    """Invalid pipeline configuration, raised at construction time."""

    code = ErrorCode.CONFIGURATION


class MalformedAudioChunk(SttError):
    """Audio chunk that is not a whole number of 16-bit samples."""

    code = ErrorCode.MALFORMED_CHUNK

    def __init__(self, length: int):
        super().__init__(f"Invalid audio chunk length (not even for 16-bit PCM): {length}")
        self.length = length


class TranscriptionFailed(SttError):
    """The transcription capability failed for a single segment."""

    code = ErrorCode.TRANSCRIPTION_FAILED

    def __init__(self, sequence: int, cause: Optional[BaseException] = None):
        message = f"Transcription failed for segment {sequence}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.sequence = sequence
        self.cause = cause


class StreamCancelled(SttError):
    """The stream was cancelled by its caller."""

    code = ErrorCode.CANCELLED

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(message)
