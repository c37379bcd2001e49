"""Conversion between raw 16-bit PCM bytes and normalized float samples."""

import numpy as np

from ..errors import MalformedAudioChunk

PCM16_SCALE = 32768.0
BYTES_PER_SAMPLE = 2


def decode_chunk(chunk: bytes) -> np.ndarray:
    """
    Decode a 16-bit little-endian mono PCM chunk.

    Args:
        chunk: Raw PCM bytes, two bytes per sample

    Returns:
        float32 samples in [-1.0, 1.0)

    Raises:
        MalformedAudioChunk: if the chunk has an odd byte length
    """
    if len(chunk) % BYTES_PER_SAMPLE != 0:
        raise MalformedAudioChunk(len(chunk))
    return np.frombuffer(chunk, dtype="<i2").astype(np.float32) / PCM16_SCALE


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Quantize float samples back to 16-bit little-endian PCM bytes."""
    scaled = np.round(np.asarray(samples, dtype=np.float64) * PCM16_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2").tobytes()


def chunk_duration_ms(byte_length: int, sample_rate: int) -> float:
    """Return chunk duration given PCM16 byte length and sample rate."""
    if sample_rate <= 0:
        return 0.0
    return byte_length / BYTES_PER_SAMPLE * 1000.0 / sample_rate
