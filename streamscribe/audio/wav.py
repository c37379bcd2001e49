"""Canonical RIFF/WAVE container for handing segments to the recognizer."""

import io
import wave

import numpy as np

from .decoder import encode_pcm16

WAV_HEADER_SIZE = 44


def encode_wav(samples: np.ndarray, sample_rate: int, channels: int = 1) -> bytes:
    """
    Encode float samples as a 16-bit PCM WAV file.

    The output is the standard 44-byte header (RIFF, WAVE, a 16-byte fmt
    chunk with format tag 1, then data) followed by the little-endian payload.
    """
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(encode_pcm16(samples))
    return buffer.getvalue()
