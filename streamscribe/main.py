"""Command-line entry point: stream a WAV file through the speech-to-text pipeline."""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import wave
from pathlib import Path
from typing import AsyncIterator, Optional

from .config import VAD_BACKENDS, SttConfig, load_config
from .errors import ConfigurationError, StreamCancelled
from .pipeline import SttService

logger = logging.getLogger(__name__)


def read_wav(path: str | Path, config: SttConfig) -> bytes:
    """Read the PCM payload of a WAV file that matches the pipeline format."""
    with wave.open(str(path), "rb") as wav_file:
        channels = wav_file.getnchannels()
        width = wav_file.getsampwidth()
        rate = wav_file.getframerate()
        if channels != 1 or width != 2 or rate != config.sample_rate:
            raise ConfigurationError(
                f"{path}: expected 16-bit mono at {config.sample_rate}Hz, "
                f"got {width * 8}-bit {channels}ch at {rate}Hz"
            )
        return wav_file.readframes(wav_file.getnframes())


async def stream_pcm(
    pcm: bytes,
    sample_rate: int,
    chunk_ms: int,
    realtime: bool = False,
) -> AsyncIterator[bytes]:
    """Slice PCM bytes into chunks, optionally paced at playback speed."""
    chunk_bytes = max(1, sample_rate * chunk_ms // 1000) * 2
    for start in range(0, len(pcm), chunk_bytes):
        yield pcm[start:start + chunk_bytes]
        if realtime:
            await asyncio.sleep(chunk_ms / 1000)


async def transcribe_file(
    service: SttService,
    pcm: bytes,
    chunk_ms: int,
    realtime: bool = False,
    cancel_event: Optional[asyncio.Event] = None,
) -> int:
    """Print each utterance as it arrives. Returns the process exit code."""
    chunks = stream_pcm(pcm, service.config.sample_rate, chunk_ms, realtime)
    count = 0
    try:
        async for text in service.generate_text_chunks(chunks, cancel_event=cancel_event):
            count += 1
            print(text, flush=True)
    except StreamCancelled:
        logger.info("Transcription cancelled")
        return 1

    logger.info(f"Transcribed {count} utterances")
    return 0


async def _run(service: SttService, pcm: bytes, args: argparse.Namespace) -> int:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        loop.call_soon_threadsafe(cancel_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return await transcribe_file(
        service,
        pcm,
        chunk_ms=args.chunk_ms,
        realtime=args.realtime,
        cancel_event=cancel_event,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Streamscribe - streaming speech-to-text")
    parser.add_argument("audio", help="16-bit mono WAV file to transcribe")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=100,
        help="Chunk duration fed to the pipeline (default: 100)",
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Pace chunks at playback speed",
    )
    parser.add_argument(
        "--vad",
        choices=VAD_BACKENDS,
        help="Override the configured VAD backend",
    )
    args = parser.parse_args(argv)
    if args.chunk_ms <= 0:
        parser.error("--chunk-ms must be positive")

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    if args.vad:
        config.stt = dataclasses.replace(config.stt, vad_backend=args.vad)
    config.setup_logging()

    try:
        pcm = read_wav(args.audio, config.stt)
        service = SttService(config.stt)
    except (ConfigurationError, wave.Error, OSError) as e:
        logger.error(f"Cannot start transcription: {e}")
        return 2

    return asyncio.run(_run(service, pcm, args))


if __name__ == "__main__":
    sys.exit(main())
