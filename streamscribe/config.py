"""Configuration management for Streamscribe."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Window sizes the packaged Silero VAD model accepts, per sample rate
SILERO_WINDOW_SIZES: dict[int, tuple[int, ...]] = {
    8000: (256,),
    16000: (512,),
}

# The energy scorer has no model constraint beyond these
RMS_WINDOW_SIZES: dict[int, tuple[int, ...]] = {
    8000: (256, 512, 768),
    16000: (512, 1024, 1536),
}

VAD_BACKENDS = ("silero", "rms")


def _default_num_threads() -> int:
    return min((os.cpu_count() or 1) // 2 + 1, 4)


@dataclass(frozen=True)
class SttConfig:
    """Streaming speech-to-text configuration."""
    sample_rate: int = 16000
    vad_window_size: int = 512
    vad_threshold: float = 0.3
    vad_min_silence_ms: int = 600
    vad_min_speech_ms: int = 500
    vad_max_speech_ms: int = 15000
    vad_backend: str = "silero"
    vad_model_repo: str = "snakers4/silero-vad"
    whisper_model: str = "base"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"
    whisper_language: str = "en"
    whisper_temperature: float = 0.2
    whisper_beam_size: int = 5
    num_threads: int = field(default_factory=_default_num_threads)
    cuda_enabled: bool = False

    def validate(self) -> "SttConfig":
        """Check the parameter set, raising ConfigurationError on the first problem."""
        if self.vad_backend not in VAD_BACKENDS:
            raise ConfigurationError(f"Unknown VAD backend: {self.vad_backend}")
        window_sizes = SILERO_WINDOW_SIZES if self.vad_backend == "silero" else RMS_WINDOW_SIZES
        if self.sample_rate not in window_sizes:
            raise ConfigurationError(
                f"Unsupported sample rate {self.sample_rate}Hz "
                f"(expected one of {sorted(window_sizes)})"
            )
        allowed = window_sizes[self.sample_rate]
        if self.vad_window_size not in allowed:
            raise ConfigurationError(
                f"Window size {self.vad_window_size} is not valid for the "
                f"{self.vad_backend} backend at {self.sample_rate}Hz "
                f"(expected one of {list(allowed)})"
            )
        if not 0.0 < self.vad_threshold < 1.0:
            raise ConfigurationError(f"vad_threshold must be in (0, 1), got {self.vad_threshold}")
        for name in ("vad_min_silence_ms", "vad_min_speech_ms", "vad_max_speech_ms"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.vad_max_speech_ms < self.vad_min_speech_ms:
            raise ConfigurationError("vad_max_speech_ms must not be shorter than vad_min_speech_ms")
        if self.max_speech_samples < self.vad_window_size:
            raise ConfigurationError("vad_max_speech_ms must cover at least one window")
        if self.whisper_temperature < 0:
            raise ConfigurationError("whisper_temperature must be non-negative")
        if self.num_threads < 1:
            raise ConfigurationError("num_threads must be at least 1")
        return self

    def ms_to_samples(self, ms: int) -> int:
        return int(ms * self.sample_rate / 1000)

    @property
    def min_silence_samples(self) -> int:
        return self.ms_to_samples(self.vad_min_silence_ms)

    @property
    def min_speech_samples(self) -> int:
        return self.ms_to_samples(self.vad_min_speech_ms)

    @property
    def max_speech_samples(self) -> int:
        return self.ms_to_samples(self.vad_max_speech_ms)

    @property
    def window_ms(self) -> float:
        return self.vad_window_size * 1000 / self.sample_rate

    @property
    def device(self) -> str:
        """Device for both models; cuda_enabled overrides whisper_device."""
        return "cuda" if self.cuda_enabled else self.whisper_device


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    stt: SttConfig = field(default_factory=SttConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return cls(
                stt=SttConfig(**data.get("stt", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "stt": asdict(self.stt),
            "logging": asdict(self.logging),
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.logging.level.upper(), logging.INFO)

        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
        )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment."""
    if path is None:
        path = os.environ.get("STREAMSCRIBE_CONFIG", "config/settings.yaml")
    return Config.from_yaml(path)
