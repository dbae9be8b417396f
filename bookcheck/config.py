"""Scan configuration: the contract between CLI/API and engine.

A ``ScanConfig`` is read once when a ``Scanner`` is built and never changes
afterwards. That includes the ffmpeg/ffprobe paths: switching tools in the
middle of a scan is not supported, build a new ``Scanner`` instead.
"""

import json
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path

from bookcheck.ffutil import FFmpegTools

# Corruption sweep
FULL_CORRUPTION_MAX_SECONDS = 600
CORRUPTION_WINDOW_SECONDS = 120

# Silence survey
FULL_SILENCE_MAX_SECONDS = 1800
SILENCE_WINDOW_SECONDS = 120
CHAPTER_LEAD_IN_SECONDS = 60
SILENCE_DEDUP_GAP_SECONDS = 1.0
CHAPTER_SILENCE_TOLERANCE_SECONDS = 5.0

# Truncation search
TRUNCATION_MIN_SECONDS = 60
TRUNCATION_FAST_PATH_FRACTION = 0.9
TRUNCATION_CHECKPOINTS = (60, 300, 600, 1200)
TRUNCATION_RESOLUTION_SECONDS = 30
TRUNCATION_MISSING_FRACTION = 0.05
AUDIO_PRESENCE_PROBE_SECONDS = 3
# Container headers and cover art stay well below this; real audio does not.
AUDIO_PRESENCE_MIN_BYTES = 15000


class ScanMode(str, Enum):
    SAMPLE = "sample"
    FULL = "full"


@dataclass(frozen=True)
class ScanConfig:
    """Tunables for one scanner instance."""

    silence_threshold_db: float = -50.0
    silence_min_duration: float = 10.0
    detect_chapter_silence: bool = True
    mode: ScanMode = ScanMode.SAMPLE
    sample_segments: int = 10
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    concurrency: int = 4

    def __post_init__(self) -> None:
        if not isinstance(self.mode, ScanMode):
            try:
                object.__setattr__(self, "mode", ScanMode(self.mode))
            except ValueError:
                raise ValueError(
                    f"Unknown scan mode {self.mode!r}; expected 'sample' or 'full'"
                ) from None
        if self.sample_segments < 1:
            raise ValueError("sample_segments must be at least 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.silence_min_duration <= 0:
            raise ValueError("silence_min_duration must be positive")

    def tools(self) -> FFmpegTools:
        return FFmpegTools(ffmpeg=self.ffmpeg_path, ffprobe=self.ffprobe_path)

    def with_overrides(self, **overrides) -> "ScanConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def config_from_dict(data: dict, base: ScanConfig | None = None) -> ScanConfig:
    """Build a ScanConfig from a plain mapping (JSON body or file)."""
    known = {f.name for f in fields(ScanConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config field(s): {', '.join(unknown)}")
    return replace(base or ScanConfig(), **data)


def load_config(path: str | Path) -> ScanConfig:
    """Load and validate a scan configuration from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a JSON object")
    return config_from_dict(data)
