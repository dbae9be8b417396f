"""Truncation search: find where decodable audio really ends."""

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from bookcheck.config import (
    AUDIO_PRESENCE_MIN_BYTES,
    AUDIO_PRESENCE_PROBE_SECONDS,
    TRUNCATION_CHECKPOINTS,
    TRUNCATION_FAST_PATH_FRACTION,
    TRUNCATION_MIN_SECONDS,
    TRUNCATION_MISSING_FRACTION,
    TRUNCATION_RESOLUTION_SECONDS,
)
from bookcheck.ffutil import FFmpegTools

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class TruncationResult:
    is_truncated: bool
    actual_duration: float | None


async def has_audio_at(tools: FFmpegTools, input_path: Path, seek_seconds: int) -> bool:
    """Copy a few seconds starting at *seek_seconds* and judge by size.

    Any tool or filesystem failure counts as "no audio here".
    """
    try:
        with tempfile.TemporaryDirectory(prefix="bookcheck_trunc_") as tmp:
            excerpt = Path(tmp) / "excerpt.mka"
            await tools.copy_excerpt(
                input_path, excerpt, start=seek_seconds, duration=AUDIO_PRESENCE_PROBE_SECONDS
            )
            if not excerpt.exists():
                return False
            return excerpt.stat().st_size > AUDIO_PRESENCE_MIN_BYTES
    except OSError as e:
        _LOG.warning("audio presence probe at %ss failed for %s: %s", seek_seconds, input_path, e)
        return False


async def bracket_end(
    tools: FFmpegTools, input_path: Path, claimed: int
) -> tuple[int, int]:
    """Walk the fixed checkpoints to get a first (low, high) bracket."""
    low, high = 0, claimed
    for checkpoint in TRUNCATION_CHECKPOINTS:
        if checkpoint >= claimed:
            continue
        if await has_audio_at(tools, input_path, checkpoint):
            low = checkpoint
        else:
            high = checkpoint
            break
    return low, high


async def bisect_end(
    tools: FFmpegTools, input_path: Path, low: int, high: int
) -> tuple[int, int]:
    """Narrow (low, high) until the gap is at most the search resolution."""
    while high - low > TRUNCATION_RESOLUTION_SECONDS:
        mid = (low + high) // 2
        if await has_audio_at(tools, input_path, mid):
            low = mid
        else:
            high = mid
    return low, high


async def locate(
    tools: FFmpegTools, input_path: Path, claimed_duration: float | None
) -> TruncationResult:
    """Decide whether the file holds less audio than its metadata claims."""
    if claimed_duration is None or claimed_duration < TRUNCATION_MIN_SECONDS:
        return TruncationResult(is_truncated=False, actual_duration=claimed_duration)

    claimed = int(claimed_duration)
    if await has_audio_at(tools, input_path, round(claimed * TRUNCATION_FAST_PATH_FRACTION)):
        return TruncationResult(is_truncated=False, actual_duration=claimed_duration)

    low, high = await bracket_end(tools, input_path, claimed)
    low, _ = await bisect_end(tools, input_path, low, high)

    missing = (claimed - low) / claimed
    return TruncationResult(
        is_truncated=missing > TRUNCATION_MISSING_FRACTION,
        actual_duration=float(low),
    )
