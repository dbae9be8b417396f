"""Corruption sweep: decode-only passes classified by ffmpeg's error output."""

import logging
from pathlib import Path
from typing import Awaitable, Callable

from bookcheck.config import (
    CORRUPTION_WINDOW_SECONDS,
    FULL_CORRUPTION_MAX_SECONDS,
    ScanMode,
)
from bookcheck.ffutil import FFmpegTools, ToolLaunchError
from bookcheck.models import WindowPlan

_LOG = logging.getLogger(__name__)

CORRUPTION_MARKERS = (
    "Invalid data",
    "Error while decoding",
    "corrupt",
    "Discarding",
)


def classify_diagnostics(stderr: str, returncode: int) -> bool:
    """True when ffmpeg's error output shows the decoded range is damaged."""
    if any(marker in stderr for marker in CORRUPTION_MARKERS):
        return True
    return returncode != 0 and bool(stderr.strip())


async def probe_segment(
    tools: FFmpegTools,
    input_path: Path,
    start: float | None = None,
    duration: float | None = None,
) -> bool:
    """Decode one window and report whether it looks corrupt.

    A tool that cannot be launched proves nothing, so it counts as clean.
    """
    try:
        result = await tools.decode(input_path, start=start, duration=duration)
    except ToolLaunchError as e:
        _LOG.warning("corruption check skipped for %s: %s", input_path, e)
        return False
    return classify_diagnostics(result.stderr, result.returncode)


def plan_corruption_windows(duration: float | None, mode: ScanMode) -> WindowPlan:
    """Whole file for short files or full mode, else start/middle/end."""
    # Unknown duration is treated as a short file.
    seconds = int(duration) if duration is not None else FULL_CORRUPTION_MAX_SECONDS
    if mode is ScanMode.FULL or seconds <= FULL_CORRUPTION_MAX_SECONDS:
        return WindowPlan(offsets=[0])

    half = CORRUPTION_WINDOW_SECONDS / 2
    return WindowPlan(
        offsets=[
            0,
            round(seconds / 2 - half),
            round(seconds - CORRUPTION_WINDOW_SECONDS),
        ],
        window_seconds=CORRUPTION_WINDOW_SECONDS,
    )


async def check_corruption(
    tools: FFmpegTools,
    input_path: Path,
    duration: float | None,
    mode: ScanMode,
    on_segment: Callable[[int, int], Awaitable[None]] | None = None,
) -> bool:
    """Run the corruption sweep, stopping at the first corrupt window."""
    plan = plan_corruption_windows(duration, mode)
    total = len(plan.offsets)

    if plan.is_full:
        if on_segment:
            await on_segment(1, 1)
        return await probe_segment(tools, input_path)

    for i, offset in enumerate(plan.offsets, start=1):
        if on_segment:
            await on_segment(i, total)
        if await probe_segment(tools, input_path, start=offset, duration=plan.window_seconds):
            return True
    return False
