"""Silence survey: silencedetect passes over the whole file or sampled windows."""

import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Sequence

from bookcheck.config import (
    CHAPTER_LEAD_IN_SECONDS,
    FULL_SILENCE_MAX_SECONDS,
    SILENCE_DEDUP_GAP_SECONDS,
    SILENCE_WINDOW_SECONDS,
    ScanConfig,
    ScanMode,
)
from bookcheck.ffutil import FFmpegTools, ToolLaunchError
from bookcheck.models import Chapter, SilenceInterval, WindowPlan

_LOG = logging.getLogger(__name__)

_START_RE = re.compile(r"silence_start:\s*(-?[\d.]+)")
_END_RE = re.compile(r"silence_end:\s*(-?[\d.]+)\s*\|\s*silence_duration:\s*([\d.]+)")


def parse_silence_output(stderr: str) -> list[SilenceInterval]:
    """Pair silencedetect start/end lines into intervals.

    The most recent unmatched ``silence_start`` is held until a
    ``silence_end | silence_duration`` line closes it. A start that is never
    closed (silence running into the end of the window) is dropped, as is an
    end line with no open start.
    """
    intervals: list[SilenceInterval] = []
    pending: float | None = None

    for line in stderr.splitlines():
        m = _START_RE.search(line)
        if m:
            try:
                pending = float(m.group(1))
            except ValueError:
                pending = None
            continue

        m = _END_RE.search(line)
        if m and pending is not None:
            try:
                end = float(m.group(1))
                duration = float(m.group(2))
            except ValueError:
                continue
            intervals.append(
                SilenceInterval(start_seconds=pending, end_seconds=end, duration_seconds=duration)
            )
            pending = None

    return intervals


def deduplicate(
    intervals: Iterable[SilenceInterval], gap: float = SILENCE_DEDUP_GAP_SECONDS
) -> list[SilenceInterval]:
    """Sort by start and drop intervals that begin within *gap* of the last kept one."""
    kept: list[SilenceInterval] = []
    for interval in sorted(intervals, key=lambda s: s.start_seconds):
        if kept and interval.start_seconds <= kept[-1].end_seconds + gap:
            continue
        kept.append(interval)
    return kept


def plan_silence_windows(
    duration: float | None,
    chapters: Sequence[Chapter],
    config: ScanConfig,
    mode: ScanMode,
) -> WindowPlan:
    """Pick the window offsets for a sampled survey.

    Short files (and unknown durations) get one pass over the whole file.
    Long files get the first window, ``sample_segments`` evenly spaced ones,
    the last window and, with chapter silence enabled, one window leading
    into every chapter start.
    """
    seconds = int(duration) if duration is not None else 0
    if mode is ScanMode.FULL or seconds < FULL_SILENCE_MAX_SECONDS:
        return WindowPlan(offsets=[0])

    window = SILENCE_WINDOW_SECONDS
    last = max(seconds - window, 0)
    offsets = {0}

    spacing = seconds // config.sample_segments
    for i in range(1, config.sample_segments):
        offsets.add(spacing * i)

    offsets.add(last)

    if config.detect_chapter_silence:
        for chapter in chapters:
            lead_in = round(chapter.start_seconds) - CHAPTER_LEAD_IN_SECONDS
            offsets.add(min(max(lead_in, 0), last))

    return WindowPlan(offsets=sorted(offsets), window_seconds=window)


async def detect_silence_in_window(
    tools: FFmpegTools,
    input_path: Path,
    config: ScanConfig,
    start: float | None = None,
    duration: float | None = None,
) -> list[SilenceInterval]:
    """Run silencedetect over one window; timestamps stay window-local."""
    try:
        result = await tools.silencedetect(
            input_path,
            threshold_db=config.silence_threshold_db,
            min_duration=config.silence_min_duration,
            start=start,
            duration=duration,
        )
    except ToolLaunchError as e:
        _LOG.warning("silence detection skipped for %s: %s", input_path, e)
        return []
    return parse_silence_output(result.stderr)


async def survey(
    tools: FFmpegTools,
    input_path: Path,
    duration: float | None,
    chapters: Sequence[Chapter],
    config: ScanConfig,
    mode: ScanMode,
    on_segment: Callable[[int, int], Awaitable[None]] | None = None,
) -> list[SilenceInterval]:
    """Find long silences, in absolute file time, sorted and de-duplicated."""
    plan = plan_silence_windows(duration, chapters, config, mode)

    if plan.is_full:
        if on_segment:
            await on_segment(1, 1)
        return await detect_silence_in_window(tools, input_path, config)

    found: list[SilenceInterval] = []
    total = len(plan.offsets)
    for i, offset in enumerate(plan.offsets, start=1):
        if on_segment:
            await on_segment(i, total)
        local = await detect_silence_in_window(
            tools, input_path, config, start=offset, duration=plan.window_seconds
        )
        found.extend(interval.shifted(offset) for interval in local)

    return deduplicate(found)
