"""Unit tests for the silence survey."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from bookcheck.analyzers.silence import (
    deduplicate,
    detect_silence_in_window,
    parse_silence_output,
    plan_silence_windows,
    survey,
)
from bookcheck.config import ScanConfig, ScanMode
from bookcheck.ffutil import ToolLaunchError
from bookcheck.models import Chapter, SilenceInterval

from conftest import tool_result


# ---------------------------------------------------------------------------
# parse_silence_output (pure parsing, no subprocess)
# ---------------------------------------------------------------------------

SAMPLE_STDERR = """\
Input #0, mp3, from 'book.mp3':
  Duration: 00:45:12.34, start: 0.025057, bitrate: 64 kb/s
[silencedetect @ 0x55d0] silence_start: 12.5
[silencedetect @ 0x55d0] silence_end: 24.75 | silence_duration: 12.25
size=N/A time=00:01:00.00 bitrate=N/A speed= 250x
[silencedetect @ 0x55d0] silence_start: 70
[silencedetect @ 0x55d0] silence_end: 81.2 | silence_duration: 11.2
"""


class TestParseSilenceOutput:
    def test_paired(self):
        assert parse_silence_output(SAMPLE_STDERR) == [
            SilenceInterval(start_seconds=12.5, end_seconds=24.75, duration_seconds=12.25),
            SilenceInterval(start_seconds=70.0, end_seconds=81.2, duration_seconds=11.2),
        ]

    def test_dangling_start_dropped(self):
        stderr = SAMPLE_STDERR + "[silencedetect @ 0x55d0] silence_start: 110.0\n"
        assert len(parse_silence_output(stderr)) == 2

    def test_end_without_start_ignored(self):
        stderr = "[silencedetect @ 0x1] silence_end: 5.0 | silence_duration: 5.0\n"
        assert parse_silence_output(stderr) == []

    def test_repeated_start_keeps_latest(self):
        stderr = (
            "[silencedetect @ 0x1] silence_start: 1.0\n"
            "[silencedetect @ 0x1] silence_start: 2.0\n"
            "[silencedetect @ 0x1] silence_end: 14.0 | silence_duration: 12.0\n"
        )
        assert parse_silence_output(stderr) == [
            SilenceInterval(start_seconds=2.0, end_seconds=14.0, duration_seconds=12.0)
        ]

    def test_garbage(self):
        assert parse_silence_output("") == []
        assert parse_silence_output("silence_start: ...\nsilence_end: . | silence_duration: .") == []

    def test_many_triples(self):
        k = 25
        lines = []
        for i in range(k):
            start = i * 100.0
            lines.append(f"[silencedetect @ 0x1] silence_start: {start}")
            lines.append(
                f"[silencedetect @ 0x1] silence_end: {start + 11.5} | silence_duration: 11.5"
            )
        intervals = parse_silence_output("\n".join(lines))
        assert len(intervals) == k
        assert intervals[7] == SilenceInterval(700.0, 711.5, 11.5)


class TestDeduplicate:
    def test_sorts_and_merges_close_neighbours(self):
        intervals = [
            SilenceInterval(300.0, 315.0, 15.0),
            SilenceInterval(100.0, 112.0, 12.0),
            SilenceInterval(112.5, 125.0, 12.5),
            SilenceInterval(100.2, 112.0, 11.8),
        ]
        assert deduplicate(intervals) == [
            SilenceInterval(100.0, 112.0, 12.0),
            SilenceInterval(300.0, 315.0, 15.0),
        ]

    def test_gap_just_over_one_second_kept(self):
        intervals = [SilenceInterval(0.0, 10.0, 10.0), SilenceInterval(11.01, 22.0, 10.99)]
        assert len(deduplicate(intervals)) == 2

    def test_idempotent(self):
        intervals = [
            SilenceInterval(50.0, 62.0, 12.0),
            SilenceInterval(61.0, 75.0, 14.0),
            SilenceInterval(10.0, 21.0, 11.0),
            SilenceInterval(21.5, 40.0, 18.5),
            SilenceInterval(90.0, 101.0, 11.0),
        ]
        once = deduplicate(intervals)
        assert deduplicate(once) == once

    def test_empty(self):
        assert deduplicate([]) == []


class TestPlanSilenceWindows:
    def test_short_file_full_pass(self, config):
        assert plan_silence_windows(1799.0, [], config, ScanMode.SAMPLE).is_full

    def test_unknown_duration_full_pass(self, config):
        assert plan_silence_windows(None, [], config, ScanMode.SAMPLE).is_full

    def test_full_mode(self, config):
        assert plan_silence_windows(36000.0, [], config, ScanMode.FULL).is_full

    def test_evenly_spaced_plus_ends(self, config):
        plan = plan_silence_windows(3600.0, [], config, ScanMode.SAMPLE)
        assert plan.window_seconds == 120
        assert plan.offsets == [0, 360, 720, 1080, 1440, 1800, 2160, 2520, 2880, 3240, 3480]

    def test_chapter_lead_in_windows(self):
        config = ScanConfig(sample_segments=2)
        chapters = [
            Chapter(0, "One", 0.0, 1000.4),
            Chapter(1, "Two", 1000.4, 2500.0),
            Chapter(2, "Three", 2500.0, 3600.0),
        ]
        plan = plan_silence_windows(3600.0, chapters, config, ScanMode.SAMPLE)
        assert plan.offsets == [0, 940, 1800, 2440, 3480]

    def test_chapter_windows_clamped_to_last_window(self):
        config = ScanConfig(sample_segments=1)
        chapters = [Chapter(0, "Tail", 3599.0, 3600.0)]
        plan = plan_silence_windows(3600.0, chapters, config, ScanMode.SAMPLE)
        assert plan.offsets == [0, 3480]

    def test_chapter_windows_skipped_when_disabled(self):
        config = ScanConfig(sample_segments=1, detect_chapter_silence=False)
        chapters = [Chapter(0, "Mid", 2000.0, 2100.0)]
        plan = plan_silence_windows(3600.0, chapters, config, ScanMode.SAMPLE)
        assert plan.offsets == [0, 3480]


class TestDetectSilenceInWindow:
    def test_launch_failure_yields_nothing(self, tools, config):
        with patch.object(tools.__class__, "silencedetect", new_callable=AsyncMock) as mock_sd:
            mock_sd.side_effect = ToolLaunchError("no ffmpeg")
            assert asyncio.run(detect_silence_in_window(tools, Path("a.mp3"), config)) == []

    def test_uses_config_threshold(self, tools):
        config = ScanConfig(silence_threshold_db=-42.0, silence_min_duration=3.0)
        with patch.object(tools.__class__, "silencedetect", new_callable=AsyncMock) as mock_sd:
            mock_sd.return_value = tool_result(stderr=SAMPLE_STDERR)
            result = asyncio.run(detect_silence_in_window(tools, Path("a.mp3"), config))
        assert len(result) == 2
        assert mock_sd.call_args.kwargs["threshold_db"] == -42.0
        assert mock_sd.call_args.kwargs["min_duration"] == 3.0


class TestSurvey:
    @patch("bookcheck.analyzers.silence.detect_silence_in_window", new_callable=AsyncMock)
    def test_full_pass_returns_as_parsed(self, mock_detect, tools, config):
        mock_detect.return_value = [SilenceInterval(3.0, 18.0, 15.0)]
        result = asyncio.run(survey(tools, Path("a.mp3"), 21.0, [], config, ScanMode.SAMPLE))
        assert result == [SilenceInterval(3.0, 18.0, 15.0)]
        mock_detect.assert_awaited_once_with(tools, Path("a.mp3"), config)

    @patch("bookcheck.analyzers.silence.detect_silence_in_window", new_callable=AsyncMock)
    def test_windows_rebased_and_deduplicated(self, mock_detect, tools):
        config = ScanConfig(sample_segments=2)
        chapters = [Chapter(0, "One", 0.0, 1100.0), Chapter(1, "Two", 1100.0, 2000.0)]

        async def fake(tools_, path, config_, start=None, duration=None):
            # The middle window and the chapter lead-in window overlap and
            # both see the silence at 1100-1115.
            if start == 1000:
                return [SilenceInterval(100.0, 115.0, 15.0)]
            if start == 1040:
                return [SilenceInterval(60.0, 75.0, 15.0)]
            if start == 1880:
                return [SilenceInterval(20.0, 31.0, 11.0)]
            return []

        mock_detect.side_effect = fake
        segments = []

        async def on_segment(current, total):
            segments.append((current, total))

        result = asyncio.run(survey(
            tools, Path("a.m4b"), 2000.0, chapters, config, ScanMode.SAMPLE,
            on_segment=on_segment,
        ))
        assert result == [
            SilenceInterval(1100.0, 1115.0, 15.0),
            SilenceInterval(1900.0, 1911.0, 11.0),
        ]
        assert segments == [(1, 4), (2, 4), (3, 4), (4, 4)]
        starts = [c.kwargs["start"] for c in mock_detect.await_args_list]
        assert starts == [0, 1000, 1040, 1880]

    @patch("bookcheck.analyzers.silence.detect_silence_in_window", new_callable=AsyncMock)
    def test_windows_visited_in_ascending_order(self, mock_detect, tools, config):
        mock_detect.return_value = []
        asyncio.run(survey(tools, Path("a.m4b"), 7200.0, [], config, ScanMode.SAMPLE))
        starts = [c.kwargs["start"] for c in mock_detect.await_args_list]
        assert starts == sorted(starts)
        assert starts[0] == 0
        assert starts[-1] == 7080
