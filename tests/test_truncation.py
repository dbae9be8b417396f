"""Unit tests for the truncation search."""

import asyncio
import math
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from bookcheck.analyzers import truncation
from bookcheck.analyzers.truncation import bisect_end, has_audio_at, locate
from bookcheck.ffutil import ToolLaunchError

from conftest import tool_result


class FakeAudio:
    """Stands in for has_audio_at: audio exists strictly before *end*."""

    def __init__(self, end: float):
        self.end = end
        self.calls: list[int] = []

    async def __call__(self, tools, input_path, seek_seconds):
        self.calls.append(seek_seconds)
        return seek_seconds < self.end


def run_locate(tools, claimed, end):
    fake = FakeAudio(end)
    with patch.object(truncation, "has_audio_at", fake):
        result = asyncio.run(locate(tools, Path("book.m4b"), claimed))
    return result, fake


class TestLocateNoOp:
    @pytest.mark.parametrize("claimed", [None, 0.0, 12.5, 59.99])
    def test_short_or_unknown_never_probes(self, tools, claimed):
        result, fake = run_locate(tools, claimed, end=0)
        assert result.is_truncated is False
        assert result.actual_duration == claimed
        assert fake.calls == []


class TestLocateFastPath:
    def test_audio_at_ninety_percent(self, tools):
        result, fake = run_locate(tools, 3600.0, end=3600)
        assert result.is_truncated is False
        assert result.actual_duration == 3600.0
        assert fake.calls == [3240]


class TestLocateScenarios:
    def test_audio_stops_at_3000_of_3600(self, tools):
        result, _ = run_locate(tools, 3600.0, end=3000)
        assert result.is_truncated is True
        assert abs(result.actual_duration - 3000) <= 30
        assert result.actual_duration <= 3000

    def test_audio_stops_at_3590_of_3600(self, tools):
        result, _ = run_locate(tools, 3600.0, end=3590)
        assert result.is_truncated is False

    def test_no_audio_after_first_checkpoint(self, tools):
        result, fake = run_locate(tools, 900.0, end=45)
        assert result.is_truncated is True
        assert result.actual_duration <= 45
        assert fake.calls[:2] == [810, 60]

    def test_checkpoints_beyond_claimed_are_skipped(self, tools):
        _, fake = run_locate(tools, 500.0, end=250)
        assert 600 not in fake.calls
        assert 1200 not in fake.calls


class TestBisect:
    @pytest.mark.parametrize("low,high,end", [
        (0, 60, 10), (1200, 3600, 3000), (0, 100000, 77777), (600, 631, 620),
    ])
    def test_terminates_within_resolution(self, tools, low, high, end):
        fake = FakeAudio(end)
        with patch.object(truncation, "has_audio_at", fake):
            new_low, new_high = asyncio.run(bisect_end(tools, Path("x"), low, high))
        assert new_high - new_low <= 30
        assert new_low < end <= new_high
        bound = max(0, math.ceil(math.log2((high - low) / 30))) + 1
        assert len(fake.calls) <= bound

    def test_gap_already_small_makes_no_calls(self, tools):
        fake = FakeAudio(10)
        with patch.object(truncation, "has_audio_at", fake):
            assert asyncio.run(bisect_end(tools, Path("x"), 100, 130)) == (100, 130)
        assert fake.calls == []


class TestHasAudioAt:
    def _fake_copy(self, size: int | None, created: list):
        async def copy_excerpt(self_, input_path, output_path, start, duration):
            created.append(output_path)
            if size is not None:
                output_path.write_bytes(b"\0" * size)
            return tool_result()
        return copy_excerpt

    def test_large_excerpt_means_audio(self, tools):
        created = []
        with patch.object(tools.__class__, "copy_excerpt", self._fake_copy(20000, created)):
            assert asyncio.run(has_audio_at(tools, Path("a.m4b"), 300)) is True
        assert not created[0].exists()
        assert not created[0].parent.exists()

    def test_small_excerpt_means_no_audio(self, tools):
        created = []
        with patch.object(tools.__class__, "copy_excerpt", self._fake_copy(9000, created)):
            assert asyncio.run(has_audio_at(tools, Path("a.m4b"), 300)) is False
        assert not created[0].exists()

    def test_missing_excerpt_means_no_audio(self, tools):
        created = []
        with patch.object(tools.__class__, "copy_excerpt", self._fake_copy(None, created)):
            assert asyncio.run(has_audio_at(tools, Path("a.m4b"), 300)) is False

    def test_launch_failure_means_no_audio(self, tools):
        with patch.object(tools.__class__, "copy_excerpt", new_callable=AsyncMock) as mock_copy:
            mock_copy.side_effect = ToolLaunchError("no ffmpeg")
            assert asyncio.run(has_audio_at(tools, Path("a.m4b"), 300)) is False
