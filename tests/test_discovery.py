"""Tests for file discovery, book grouping and time formatting."""

from pathlib import Path

from bookcheck.books import group_by_book
from bookcheck.discovery import expand_inputs, find_audio_files, is_audio_file
from bookcheck.models import ScanVerdict, SilenceInterval
from bookcheck.timefmt import (
    format_book_length,
    format_clock,
    format_scan_time,
    format_short_duration,
)


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestFindAudioFiles:
    def test_recursive_and_sorted(self, tmp_path):
        _touch(tmp_path / "b" / "02.MP3")
        _touch(tmp_path / "a" / "book.m4b")
        _touch(tmp_path / "b" / "01.mp3")
        _touch(tmp_path / "b" / "cover.jpg")
        found = find_audio_files(tmp_path)
        assert [p.relative_to(tmp_path).as_posix() for p in found] == [
            "a/book.m4b", "b/01.mp3", "b/02.MP3",
        ]

    def test_missing_directory(self, tmp_path):
        assert find_audio_files(tmp_path / "nope") == []

    def test_is_audio_file(self):
        assert is_audio_file(Path("x.FLAC"))
        assert not is_audio_file(Path("x.txt"))


class TestExpandInputs:
    def test_mixed(self, tmp_path):
        single = _touch(tmp_path / "single.ogg")
        _touch(tmp_path / "dir" / "a.wav")
        missing = tmp_path / "missing.mp3"
        assert expand_inputs([single, tmp_path / "dir", missing]) == [
            single, tmp_path / "dir" / "a.wav", missing,
        ]


class TestGroupByBook:
    def test_groups_and_counts(self):
        verdicts = [
            ScanVerdict(path="/lib/Zeta/01.mp3", file_name="01.mp3", claimed_duration=600.0),
            ScanVerdict(path="/lib/alpha/01.mp3", file_name="01.mp3", is_corrupt=True,
                        claimed_duration=100.0),
            ScanVerdict(path="/lib/alpha/02.mp3", file_name="02.mp3",
                        silence_intervals=(SilenceInterval(1.0, 12.0, 11.0),)),
            ScanVerdict(path="/lib/alpha/03.mp3", file_name="03.mp3", claimed_duration=50.0),
        ]
        books = group_by_book(verdicts)
        assert [b.book_name for b in books] == ["alpha", "Zeta"]
        alpha = books[0]
        assert alpha.total_count == 3
        assert alpha.passed_count == 1
        assert alpha.failed_count == 2
        assert not alpha.all_passed
        assert alpha.total_audio_seconds == 150.0
        assert books[1].all_passed


class TestTimeFormat:
    def test_clock(self):
        assert format_clock(65.9) == "01:05"
        assert format_clock(3725) == "1:02:05"

    def test_short_duration(self):
        assert format_short_duration(None) == "unknown"
        assert format_short_duration(2700) == "45m"
        assert format_short_duration(8100) == "2h 15m"

    def test_scan_time(self):
        assert format_scan_time(45) == "45s"
        assert format_scan_time(83) == "1m 23s"
        assert format_scan_time(8130) == "2h 15m"

    def test_book_length(self):
        assert format_book_length(2730) == "45m 30s"
        assert format_book_length(8100) == "2h 15m"
