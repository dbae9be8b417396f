"""Shared data types used across bookcheck."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from bookcheck.timefmt import format_clock, format_short_duration


class ScanStatus(str, Enum):
    OK = "ok"
    MISSING_AUDIO = "missingAudio"
    CORRUPT = "corrupt"
    TRUNCATED = "truncated"
    SILENCE = "silence"
    CHAPTER_SILENCE = "chapterSilence"
    ERROR = "error"


class ScanPhase(str, Enum):
    PROBING = "probing"
    CHECKING_CORRUPTION = "checkingCorruption"
    CHECKING_TRUNCATION = "checkingTruncation"
    DETECTING_SILENCE = "detectingSilence"
    ANALYZING_CHAPTERS = "analyzingChapters"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Chapter:
    """One entry of a file's embedded chapter table."""

    index: int
    title: str
    start_seconds: float
    end_seconds: float

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "title": self.title,
            "start_seconds": self.start_seconds,
            "end_seconds": self.end_seconds,
        }


@dataclass(frozen=True)
class MediaProbe:
    """Metadata extracted from a media file via ffprobe."""

    has_audio_stream: bool
    codec: str | None = None
    bitrate_bps: int | None = None
    sample_rate_hz: int | None = None
    duration: float | None = None
    chapters: tuple[Chapter, ...] = ()


@dataclass(frozen=True)
class SilenceInterval:
    """A silent stretch in absolute file time, in seconds."""

    start_seconds: float
    end_seconds: float
    duration_seconds: float

    def shifted(self, offset: float) -> "SilenceInterval":
        """Return the interval moved *offset* seconds later in the file."""
        return SilenceInterval(
            start_seconds=self.start_seconds + offset,
            end_seconds=self.end_seconds + offset,
            duration_seconds=self.duration_seconds,
        )

    def to_dict(self) -> dict:
        return {
            "start_seconds": self.start_seconds,
            "end_seconds": self.end_seconds,
            "duration_seconds": self.duration_seconds,
        }

    def __str__(self) -> str:
        return (
            f"{format_clock(self.start_seconds)} - {format_clock(self.end_seconds)}"
            f" ({self.duration_seconds:.1f}s)"
        )


@dataclass(frozen=True)
class ChapterSilenceFinding:
    """A silence that starts right where a chapter ends."""

    chapter: Chapter
    silence: SilenceInterval

    def to_dict(self) -> dict:
        return {"chapter": self.chapter.to_dict(), "silence": self.silence.to_dict()}

    def __str__(self) -> str:
        return f'After "{self.chapter.title}": {self.silence.duration_seconds:.1f}s silence'


@dataclass(frozen=True)
class ScanVerdict:
    """Aggregated diagnostic outcome for one scanned file."""

    path: str
    file_name: str
    has_audio_stream: bool = True
    is_corrupt: bool = False
    is_truncated: bool = False
    claimed_duration: float | None = None
    actual_duration: float | None = None
    silence_intervals: tuple[SilenceInterval, ...] = ()
    chapter_silence_findings: tuple[ChapterSilenceFinding, ...] = ()
    chapters: tuple[Chapter, ...] = ()
    codec: str | None = None
    bitrate_bps: int | None = None
    sample_rate_hz: int | None = None
    error: str | None = None

    @property
    def has_long_silence(self) -> bool:
        return bool(self.silence_intervals)

    @property
    def has_chapter_silence(self) -> bool:
        return bool(self.chapter_silence_findings)

    @property
    def is_ok(self) -> bool:
        return (
            self.has_audio_stream
            and not self.is_corrupt
            and not self.is_truncated
            and not self.silence_intervals
            and not self.chapter_silence_findings
            and self.error is None
        )

    @property
    def status(self) -> ScanStatus:
        for predicate, status in STATUS_PRIORITY:
            if predicate(self):
                return status
        return ScanStatus.OK

    @property
    def status_description(self) -> str:
        status = self.status
        if status is ScanStatus.ERROR:
            return self.error or "Unknown error"
        if status is ScanStatus.MISSING_AUDIO:
            return "Missing audio stream"
        if status is ScanStatus.CORRUPT:
            return "File is corrupt"
        if status is ScanStatus.TRUNCATED:
            return (
                f"File is truncated ({format_short_duration(self.actual_duration)}"
                f" of {format_short_duration(self.claimed_duration)} playable)"
            )
        if status is ScanStatus.CHAPTER_SILENCE:
            n = len(self.chapter_silence_findings)
            return f"Silence after chapter ({n} chapter{'' if n == 1 else 's'})"
        if status is ScanStatus.SILENCE:
            n = len(self.silence_intervals)
            return f"Long silence detected ({n} interval{'' if n == 1 else 's'})"
        return "OK"

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "file_name": self.file_name,
            "status": self.status.value,
            "status_description": self.status_description,
            "has_audio_stream": self.has_audio_stream,
            "is_corrupt": self.is_corrupt,
            "is_truncated": self.is_truncated,
            "has_long_silence": self.has_long_silence,
            "has_chapter_silence": self.has_chapter_silence,
            "claimed_duration": self.claimed_duration,
            "actual_duration": self.actual_duration,
            "silence_intervals": [s.to_dict() for s in self.silence_intervals],
            "chapter_silence_findings": [f.to_dict() for f in self.chapter_silence_findings],
            "chapters": [c.to_dict() for c in self.chapters],
            "codec": self.codec,
            "bitrate_bps": self.bitrate_bps,
            "sample_rate_hz": self.sample_rate_hz,
            "error": self.error,
        }


# Evaluated top to bottom; the first matching predicate decides the status.
STATUS_PRIORITY: tuple[tuple[Callable[[ScanVerdict], bool], ScanStatus], ...] = (
    (lambda v: v.error is not None, ScanStatus.ERROR),
    (lambda v: not v.has_audio_stream, ScanStatus.MISSING_AUDIO),
    (lambda v: v.is_corrupt, ScanStatus.CORRUPT),
    (lambda v: v.is_truncated, ScanStatus.TRUNCATED),
    (lambda v: v.has_chapter_silence, ScanStatus.CHAPTER_SILENCE),
    (lambda v: v.has_long_silence, ScanStatus.SILENCE),
)


_PHASE_TEXT = {
    ScanPhase.PROBING: "Analyzing file info...",
    ScanPhase.CHECKING_CORRUPTION: "Checking for corruption...",
    ScanPhase.CHECKING_TRUNCATION: "Checking for truncated data...",
    ScanPhase.DETECTING_SILENCE: "Detecting silence...",
    ScanPhase.ANALYZING_CHAPTERS: "Analyzing chapters...",
    ScanPhase.COMPLETE: "Complete",
}


@dataclass(frozen=True)
class PhaseUpdate:
    """Progress inside one file's scan."""

    path: str
    file_name: str
    phase: ScanPhase
    progress: float = 0.0
    segments_current: int | None = None
    segments_total: int | None = None
    file_duration: float | None = None

    @property
    def description(self) -> str:
        multi = self.segments_total is not None and self.segments_total > 1
        current = self.segments_current or 0
        if multi and self.phase is ScanPhase.CHECKING_CORRUPTION:
            return f"Checking corruption ({current}/{self.segments_total})"
        if multi and self.phase is ScanPhase.DETECTING_SILENCE:
            return f"Scanning for silence ({current}/{self.segments_total} segments)"
        return _PHASE_TEXT[self.phase]

    def to_dict(self) -> dict:
        return {
            "type": "phase",
            "path": self.path,
            "file_name": self.file_name,
            "phase": self.phase.value,
            "description": self.description,
            "progress": round(self.progress, 3),
            "segments_current": self.segments_current,
            "segments_total": self.segments_total,
            "file_duration": self.file_duration,
        }


@dataclass(frozen=True)
class FileCompleted:
    """One file finished; carries its verdict and the running totals."""

    verdict: ScanVerdict
    current: int
    total: int

    @property
    def is_complete(self) -> bool:
        return self.current == self.total

    @property
    def percentage(self) -> float:
        return self.current / self.total if self.total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "type": "file",
            "current": self.current,
            "total": self.total,
            "is_complete": self.is_complete,
            "result": self.verdict.to_dict(),
        }


ScanEvent = PhaseUpdate | FileCompleted

ProgressCallback = Callable[[PhaseUpdate], None]


@dataclass
class WindowPlan:
    """Start offsets (seconds) of the windows a sampled pass will visit."""

    offsets: list[int] = field(default_factory=list)
    window_seconds: int | None = None

    @property
    def is_full(self) -> bool:
        return self.window_seconds is None
