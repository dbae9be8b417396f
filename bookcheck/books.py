"""Group per-file verdicts into per-book (per-folder) summaries."""

from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from bookcheck.models import ScanVerdict


@dataclass(frozen=True)
class BookSummary:
    folder_path: str
    book_name: str
    files: tuple[ScanVerdict, ...]

    @property
    def total_count(self) -> int:
        return len(self.files)

    @property
    def passed_files(self) -> list[ScanVerdict]:
        return [f for f in self.files if f.is_ok]

    @property
    def failed_files(self) -> list[ScanVerdict]:
        return [f for f in self.files if not f.is_ok]

    @property
    def passed_count(self) -> int:
        return len(self.passed_files)

    @property
    def failed_count(self) -> int:
        return len(self.failed_files)

    @property
    def all_passed(self) -> bool:
        return self.failed_count == 0

    @property
    def total_audio_seconds(self) -> float:
        return sum(f.claimed_duration or 0.0 for f in self.files)


def group_by_book(verdicts: Iterable[ScanVerdict]) -> list[BookSummary]:
    """Group verdicts by parent folder, sorted by folder name."""
    grouped: dict[str, list[ScanVerdict]] = defaultdict(list)
    for verdict in verdicts:
        grouped[str(Path(verdict.path).parent)].append(verdict)

    books = [
        BookSummary(folder_path=folder, book_name=Path(folder).name, files=tuple(files))
        for folder, files in grouped.items()
    ]
    books.sort(key=lambda b: b.book_name.lower())
    return books
