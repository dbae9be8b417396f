"""Match detected silences to chapter ends."""

from typing import Sequence

from bookcheck.config import CHAPTER_SILENCE_TOLERANCE_SECONDS
from bookcheck.models import Chapter, ChapterSilenceFinding, SilenceInterval


def correlate(
    chapters: Sequence[Chapter],
    silences: Sequence[SilenceInterval],
    tolerance: float = CHAPTER_SILENCE_TOLERANCE_SECONDS,
) -> list[ChapterSilenceFinding]:
    """One finding per chapter whose end has a silence starting within *tolerance*.

    The first matching silence wins. A silence may be reported for two
    chapters whose ends lie within the tolerance of each other.
    """
    findings: list[ChapterSilenceFinding] = []
    for chapter in chapters:
        for silence in silences:
            if abs(silence.start_seconds - chapter.end_seconds) <= tolerance:
                findings.append(ChapterSilenceFinding(chapter=chapter, silence=silence))
                break
    return findings
