"""Collect audio files to hand to the scanner."""

import os
from pathlib import Path
from typing import Iterable

SUPPORTED_EXTENSIONS = (".mp3", ".m4b", ".m4a", ".aac", ".wav", ".flac", ".ogg")


def is_audio_file(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def find_audio_files(directory: str | Path) -> list[Path]:
    """Recursively list supported audio files, sorted case-insensitively.

    Symlinked directories are not followed. A missing directory yields [].
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    found: list[Path] = []
    for root, _dirs, names in os.walk(directory, followlinks=False):
        for name in names:
            path = Path(root) / name
            if is_audio_file(path) and path.is_file():
                found.append(path)

    found.sort(key=lambda p: str(p).lower())
    return found


def expand_inputs(paths: Iterable[str | Path]) -> list[Path]:
    """Turn a mix of files and directories into a flat file list.

    Explicit file arguments are kept as given (even with an unsupported
    extension or when missing, so the scanner can report them); directories
    contribute their supported audio files.
    """
    result: list[Path] = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            result.extend(find_audio_files(p))
        else:
            result.append(p)
    return result
