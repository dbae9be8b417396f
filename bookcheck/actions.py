"""Remediation actions for files a scan flagged: re-encode, delete, move."""

import logging
import shutil
from pathlib import Path

from bookcheck.discovery import is_audio_file
from bookcheck.ffutil import FFmpegTools, ToolLaunchError

_LOG = logging.getLogger(__name__)

FIXED_OUTPUT_DIRNAME = "_fixed_output"
REENCODE_BITRATES_KBPS = (64, 96, 128, 192, 256, 320)
DEFAULT_REENCODE_BITRATE_KBPS = 128


class ActionError(RuntimeError):
    pass


def _audio_file(path: str | Path) -> Path:
    path = Path(path)
    if not path.is_file():
        raise ActionError(f"File not found: {path}")
    if not is_audio_file(path):
        raise ActionError(f"Not a supported audio file: {path}")
    return path


async def reencode_file(
    tools: FFmpegTools,
    input_path: str | Path,
    output_dir: str | Path | None = None,
    bitrate_kbps: int = DEFAULT_REENCODE_BITRATE_KBPS,
) -> Path:
    """Re-encode *input_path* to AAC in an ``.m4a`` next to it.

    The output goes to ``output_dir`` or, by default, a ``_fixed_output``
    folder beside the source. The source file is left untouched.
    """
    source = _audio_file(input_path)
    if bitrate_kbps not in REENCODE_BITRATES_KBPS:
        raise ActionError(
            f"Unsupported bitrate {bitrate_kbps}k; choose one of "
            + ", ".join(str(b) for b in REENCODE_BITRATES_KBPS)
        )

    out_dir = Path(output_dir) if output_dir else source.parent / FIXED_OUTPUT_DIRNAME
    output_path = out_dir / f"{source.stem}.m4a"
    if output_path.resolve() == source.resolve():
        raise ActionError("Re-encoding would overwrite the source file")

    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        result = await tools.encode_aac(source, output_path, bitrate_kbps)
    except ToolLaunchError as e:
        raise ActionError(f"Re-encoding failed: {e}") from e
    except OSError as e:
        raise ActionError(f"Cannot create {out_dir}: {e}") from e

    if result.returncode != 0:
        raise ActionError(f"Re-encoding failed: {result.stderr.strip() or 'ffmpeg error'}")
    _LOG.info("re-encoded %s -> %s", source, output_path)
    return output_path


def delete_file(path: str | Path, *, confirmed: bool) -> bool:
    """Delete an audio file. Without confirmation nothing happens."""
    if not confirmed:
        return False
    target = _audio_file(path)
    try:
        target.unlink()
    except OSError as e:
        raise ActionError(f"Delete failed: {e}") from e
    _LOG.info("deleted %s", target)
    return True


def move_file(path: str | Path, dest_dir: str | Path, *, confirmed: bool) -> Path | None:
    """Move an audio file into *dest_dir*, keeping its name.

    Across filesystems the file is copied and the source removed. Returns
    None when not confirmed.
    """
    if not confirmed:
        return None
    source = _audio_file(path)
    dest_dir = Path(dest_dir)
    dest = dest_dir / source.name
    if dest.exists():
        raise ActionError(f"Destination already exists: {dest}")
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(dest))
    except OSError as e:
        raise ActionError(f"Move failed: {e}") from e
    _LOG.info("moved %s -> %s", source, dest)
    return dest
