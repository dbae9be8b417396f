"""FFmpeg/ffprobe subprocess helpers."""

import asyncio
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from bookcheck.models import Chapter, MediaProbe

_LOG = logging.getLogger(__name__)

# Seconds a terminated tool gets to exit before it is killed.
TERMINATE_GRACE_SECONDS = 2.0


class FFmpegNotFoundError(RuntimeError):
    pass


class ToolLaunchError(OSError):
    """Raised when the external tool cannot be started at all."""
    pass


class ProbeError(RuntimeError):
    """Raised when ffprobe cannot describe a file."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    stdout: str
    stderr: str


async def run_tool(cmd: list[str]) -> ToolResult:
    """Run *cmd* to completion and capture both output streams as text.

    If the awaiting task is cancelled the child is terminated and reaped
    before the cancellation propagates, so no orphan ffmpeg is left behind.
    """
    _LOG.debug("run: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ToolLaunchError(f"could not start {cmd[0]}: {e}") from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    return ToolResult(
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()


def _optional_int(value) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


def _optional_float(value) -> float | None:
    try:
        return float(str(value))
    except (TypeError, ValueError):
        return None


def parse_probe_json(text: str) -> MediaProbe:
    """Translate ``ffprobe -print_format json`` output into a MediaProbe.

    Only the first audio stream is considered. Missing or unparseable numbers
    become None; the stream bitrate falls back to the container bitrate.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProbeError(f"Probe error: invalid ffprobe output ({e})") from e
    if not isinstance(data, dict):
        raise ProbeError("Probe error: ffprobe output is not a JSON object")

    audio_stream = next(
        (s for s in data.get("streams") or [] if s.get("codec_type") == "audio"), None
    )
    fmt = data.get("format") or {}

    chapters = []
    for i, ch in enumerate(data.get("chapters") or []):
        tags = ch.get("tags") or {}
        chapters.append(
            Chapter(
                index=i,
                title=tags.get("title") or f"Chapter {i + 1}",
                start_seconds=_optional_float(ch.get("start_time")) or 0.0,
                end_seconds=_optional_float(ch.get("end_time")) or 0.0,
            )
        )

    if audio_stream is None:
        return MediaProbe(
            has_audio_stream=False,
            bitrate_bps=_optional_int(fmt.get("bit_rate")),
            duration=_optional_float(fmt.get("duration")),
            chapters=tuple(chapters),
        )

    bitrate = _optional_int(audio_stream.get("bit_rate"))
    if bitrate is None:
        bitrate = _optional_int(fmt.get("bit_rate"))

    return MediaProbe(
        has_audio_stream=True,
        codec=audio_stream.get("codec_name"),
        bitrate_bps=bitrate,
        sample_rate_hz=_optional_int(audio_stream.get("sample_rate")),
        duration=_optional_float(fmt.get("duration")),
        chapters=tuple(chapters),
    )


def seek_args(start: float | None, duration: float | None) -> list[str]:
    """Input-side ``-ss``/``-t`` options for a bounded window."""
    args: list[str] = []
    if start is not None:
        args += ["-ss", f"{start:g}"]
    if duration is not None:
        args += ["-t", f"{duration:g}"]
    return args


@dataclass(frozen=True)
class FFmpegTools:
    """Paths to the ffmpeg and ffprobe executables used by one scanner."""

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"

    def check(self) -> None:
        """Raise FFmpegNotFoundError if either tool cannot be resolved."""
        for cmd in (self.ffmpeg, self.ffprobe):
            if shutil.which(cmd) is None:
                raise FFmpegNotFoundError(f"{cmd} not found on PATH")

    async def available(self) -> bool:
        """True when both tools start and report their version."""
        for cmd in (self.ffmpeg, self.ffprobe):
            try:
                result = await run_tool([cmd, "-version"])
            except ToolLaunchError:
                return False
            if result.returncode != 0:
                return False
        return True

    async def version(self) -> str | None:
        try:
            result = await run_tool([self.ffmpeg, "-version"])
        except ToolLaunchError:
            return None
        if result.returncode != 0:
            return None
        lines = result.stdout.splitlines()
        return lines[0] if lines else None

    async def probe(self, input_path: Path) -> MediaProbe:
        """Extract stream, format and chapter metadata via ffprobe."""
        cmd = [
            self.ffprobe,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            "-show_chapters",
            str(input_path),
        ]
        try:
            result = await run_tool(cmd)
        except ToolLaunchError as e:
            raise ProbeError(f"Probe error: {e}") from e
        if result.returncode != 0:
            raise ProbeError(f"FFprobe failed: {result.stderr.strip()}")
        return parse_probe_json(result.stdout)

    async def decode(
        self,
        input_path: Path,
        start: float | None = None,
        duration: float | None = None,
    ) -> ToolResult:
        """Decode a window to the null muxer, reporting errors only."""
        cmd = [
            self.ffmpeg,
            "-hide_banner", "-nostdin",
            "-v", "error",
            *seek_args(start, duration),
            "-i", str(input_path),
            "-vn",
            "-f", "null", "-",
        ]
        return await run_tool(cmd)

    async def silencedetect(
        self,
        input_path: Path,
        threshold_db: float,
        min_duration: float,
        start: float | None = None,
        duration: float | None = None,
    ) -> ToolResult:
        """Run the silencedetect filter over a window (timestamps window-local)."""
        cmd = [
            self.ffmpeg,
            "-hide_banner", "-nostdin",
            *seek_args(start, duration),
            "-i", str(input_path),
            "-vn",
            "-af", f"silencedetect=noise={threshold_db}dB:d={min_duration}",
            "-f", "null", "-",
        ]
        return await run_tool(cmd)

    async def copy_excerpt(
        self,
        input_path: Path,
        output_path: Path,
        start: float,
        duration: float,
    ) -> ToolResult:
        """Stream-copy a short excerpt of the first audio stream."""
        cmd = [
            self.ffmpeg,
            "-hide_banner", "-nostdin",
            "-y",
            *seek_args(start, None),
            "-i", str(input_path),
            "-t", f"{duration:g}",
            "-map", "0:a:0",
            "-c", "copy",
            str(output_path),
        ]
        return await run_tool(cmd)

    async def encode_aac(
        self,
        input_path: Path,
        output_path: Path,
        bitrate_kbps: int,
    ) -> ToolResult:
        """Re-encode the first audio stream to AAC, overwriting *output_path*."""
        cmd = [
            self.ffmpeg,
            "-hide_banner", "-nostdin",
            "-v", "error",
            "-i", str(input_path),
            "-map", "0:a:0",
            "-c:a", "aac",
            "-b:a", f"{bitrate_kbps}k",
            "-y",
            str(output_path),
        ]
        return await run_tool(cmd)
