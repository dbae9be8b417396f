#!/usr/bin/env python3
"""Generate synthetic audio files for bookcheck pipeline testing.

``tone_silence_tone`` (default) produces a 21-second WAV:
  0-3s    440 Hz tone
  3-18s   digital silence
  18-21s  660 Hz tone

``no_audio`` produces a one-second video-only Matroska file.
"""

import subprocess
import sys
from pathlib import Path


def generate_tone_silence_tone(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    audio_filter = (
        "sine=f=440:d=3[a0];"
        "anullsrc=r=44100:cl=mono:d=15[s0];"
        "sine=f=660:d=3[a1];"
        "[a0][s0][a1]concat=n=3:v=0:a=1[aout]"
    )

    cmd = [
        "ffmpeg", "-y", "-hide_banner", "-nostdin",
        "-filter_complex", audio_filter,
        "-map", "[aout]",
        "-c:a", "pcm_s16le",
        str(output),
    ]
    subprocess.run(cmd, check=True, capture_output=True)


def generate_no_audio(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        "ffmpeg", "-y", "-hide_banner", "-nostdin",
        "-f", "lavfi", "-i", "color=c=black:s=32x32:d=1:r=5",
        "-c:v", "ffv1",
        str(output),
    ]
    subprocess.run(cmd, check=True, capture_output=True)


if __name__ == "__main__":
    kind = sys.argv[1] if len(sys.argv) > 1 else "tone_silence_tone"
    if kind == "no_audio":
        out = Path(sys.argv[2]) if len(sys.argv) > 2 else Path("tests/fixtures/no_audio.mkv")
        generate_no_audio(out)
    else:
        out = Path(sys.argv[2]) if len(sys.argv) > 2 else Path("tests/fixtures/tone_silence_tone.wav")
        generate_tone_silence_tone(out)
    print(f"Generated: {out}")
