"""Thin CLI entry point: builds a ScanConfig and drives the scanner."""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from bookcheck.actions import (
    DEFAULT_REENCODE_BITRATE_KBPS,
    REENCODE_BITRATES_KBPS,
    ActionError,
    delete_file,
    move_file,
    reencode_file,
)
from bookcheck.books import group_by_book
from bookcheck.config import ScanConfig, ScanMode, load_config
from bookcheck.discovery import expand_inputs
from bookcheck.engine import Scanner
from bookcheck.ffutil import FFmpegNotFoundError
from bookcheck.models import FileCompleted, PhaseUpdate, ScanVerdict
from bookcheck.timefmt import format_book_length, format_scan_time


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookcheck",
        description="bookcheck: find corrupt, truncated and silent audiobook files.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    scan = sub.add_parser("scan", help="Scan audio files or folders")
    scan.add_argument("paths", nargs="+", type=Path, help="Files or folders to scan")
    scan.add_argument("--config", "-c", type=Path, help="Path to a JSON config file")
    scan.add_argument("--full", action="store_true", help="Scan whole files instead of samples")
    scan.add_argument("--silence-threshold", type=float, help="Silence threshold in dB")
    scan.add_argument("--silence-min-duration", type=float, help="Minimum silence duration (seconds)")
    scan.add_argument("--no-chapter-silence", action="store_true", help="Skip chapter-end silence checks")
    scan.add_argument("--sample-segments", type=int, help="Evenly spaced silence windows for long files")
    scan.add_argument("--concurrency", "-j", type=int, help="Files scanned at once (1 = sequential)")
    scan.add_argument("--ffmpeg", type=str, help="Path to the ffmpeg executable")
    scan.add_argument("--ffprobe", type=str, help="Path to the ffprobe executable")

    check = sub.add_parser("check", help="Check that ffmpeg and ffprobe are usable")
    check.add_argument("--ffmpeg", type=str, help="Path to the ffmpeg executable")
    check.add_argument("--ffprobe", type=str, help="Path to the ffprobe executable")

    fix = sub.add_parser("fix", help="Re-encode, delete or move flagged files")
    fix_sub = fix.add_subparsers(dest="action", required=True)
    reencode = fix_sub.add_parser(
        "reencode", help="Re-encode to AAC (.m4a) in a _fixed_output folder"
    )
    reencode.add_argument("files", nargs="+", type=Path, help="Audio files to re-encode")
    reencode.add_argument(
        "--output-dir", "-o", type=Path,
        help="Output folder (default: _fixed_output beside each file)",
    )
    reencode.add_argument(
        "--bitrate", type=int, choices=REENCODE_BITRATES_KBPS,
        default=DEFAULT_REENCODE_BITRATE_KBPS, help="AAC bitrate in kb/s",
    )
    reencode.add_argument("--ffmpeg", type=str, help="Path to the ffmpeg executable")
    delete = fix_sub.add_parser("delete", help="Delete audio files")
    delete.add_argument("files", nargs="+", type=Path, help="Audio files to delete")
    delete.add_argument("--yes", action="store_true", help="Confirm the deletion")
    move = fix_sub.add_parser("move", help="Move audio files into another folder")
    move.add_argument("files", nargs="+", type=Path, help="Audio files to move")
    move.add_argument("--to", required=True, type=Path, help="Destination folder")
    move.add_argument("--yes", action="store_true", help="Confirm the move")

    serve = sub.add_parser("serve", help="Launch the HTTP scan API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    return parser


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    base = load_config(args.config) if getattr(args, "config", None) else ScanConfig()
    return base.with_overrides(
        silence_threshold_db=getattr(args, "silence_threshold", None),
        silence_min_duration=getattr(args, "silence_min_duration", None),
        detect_chapter_silence=False if getattr(args, "no_chapter_silence", False) else None,
        mode=ScanMode.FULL if getattr(args, "full", False) else None,
        sample_segments=getattr(args, "sample_segments", None),
        concurrency=getattr(args, "concurrency", None),
        ffmpeg_path=getattr(args, "ffmpeg", None),
        ffprobe_path=getattr(args, "ffprobe", None),
    )


def format_verdict(verdict: ScanVerdict) -> str:
    lines = [f"  [{verdict.status.value:>14}] {verdict.path}: {verdict.status_description}"]
    for finding in verdict.chapter_silence_findings:
        lines.append(f"      {finding}")
    if not verdict.chapter_silence_findings:
        for interval in verdict.silence_intervals:
            lines.append(f"      silence {interval}")
    return "\n".join(lines)


async def run_scan(scanner: Scanner, files: list[Path]) -> list[ScanVerdict]:
    verdicts: list[ScanVerdict] = []
    async for event in scanner.scan_many(files, concurrency=scanner.config.concurrency):
        if isinstance(event, PhaseUpdate):
            print(f"    {event.file_name}: {event.description}", file=sys.stderr)
        elif isinstance(event, FileCompleted):
            verdicts.append(event.verdict)
            print(f"[{event.current}/{event.total}]")
            print(format_verdict(event.verdict))
    return verdicts


def _scan_command(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    scanner = Scanner(config)
    try:
        scanner.tools.check()
    except FFmpegNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if not asyncio.run(scanner.probe_availability()):
        print(
            f"Error: {config.ffmpeg_path}/{config.ffprobe_path} not usable.",
            file=sys.stderr,
        )
        return 2

    files = expand_inputs(args.paths)
    if not files:
        print("Error: no audio files found.", file=sys.stderr)
        return 2

    started = time.monotonic()
    verdicts = asyncio.run(run_scan(scanner, files))
    elapsed = time.monotonic() - started

    print()
    for book in group_by_book(verdicts):
        print(
            f"{book.book_name}: {book.passed_count}/{book.total_count} passed"
            f" ({format_book_length(book.total_audio_seconds)} of audio)"
        )
    failed = sum(1 for v in verdicts if not v.is_ok)
    print(f"Done! {len(verdicts)} files scanned in {format_scan_time(elapsed)}, {failed} with issues.")
    return 0 if failed == 0 else 1


def _check_command(args: argparse.Namespace) -> int:
    scanner = Scanner(config_from_args(args))
    try:
        scanner.tools.check()
    except FFmpegNotFoundError as e:
        print(f"ffmpeg/ffprobe: NOT available ({e})", file=sys.stderr)
        return 2
    if not asyncio.run(scanner.probe_availability()):
        print("ffmpeg/ffprobe: NOT available", file=sys.stderr)
        return 2
    print(f"ffmpeg/ffprobe: available ({asyncio.run(scanner.tool_version())})")
    return 0


def _fix_command(args: argparse.Namespace) -> int:
    if args.action in ("delete", "move") and not args.yes:
        print(f"Error: refusing to {args.action} files without --yes.", file=sys.stderr)
        return 2

    tools = None
    if args.action == "reencode":
        tools = config_from_args(args).tools()
        try:
            tools.check()
        except FFmpegNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    failed = 0
    for path in args.files:
        try:
            if args.action == "reencode":
                output = asyncio.run(reencode_file(tools, path, args.output_dir, args.bitrate))
                print(f"Re-encoded to: {output}")
            elif args.action == "delete":
                delete_file(path, confirmed=True)
                print(f"Deleted: {path}")
            else:
                dest = move_file(path, args.to, confirmed=True)
                print(f"Moved to: {dest}")
        except ActionError as e:
            failed += 1
            print(f"Error: {e}", file=sys.stderr)
    return 0 if failed == 0 else 1


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        from bookcheck.web import create_app
        app = create_app()
        print(f"bookcheck API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    if args.command == "check":
        sys.exit(_check_command(args))

    if args.command == "fix":
        sys.exit(_fix_command(args))

    sys.exit(_scan_command(args))
