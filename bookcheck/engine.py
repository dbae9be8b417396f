"""Orchestrator: runs the scan phases for one file or a batch of files."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Iterable

from bookcheck.analyzers.chapters import correlate
from bookcheck.analyzers.corruption import check_corruption
from bookcheck.analyzers.silence import survey
from bookcheck.analyzers.truncation import locate
from bookcheck.config import ScanConfig, ScanMode
from bookcheck.ffutil import ProbeError
from bookcheck.models import (
    FileCompleted,
    PhaseUpdate,
    ProgressCallback,
    ScanEvent,
    ScanPhase,
    ScanVerdict,
)

_LOG = logging.getLogger(__name__)

# Events buffered between the scanning task and a slow consumer.
EVENT_QUEUE_SIZE = 64

Emit = Callable[[PhaseUpdate], Awaitable[None]]


@dataclass(frozen=True)
class _Failure:
    error: BaseException


_END = object()


class _CallbackFailed(Exception):
    """Carries an exception raised by a caller's progress callback."""


class Scanner:
    """Scans audiobook files with ffmpeg/ffprobe as the decoding oracle.

    The configuration (tool paths included) is fixed for the lifetime of the
    instance. Instances share no state, so scanners with different tools can
    run side by side.
    """

    def __init__(self, config: ScanConfig | None = None):
        self.config = config or ScanConfig()
        self.tools = self.config.tools()

    async def probe_availability(self) -> bool:
        return await self.tools.available()

    async def tool_version(self) -> str | None:
        return await self.tools.version()

    def _mode(self, mode: ScanMode | str | None) -> ScanMode:
        return self.config.mode if mode is None else ScanMode(mode)

    async def scan_one(
        self,
        path: str | Path,
        mode: ScanMode | str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ScanVerdict:
        """Scan a single file and return its verdict.

        Failures come back as an ``error`` verdict, except an exception raised
        by ``on_progress`` itself, which propagates unchanged. Cancelling the
        awaiting task stops the scan, kills any running tool and yields no
        verdict.
        """

        async def emit(update: PhaseUpdate) -> None:
            if on_progress:
                try:
                    on_progress(update)
                except Exception as e:
                    raise _CallbackFailed() from e

        try:
            return await self._scan(Path(path), self._mode(mode), emit)
        except _CallbackFailed as e:
            raise e.__cause__ from None

    async def _scan(self, path: Path, mode: ScanMode, emit: Emit) -> ScanVerdict:
        _LOG.info("scanning %s (%s mode)", path, mode.value)
        try:
            verdict = await self._run_phases(path, mode, emit)
        except _CallbackFailed:
            raise
        except ProbeError as e:
            verdict = ScanVerdict(
                path=str(path), file_name=path.name, has_audio_stream=False, error=e.reason
            )
        except Exception as e:
            _LOG.exception("scan of %s failed", path)
            verdict = ScanVerdict(
                path=str(path),
                file_name=path.name,
                has_audio_stream=False,
                error=f"Scan error: {e}",
            )
        _LOG.info("%s: %s", path.name, verdict.status.value)
        return verdict

    async def _run_phases(self, path: Path, mode: ScanMode, emit: Emit) -> ScanVerdict:
        name = path.name

        async def progress(phase: ScanPhase, frac: float = 0.0, current=None, total=None,
                           duration=None) -> None:
            await emit(PhaseUpdate(
                path=str(path),
                file_name=name,
                phase=phase,
                progress=frac,
                segments_current=current,
                segments_total=total,
                file_duration=duration,
            ))

        def segment_progress(phase: ScanPhase, duration: float | None):
            async def cb(current: int, total: int) -> None:
                await progress(phase, current / total if total else 0.0, current, total, duration)
            return cb

        if not path.is_file():
            return ScanVerdict(
                path=str(path), file_name=name, has_audio_stream=False, error="File not found"
            )

        # --- Probe ---
        await progress(ScanPhase.PROBING)
        probe = await self.tools.probe(path)
        duration = probe.duration

        if not probe.has_audio_stream:
            await progress(ScanPhase.COMPLETE, 1.0, duration=duration)
            return ScanVerdict(
                path=str(path),
                file_name=name,
                has_audio_stream=False,
                claimed_duration=duration,
                chapters=probe.chapters,
                codec=probe.codec,
                bitrate_bps=probe.bitrate_bps,
                sample_rate_hz=probe.sample_rate_hz,
            )

        # --- Corruption ---
        await progress(ScanPhase.CHECKING_CORRUPTION, duration=duration)
        is_corrupt = await check_corruption(
            self.tools,
            path,
            duration,
            mode,
            on_segment=segment_progress(ScanPhase.CHECKING_CORRUPTION, duration),
        )

        # --- Truncation ---
        await progress(ScanPhase.CHECKING_TRUNCATION, duration=duration)
        truncation = await locate(self.tools, path, duration)

        # --- Silence ---
        await progress(ScanPhase.DETECTING_SILENCE, duration=duration)
        silences = await survey(
            self.tools,
            path,
            duration,
            probe.chapters,
            self.config,
            mode,
            on_segment=segment_progress(ScanPhase.DETECTING_SILENCE, duration),
        )

        # --- Chapters ---
        await progress(ScanPhase.ANALYZING_CHAPTERS, duration=duration)
        findings = []
        if self.config.detect_chapter_silence and probe.chapters:
            findings = correlate(probe.chapters, silences)

        await progress(ScanPhase.COMPLETE, 1.0, duration=duration)
        return ScanVerdict(
            path=str(path),
            file_name=name,
            has_audio_stream=True,
            is_corrupt=is_corrupt,
            is_truncated=truncation.is_truncated,
            claimed_duration=duration,
            actual_duration=truncation.actual_duration,
            silence_intervals=tuple(silences),
            chapter_silence_findings=tuple(findings),
            chapters=probe.chapters,
            codec=probe.codec,
            bitrate_bps=probe.bitrate_bps,
            sample_rate_hz=probe.sample_rate_hz,
        )

    async def scan_many(
        self,
        paths: Iterable[str | Path],
        mode: ScanMode | str | None = None,
        concurrency: int = 1,
    ) -> AsyncIterator[ScanEvent]:
        """Stream progress for a list of files, ending with one verdict per path.

        ``concurrency`` of 1 scans files one after another and reports every
        phase in order. Larger values scan that many files at once; within a
        batch verdicts arrive in completion order, batches run in order.
        Closing the iterator early cancels whatever is still running.
        """
        files = [Path(p) for p in paths]
        scan_mode = self._mode(mode)
        queue: asyncio.Queue = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)
        producer = asyncio.create_task(self._produce(files, scan_mode, concurrency, queue))
        try:
            while True:
                event = await queue.get()
                if event is _END:
                    break
                if isinstance(event, _Failure):
                    raise event.error
                yield event
        finally:
            if not producer.done():
                producer.cancel()
                try:
                    await producer
                except asyncio.CancelledError:
                    pass

    async def _produce(
        self,
        files: list[Path],
        mode: ScanMode,
        concurrency: int,
        queue: asyncio.Queue,
    ) -> None:
        try:
            if concurrency <= 1:
                await self._produce_sequential(files, mode, queue)
            else:
                await self._produce_batched(files, mode, concurrency, queue)
        except Exception as e:
            await queue.put(_Failure(e))
            return
        await queue.put(_END)

    async def _produce_sequential(
        self, files: list[Path], mode: ScanMode, queue: asyncio.Queue
    ) -> None:
        total = len(files)
        for i, path in enumerate(files, start=1):
            verdict = await self._scan(path, mode, queue.put)
            await queue.put(FileCompleted(verdict=verdict, current=i, total=total))

    async def _produce_batched(
        self, files: list[Path], mode: ScanMode, size: int, queue: asyncio.Queue
    ) -> None:
        total = len(files)
        completed = 0
        for start in range(0, total, size):
            batch = files[start:start + size]
            tasks = [asyncio.create_task(self._scan(p, mode, queue.put)) for p in batch]
            try:
                for next_done in asyncio.as_completed(tasks):
                    verdict = await next_done
                    completed += 1
                    await queue.put(FileCompleted(verdict=verdict, current=completed, total=total))
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
