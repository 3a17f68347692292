"""Capture eligibility, process supervision and the file-size watchdog.

Lifecycle of one capture::

    setup_capture(id) ─► CaptureJob ─► start(job) ─► capture process runs
                                                        │ exit
                                                        ▼
                                  triage: missing ─► clear state
                                          undersized ─► delete file, clear state
                                          otherwise ─► PostProcessor.process()
                                                        │
                                                        ▼
                                               refresh(id) re-polls liveness

At most one capture handle exists per record: ``start`` re-checks the
handle under the record's lock before spawning.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

import aiofiles.os

from stream_sentinel.config.settings import Settings
from stream_sentinel.core.capture_args import CaptureArgBuilder
from stream_sentinel.core.exceptions import (
    MissingOutputFileError,
    SourceLookupError,
    SubprocessSpawnError,
)
from stream_sentinel.core.models import CaptureJob, CapturePhase, StreamerIdentity
from stream_sentinel.core.notifications import SiteLog
from stream_sentinel.core.post_processor import PostProcessor
from stream_sentinel.core.process_runner import ProcessHandle, ProcessRunner
from stream_sentinel.core.streamer_registry import StreamerRegistry
from stream_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class TriageOutcome(str, Enum):
    """What happened to a recording after its capture process exited."""

    MISSING = "missing"
    UNDERSIZED = "undersized"
    HANDED_OFF = "handed_off"
    STALE = "stale"


class CaptureSupervisor:
    """Starts, halts and follows capture processes for one site.

    Args:
        settings: Runtime settings.
        adapter: Source adapter, used to resolve playback URLs.
        registry: The site's streamer registry.
        runner: Process runner for capture commands.
        args: Argument builder for the site.
        post_processor: Receives recordings that pass triage.
        site_log: Message sink.
        exiting: Set once shutdown starts; suppresses new captures.
        refresh: Coroutine function re-polling one streamer after its
            capture exits.
    """

    def __init__(
        self,
        settings: Settings,
        adapter: SourceAdapter,
        registry: StreamerRegistry,
        runner: ProcessRunner,
        args: CaptureArgBuilder,
        post_processor: PostProcessor,
        site_log: SiteLog,
        exiting: asyncio.Event,
        refresh: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self.settings = settings
        self.adapter = adapter
        self.registry = registry
        self.runner = runner
        self.args = args
        self.post_processor = post_processor
        self.site_log = site_log
        self.exiting = exiting
        self.refresh = refresh
        self._pipelines: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def is_eligible(self, streamer_id: str) -> bool:
        """False if the streamer is unknown or already capturing."""
        record = self.registry.get(streamer_id)
        if record is None:
            return False
        if record.capture_handle is not None:
            self.site_log.dbg_msg(f"{record.display_name} is already capturing")
            return False
        return True

    async def setup_capture(self, streamer_id: str) -> CaptureJob:
        """Build a capture job, or the empty "not eligible" job.

        URL resolution failures only affect this streamer's job.
        """
        if not self.is_eligible(streamer_id):
            return CaptureJob.not_eligible(streamer_id)

        record = self.registry.get(streamer_id)
        if record is None:
            return CaptureJob.not_eligible(streamer_id)
        identity = StreamerIdentity(id=record.id, display_name=record.display_name)

        try:
            url = await self.adapter.resolve_playback_url(identity)
        except SourceLookupError as exc:
            self.site_log.err_msg(f"{identity.display_name} {exc}")
            return CaptureJob.not_eligible(streamer_id)

        filename = self.args.make_filename(identity.display_name)
        return CaptureJob(
            argv=self.args.build_capture_args(
                url, filename, hls_session=self.adapter.supports_hls_session
            ),
            filename=filename,
            streamer_id=streamer_id,
            display_name=identity.display_name,
        )

    # ------------------------------------------------------------------
    # Start / halt
    # ------------------------------------------------------------------

    async def start(self, job: CaptureJob) -> bool:
        """Spawn the capture for *job* and follow it in the background.

        No-op for the "not eligible" job, during shutdown, or if another
        capture claimed the record first.

        Returns:
            True if a capture process was started.
        """
        if not job.eligible or self.exiting.is_set():
            return False

        raw_name = self.args.capture_path(job.filename).name
        async with self.registry.lock(job.streamer_id):
            record = self.registry.get(job.streamer_id)
            if record is None:
                return False
            if record.capture_handle is not None:
                self.site_log.dbg_msg(f"{record.display_name} is already capturing")
                return False

            try:
                handle = await self.runner.spawn(
                    job.argv, log_path=self.args.recorder_log_path(job.filename)
                )
            except SubprocessSpawnError as exc:
                self.site_log.err_msg(f"{record.display_name}: {exc}")
                return False

            record.store_capture(raw_name, handle)
            record.phase = CapturePhase.CAPTURING
            self.site_log.msg(f"{record.display_name} recording started ({raw_name})")
        self.site_log.render()

        self._track(self._supervise(job, handle))
        return True

    def halt_capture(self, streamer_id: str) -> bool:
        return self.registry.halt_capture(streamer_id)

    def halt_all(self) -> int:
        """Halt every unguarded capture; conversions keep running."""
        return self.registry.halt_all()

    def count_in_progress(self) -> int:
        return self.registry.count_capturing()

    async def drain(self) -> None:
        """Wait until every capture and conversion pipeline has finished."""
        while self._pipelines:
            await asyncio.gather(*list(self._pipelines), return_exceptions=True)

    # ------------------------------------------------------------------
    # Watchdog
    # ------------------------------------------------------------------

    async def check_file_size(self) -> list[str]:
        """Halt captures whose output reached ``max_byte_size``.

        Guarded (post-processing) records are skipped.  A ceiling of 0
        disables the check.

        Returns:
            Ids of the captures that were halted.
        """
        max_byte_size = self.settings.max_byte_size
        if max_byte_size <= 0:
            return []

        halted: list[str] = []
        for record in self.registry:
            if not record.can_halt or not record.current_filename:
                continue
            path = self.settings.capture_directory / record.current_filename
            try:
                size = (await aiofiles.os.stat(path)).st_size
            except OSError:
                self.site_log.dbg_msg(f"{record.display_name} has no file yet ({path.name})")
                continue

            self.site_log.dbg_msg(
                f"{record.display_name} file size ({record.current_filename}), "
                f"size={size}, maxByteSize={max_byte_size}"
            )
            if size >= max_byte_size:
                self.site_log.msg(
                    f"{record.display_name} recording has exceeded file size limit "
                    f"(size={size} >= maxByteSize={max_byte_size})"
                )
                if self.registry.halt_capture(record.id):
                    halted.append(record.id)
        return halted

    # ------------------------------------------------------------------
    # Exit handling
    # ------------------------------------------------------------------

    async def _supervise(self, job: CaptureJob, handle: ProcessHandle) -> None:
        returncode = await handle.wait()
        logger.debug(
            "supervisor: capture for %s exited with status %s", job.streamer_id, returncode
        )
        try:
            await self.triage(job, handle)
        except Exception:  # noqa: BLE001
            logger.exception("supervisor: triage failed for %s", job.streamer_id)
            await self._clear(job.streamer_id, handle)

        if self.refresh is not None:
            await self.refresh(job.streamer_id)

    async def triage(self, job: CaptureJob, handle: ProcessHandle) -> TriageOutcome:
        """Decide what to do with a finished capture's output file.

        Missing file: error, state cleared.  Smaller than
        ``min_byte_size``: file deleted, state cleared.  Otherwise the
        recording is handed to the post-processor in its own task.
        """
        path = self.args.capture_path(job.filename)
        name = job.display_name or job.streamer_id

        async with self.registry.lock(job.streamer_id):
            record = self.registry.get(job.streamer_id)
            owned = record is not None and record.capture_handle is handle
            if owned:
                record.phase = CapturePhase.TRIAGE

            try:
                size = await self._output_size(path)
            except MissingOutputFileError as exc:
                self.site_log.err_msg(
                    f"{name}, {exc}, cannot convert to {self.settings.auto_convert_type}"
                )
                self._clear_locked(job.streamer_id, handle)
                return TriageOutcome.MISSING
            except OSError as exc:
                self.site_log.err_msg(f"{name}: {exc}")
                self._clear_locked(job.streamer_id, handle)
                return TriageOutcome.MISSING

            if size < self.settings.min_byte_size:
                self.site_log.msg(
                    f"{name} recording automatically deleted "
                    f"(size={size} < minByteSize={self.settings.min_byte_size})"
                )
                try:
                    await aiofiles.os.remove(path)
                except FileNotFoundError:
                    pass
                self._clear_locked(job.streamer_id, handle)
                return TriageOutcome.UNDERSIZED

            if not owned:
                # Removed while capturing: the raw file stays in place.
                logger.info("supervisor: %s no longer owns %s", job.streamer_id, path.name)
                return TriageOutcome.STALE

        self._track(self.post_processor.process(job.streamer_id, job.filename))
        return TriageOutcome.HANDED_OFF

    async def _output_size(self, path: Path) -> int:
        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError as exc:
            raise MissingOutputFileError(path.name) from exc
        return stat.st_size

    def _clear_locked(self, streamer_id: str, handle: ProcessHandle) -> None:
        record = self.registry.get(streamer_id)
        if record is not None and record.capture_handle is handle:
            record.clear_capture()
        self.site_log.render()

    async def _clear(self, streamer_id: str, handle: ProcessHandle) -> None:
        async with self.registry.lock(streamer_id):
            self._clear_locked(streamer_id, handle)

    def _track(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pipelines.add(task)
        task.add_done_callback(self._pipelines.discard)
        task.add_done_callback(self._report_failure)

    def _report_failure(self, task: asyncio.Future[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("supervisor: pipeline task failed", exc_info=exc)
            self.site_log.err_msg(f"capture pipeline failed: {exc}")
