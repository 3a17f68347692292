"""Conversion, thumbnailing and cleanup of finished recordings.

When ``auto_convert_type`` names a container other than the raw ``.ts``,
the recording is remuxed with ffmpeg.  While that runs the record's
``post_processing`` guard is set and the conversion's handle stands in for
the capture handle, so the record still counts as busy for shutdown but is
never signalled by the watchdog or the offline-halt logic.  Thumbnail
generation happens after the guarded section and is fire-and-forget.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles.os

from stream_sentinel.config.settings import Settings
from stream_sentinel.core.capture_args import CaptureArgBuilder
from stream_sentinel.core.exceptions import ConversionError, SubprocessSpawnError
from stream_sentinel.core.models import CapturePhase
from stream_sentinel.core.notifications import SiteLog
from stream_sentinel.core.process_runner import ProcessHandle, ProcessRunner
from stream_sentinel.core.streamer_registry import StreamerRegistry

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[str], Awaitable[None]]


class PostProcessor:
    """Handles recordings handed off by the capture supervisor.

    Args:
        settings: Runtime settings.
        registry: The site's streamer registry.
        runner: Process runner for the convert and thumbnail commands.
        args: Argument builder for the site.
        site_log: Message sink.
        refresh: Coroutine function re-polling one streamer; called once
            the conversion has finished.
    """

    def __init__(
        self,
        settings: Settings,
        registry: StreamerRegistry,
        runner: ProcessRunner,
        args: CaptureArgBuilder,
        site_log: SiteLog,
        refresh: RefreshCallback | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.runner = runner
        self.args = args
        self.site_log = site_log
        self.refresh = refresh

    async def resolve_complete_dir(self, display_name: str) -> Path:
        """Destination directory, creating the per-streamer one on demand."""
        complete_dir = self.settings.complete_directory
        if self.settings.streamer_subdir:
            subdir = display_name
            if self.settings.include_site_in_dir:
                subdir += f"_{self.args.site}"
            complete_dir = complete_dir / subdir
        await aiofiles.os.makedirs(complete_dir, exist_ok=True)
        return complete_dir

    async def process(self, streamer_id: str, filename: str) -> None:
        """Move or convert ``<filename>.ts`` and release the record.

        Never raises: an unexpected failure is reported through the site
        log and the record is released so the next cycle can capture again.

        Args:
            streamer_id: Owner of the recording.
            filename: Base filename (no extension) of the raw capture.
        """
        record = self.registry.get(streamer_id)
        owner = record.capture_handle if record else None
        try:
            await self._process(streamer_id, filename)
        except Exception as exc:  # noqa: BLE001
            logger.exception("post_processor: %s failed for %s", filename, streamer_id)
            self.site_log.err_msg(
                f"{self._name(streamer_id)} post-processing of {filename} failed: {exc}"
            )
            await self._abandon(streamer_id, owner)

    async def _process(self, streamer_id: str, filename: str) -> None:
        record = self.registry.get(streamer_id)
        name = record.display_name if record else streamer_id
        raw_path = self.args.capture_path(filename)
        complete_dir = await self.resolve_complete_dir(name)

        if not self.settings.converts:
            await self._move(streamer_id, raw_path, complete_dir / raw_path.name)
            return

        output_path = complete_dir / f"{filename}.{self.settings.auto_convert_type}"
        handle = await self._start_conversion(streamer_id, raw_path, output_path)
        if handle is None:
            return

        try:
            returncode = await handle.wait()
            if returncode != 0:
                raise ConversionError(
                    f"{name} conversion of {raw_path.name} to "
                    f"{output_path.name} failed (exit status {returncode}), "
                    "keeping the raw recording",
                    returncode=returncode,
                )
            if not self.settings.keep_ts_file:
                await self._remove(raw_path)
            await self._thumbnail(streamer_id, output_path)
            self.site_log.msg(f"{name} done converting {output_path.name}")
        except ConversionError as exc:
            self.site_log.err_msg(str(exc))
        finally:
            await self._release(streamer_id, handle)

        if self.refresh is not None:
            await self.refresh(streamer_id)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _move(self, streamer_id: str, raw_path: Path, dest: Path) -> None:
        name = self._name(streamer_id)
        self.site_log.dbg_msg(f"{name} recording moved ({raw_path} to {dest})")
        try:
            await asyncio.to_thread(shutil.move, raw_path, dest)
        except OSError as exc:
            self.site_log.err_msg(f"{raw_path.name}: {exc}")

        async with self.registry.lock(streamer_id):
            record = self.registry.get(streamer_id)
            if record is not None:
                record.clear_capture()
        self.site_log.render()

    async def _start_conversion(
        self,
        streamer_id: str,
        raw_path: Path,
        output_path: Path,
    ) -> ProcessHandle | None:
        argv = self.args.build_convert_args(raw_path, output_path)
        async with self.registry.lock(streamer_id):
            record = self.registry.get(streamer_id)
            if record is not None:
                # Set before spawning so the offline check never sees an
                # unguarded conversion handle.
                record.post_processing = True
                record.phase = CapturePhase.CONVERTING
            try:
                handle = await self.runner.spawn(argv)
            except SubprocessSpawnError as exc:
                self.site_log.err_msg(f"{self._name(streamer_id)}: {exc}")
                if record is not None:
                    record.post_processing = False
                    record.clear_capture()
                self.site_log.render()
                return None

            self.site_log.msg(f"{self._name(streamer_id)} converting to {output_path.name}")
            if record is not None:
                record.store_capture(output_path.name, handle)
        self.site_log.render()
        return handle

    async def _thumbnail(self, streamer_id: str, video_path: Path) -> None:
        if not self.settings.generate_thumbnails:
            return
        record = self.registry.get(streamer_id)
        if record is not None and record.capture_handle is not None:
            record.phase = CapturePhase.THUMBNAILING
        await self.runner.spawn_detached(self.args.build_thumbnail_args(video_path))

    async def _release(self, streamer_id: str, handle: ProcessHandle) -> None:
        async with self.registry.lock(streamer_id):
            record = self.registry.get(streamer_id)
            # The record may have been removed and re-added meanwhile.
            if record is not None and record.capture_handle is handle:
                record.clear_capture()
                record.post_processing = False
        self.site_log.render()

    async def _abandon(self, streamer_id: str, owner: ProcessHandle | None) -> None:
        async with self.registry.lock(streamer_id):
            record = self.registry.get(streamer_id)
            if record is not None and owner is not None and record.capture_handle is owner:
                record.clear_capture()
                record.post_processing = False
        self.site_log.render()

    async def _remove(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("post_processor: %s already gone", path)
        except OSError as exc:
            self.site_log.err_msg(f"could not delete {path.name}: {exc}")

    def _name(self, streamer_id: str) -> str:
        record = self.registry.get(streamer_id)
        return record.display_name if record else streamer_id
