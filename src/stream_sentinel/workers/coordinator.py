"""Polling coordinator: drives every enabled site's cycle and shutdown.

One :class:`SiteSession` per enabled site wires the adapter, registry,
watch list, reconciler, poller, post-processor and supervisor together.
:class:`CaptureCoordinator` runs all sessions' cycles concurrently on a
single event loop:

1. consume ``<site>_updates.yml`` and reconcile the watch list;
2. run the file-size watchdog;
3. poll liveness for every tracked streamer;
4. build capture jobs for capturable streamers (concurrently);
5. start the eligible jobs (concurrently);
6. sleep ``scan_interval`` seconds, or until shutdown is requested.

Shutdown sets the shared ``exiting`` event, halts every capture that is
not post-processing, then waits for supervised pipelines (conversions
included) to finish.  A second SIGINT/SIGTERM kills whatever is left.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Iterable

import aiofiles.os
import structlog

from stream_sentinel.config.settings import Settings
from stream_sentinel.core.capture_args import CaptureArgBuilder
from stream_sentinel.core.logging_config import site_var
from stream_sentinel.core.models import CaptureJob
from stream_sentinel.core.notifications import LoggingSink, NotificationSink, SiteLog
from stream_sentinel.core.poller import LivenessPoller
from stream_sentinel.core.post_processor import PostProcessor
from stream_sentinel.core.process_runner import ProcessRunner
from stream_sentinel.core.reconciler import WatchListReconciler
from stream_sentinel.core.streamer_registry import StreamerRegistry
from stream_sentinel.core.supervisor import CaptureSupervisor
from stream_sentinel.core.watchlist import UpdateRequestFile, WatchList
from stream_sentinel.sources.base import SourceAdapter
from stream_sentinel.sources.registry import autodiscover, get_source

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Per-site wiring
# ---------------------------------------------------------------------------


class SiteSession:
    """All per-site components, sharing one registry and one exit flag.

    Args:
        settings: Runtime settings.
        adapter: Instantiated source adapter for the site.
        sink: Notification sink shared by all sites.
        runner: Process runner shared by all sites.
        exiting: Shared shutdown flag.
    """

    def __init__(
        self,
        settings: Settings,
        adapter: SourceAdapter,
        sink: NotificationSink,
        runner: ProcessRunner,
        exiting: asyncio.Event,
    ) -> None:
        site = adapter.platform_name
        self.site = site
        self.settings = settings
        self.adapter = adapter
        self.exiting = exiting
        self.site_log = SiteLog(
            sink, adapter.site_label, date_format=settings.date_format, debug=settings.debug
        )
        self.registry = StreamerRegistry(site, self.site_log)
        self.watchlist = WatchList(settings.config_dir / f"{site}.yml")
        self.update_file = UpdateRequestFile(settings.config_dir / f"{site}_updates.yml")
        self.args = CaptureArgBuilder(settings, site)

        self.reconciler = WatchListReconciler(adapter, self.registry, self.watchlist, self.site_log)
        self.poller = LivenessPoller(
            adapter, self.registry, self.watchlist, self.site_log, exiting
        )
        self.post_processor = PostProcessor(
            settings, self.registry, runner, self.args, self.site_log,
            refresh=self.poller.refresh,
        )
        self.supervisor = CaptureSupervisor(
            settings, adapter, self.registry, runner, self.args, self.post_processor,
            self.site_log, exiting, refresh=self.poller.refresh,
        )

    @classmethod
    def for_site(
        cls,
        site: str,
        settings: Settings,
        sink: NotificationSink,
        runner: ProcessRunner,
        exiting: asyncio.Event,
    ) -> SiteSession:
        """Instantiate the registered adapter for *site* and wire it.

        Raises:
            KeyError: If no adapter is registered under *site*.
        """
        adapter_cls = get_source(site)
        return cls(settings, adapter_cls(settings, runner=runner), sink, runner, exiting)

    async def start(self) -> None:
        """Load the persisted watch list into the registry."""
        await self.reconciler.load_initial()

    async def run_cycle(self) -> int:
        """Run one update/watchdog/poll/capture cycle.

        Returns:
            Number of captures started.
        """
        await self.reconciler.process_updates(self.update_file)
        await self.supervisor.check_file_size()

        to_capture = await self.poller.poll_cycle()
        if not to_capture or self.exiting.is_set():
            return 0

        jobs = await self._gather_logged(
            to_capture, (self.supervisor.setup_capture(sid) for sid in to_capture)
        )
        eligible = [job for job in jobs if isinstance(job, CaptureJob) and job.eligible]
        started = await self._gather_logged(
            [job.streamer_id for job in eligible],
            (self.supervisor.start(job) for job in eligible),
        )
        return sum(1 for result in started if result is True)

    async def close(self) -> None:
        await self.adapter.aclose()

    async def _gather_logged(self, streamer_ids: list[str], coros: Iterable) -> list:
        results = await asyncio.gather(*coros, return_exceptions=True)
        for streamer_id, result in zip(streamer_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "capture step failed",
                    site=self.site,
                    streamer=streamer_id,
                    exc_info=result,
                )
                self.site_log.err_msg(f"{streamer_id}: {result}")
        return results


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class CaptureCoordinator:
    """Runs every enabled site until shutdown is requested.

    Args:
        settings: Runtime settings.
        sink: Notification sink; defaults to :class:`LoggingSink`.
        runner: Process runner; defaults to a fresh :class:`ProcessRunner`.
    """

    def __init__(
        self,
        settings: Settings,
        sink: NotificationSink | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.settings = settings
        self.sink = sink or LoggingSink()
        self.runner = runner or ProcessRunner()
        self.exiting = asyncio.Event()
        self.sessions: list[SiteSession] = []
        self._signal_count = 0

    def build_sessions(self) -> list[SiteSession]:
        """Create one session per configured site; unknown sites are skipped."""
        autodiscover()
        sessions: list[SiteSession] = []
        for site in self.settings.sites:
            try:
                sessions.append(
                    SiteSession.for_site(site, self.settings, self.sink, self.runner, self.exiting)
                )
            except KeyError as exc:
                logger.error("unknown site skipped", site=site, error=str(exc))
        self.sessions = sessions
        return sessions

    async def start(self) -> None:
        """Prepare directories and load each site's watch list."""
        await aiofiles.os.makedirs(self.settings.capture_directory, exist_ok=True)
        await aiofiles.os.makedirs(self.settings.complete_directory, exist_ok=True)
        await aiofiles.os.makedirs(self.settings.config_dir, exist_ok=True)
        if not self.sessions:
            self.build_sessions()
        for session in self.sessions:
            token = site_var.set(session.site)
            try:
                await session.start()
            finally:
                site_var.reset(token)

    async def run(self) -> None:
        """Cycle until shutdown, then drain and close every session."""
        await self.start()
        self.install_signal_handlers()
        logger.info(
            "coordinator started",
            sites=[session.site for session in self.sessions],
            scan_interval=self.settings.scan_interval,
        )

        while not self.exiting.is_set():
            await self.run_cycle()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.exiting.wait(), timeout=self.settings.scan_interval)

        await self.shutdown()

    async def run_cycle(self) -> None:
        """Run one cycle of every site concurrently."""
        results = await asyncio.gather(
            *(self._site_cycle(session) for session in self.sessions),
            return_exceptions=True,
        )
        for session, result in zip(self.sessions, results):
            if isinstance(result, BaseException):
                logger.error("site cycle failed", site=session.site, exc_info=result)

    async def _site_cycle(self, session: SiteSession) -> None:
        site_var.set(session.site)
        started = await session.run_cycle()
        logger.debug(
            "cycle complete",
            tracked=len(session.registry),
            capturing=session.supervisor.count_in_progress(),
            started=started,
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_shutdown)

    def request_shutdown(self) -> None:
        """First call: stop new work and halt captures.  Later calls: kill all."""
        self._signal_count += 1
        if self._signal_count > 1:
            self.force_terminate()
            return

        self.exiting.set()
        for session in self.sessions:
            halted = session.supervisor.halt_all()
            in_progress = session.supervisor.count_in_progress()
            logger.info(
                "shutdown requested", site=session.site, halted=halted, in_progress=in_progress
            )
            if in_progress:
                session.site_log.msg(
                    f"Waiting for {in_progress} capture(s) and conversion(s) to finish..."
                )

    def force_terminate(self) -> int:
        """Kill every capture and conversion process still running.

        Returns:
            Number of processes signalled.
        """
        killed = 0
        for session in self.sessions:
            for record in session.registry:
                handle = record.capture_handle
                if handle is not None and handle.running:
                    handle.kill()
                    killed += 1
        logger.warning("forced termination", killed=killed)
        return killed

    async def shutdown(self) -> None:
        """Graceful shutdown: halt, wait for pipelines, close adapters."""
        if not self.exiting.is_set():
            self.request_shutdown()
        await asyncio.gather(
            *(session.supervisor.drain() for session in self.sessions),
            return_exceptions=True,
        )
        for session in self.sessions:
            await session.close()
        logger.info("coordinator stopped")
