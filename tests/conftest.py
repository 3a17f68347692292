"""Shared pytest fixtures for Stream Sentinel tests.

Fixture summary
---------------
settings: Settings rooted in ``tmp_path`` (config, captures, complete).
sink: RecordingSink collecting every notification line.
site_log: SiteLog for the ``fake`` site writing to ``sink``.
registry: Empty StreamerRegistry for the ``fake`` site.
runner: FakeRunner that records spawned argv lists and hands out
    FakeProcessHandle objects whose exit is triggered by the test.
adapter: FakeAdapter with scripted liveness answers.

No test touches the network or starts a real process.
"""

from __future__ import annotations

import asyncio
import itertools
import signal
from pathlib import Path
from typing import Any

import pytest

from stream_sentinel.config.settings import Settings
from stream_sentinel.core.exceptions import SourceLookupError, SubprocessSpawnError
from stream_sentinel.core.models import StreamerIdentity, StreamerState
from stream_sentinel.core.notifications import NotificationSink, SiteLog
from stream_sentinel.core.process_runner import CommandResult
from stream_sentinel.core.streamer_registry import StreamerRegistry
from stream_sentinel.sources.base import SourceAdapter, SourceState

# ---------------------------------------------------------------------------
# Process doubles
# ---------------------------------------------------------------------------

_pids = itertools.count(4000)


class FakeProcessHandle:
    """Stand-in for ProcessHandle; exits when :meth:`finish` is called.

    By default a delivered SIGINT makes the process exit cleanly, which is
    what streamlink and ffmpeg do.
    """

    def __init__(self, argv: list[str], exit_on_terminate: bool = True) -> None:
        self.argv = list(argv)
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.signals: list[int] = []
        self.killed = False
        self.exit_on_terminate = exit_on_terminate
        self._exited = asyncio.Event()

    @property
    def running(self) -> bool:
        return self.returncode is None

    def finish(self, returncode: int = 0) -> None:
        if self.returncode is None:
            self.returncode = returncode
            self._exited.set()

    def terminate(self, sig: int = signal.SIGINT) -> bool:
        if not self.running:
            return False
        self.signals.append(sig)
        if self.exit_on_terminate:
            self.finish(0)
        return True

    def kill(self) -> None:
        if self.running:
            self.killed = True
            self.finish(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeRunner:
    """Stand-in for ProcessRunner.

    Attributes:
        spawned: Every argv passed to :meth:`spawn`, in order.
        handles: The handles returned by :meth:`spawn`.
        detached: Every argv passed to :meth:`spawn_detached`.
        ran: Every argv passed to :meth:`run`.
        exit_codes: Program name -> exit status; matching spawns exit
            immediately with that status.
        fail_programs: Program names whose spawn raises
            SubprocessSpawnError.
        run_results: Program name -> CommandResult returned by :meth:`run`.
    """

    def __init__(self) -> None:
        self.spawned: list[list[str]] = []
        self.handles: list[FakeProcessHandle] = []
        self.detached: list[list[str]] = []
        self.ran: list[list[str]] = []
        self.log_paths: list[Path | None] = []
        self.exit_codes: dict[str, int] = {}
        self.fail_programs: set[str] = set()
        self.run_results: dict[str, CommandResult] = {}

    async def spawn(self, argv: list[str], log_path: Path | None = None) -> FakeProcessHandle:
        if not argv or argv[0] in self.fail_programs:
            raise SubprocessSpawnError(f"failed to start {argv[0] if argv else '?'}", argv=argv)
        handle = FakeProcessHandle(argv)
        self.spawned.append(list(argv))
        self.log_paths.append(log_path)
        self.handles.append(handle)
        if argv[0] in self.exit_codes:
            handle.finish(self.exit_codes[argv[0]])
        return handle

    async def spawn_detached(self, argv: list[str]) -> None:
        self.detached.append(list(argv))

    async def run(self, argv: list[str], timeout: float = 30.0) -> CommandResult:
        self.ran.append(list(argv))
        return self.run_results.get(
            argv[0], CommandResult(returncode=0, stdout="https://cdn.example/live.m3u8\n", stderr="")
        )

    def handles_for(self, program: str) -> list[FakeProcessHandle]:
        return [handle for handle in self.handles if handle.argv[0] == program]


# ---------------------------------------------------------------------------
# Source adapter double
# ---------------------------------------------------------------------------


class FakeAdapter(SourceAdapter):
    """Source adapter answering from in-memory tables.

    Attributes:
        states: Streamer id -> SourceState, or an exception to raise.
            Unknown ids are reported offline.
        missing: Names that do not exist on the source.
        lookup_errors: Names whose resolution raises SourceLookupError.
        playback_failures: Ids whose playback URL cannot be resolved.
    """

    platform_name = "fake"

    def __init__(self, settings: Settings, runner: Any = None) -> None:
        super().__init__(settings, runner=runner)
        self.states: dict[str, SourceState | Exception] = {}
        self.missing: set[str] = set()
        self.lookup_errors: set[str] = set()
        self.playback_failures: set[str] = set()
        self.queries: list[str] = []

    def set_live(self, *streamer_ids: str) -> None:
        for streamer_id in streamer_ids:
            self.states[streamer_id] = SourceState(StreamerState.STREAMING)

    def set_offline(self, *streamer_ids: str) -> None:
        for streamer_id in streamer_ids:
            self.states[streamer_id] = SourceState(StreamerState.OFFLINE)

    async def query_state(self, identity: StreamerIdentity) -> SourceState:
        self.queries.append(identity.id)
        answer = self.states.get(identity.id, SourceState(StreamerState.OFFLINE))
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def resolve_identity(self, name: str) -> StreamerIdentity | None:
        key = self.normalize_name(name)
        if key in self.lookup_errors:
            raise SourceLookupError("fake: upstream unavailable", site="fake", identity=key)
        if not key or key in self.missing:
            return None
        return StreamerIdentity(id=key, display_name=name.strip())

    def normalize_name(self, name: str) -> str:
        return name.strip().lower()

    def channel_url(self, identity: StreamerIdentity) -> str:
        return f"https://fake.example/{identity.id}"

    async def resolve_playback_url(self, identity: StreamerIdentity) -> str:
        if identity.id in self.playback_failures:
            raise SourceLookupError("no playable stream", site="fake", identity=identity.id)
        return f"https://cdn.fake.example/{identity.id}/index.m3u8"


# ---------------------------------------------------------------------------
# Notification sink double
# ---------------------------------------------------------------------------


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.renders = 0

    def log(self, line: str) -> None:
        self.lines.append(line)

    def render(self) -> None:
        self.renders += 1

    def contains(self, text: str) -> bool:
        return any(text in line for line in self.lines)

    def count(self, text: str) -> int:
        return sum(1 for line in self.lines if text in line)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every directory under ``tmp_path`` and debug lines on."""
    for name in ("config", "captures", "complete"):
        (tmp_path / name).mkdir()
    return Settings(
        config_dir=tmp_path / "config",
        capture_directory=tmp_path / "captures",
        complete_directory=tmp_path / "complete",
        sites=["fake"],
        scan_interval=0.01,
        debug=True,
        twitch_client_id="test-client-id",
        twitch_client_secret="test-client-secret",
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def site_log(sink: RecordingSink, settings: Settings) -> SiteLog:
    return SiteLog(sink, "FAKE", date_format=settings.date_format, debug=True)


@pytest.fixture
def registry(site_log: SiteLog) -> StreamerRegistry:
    return StreamerRegistry("fake", site_log)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def adapter(settings: Settings, runner: FakeRunner) -> FakeAdapter:
    return FakeAdapter(settings, runner=runner)
