"""Unit tests for ProcessRunner and ProcessHandle against real child processes.

The children are short ``python -c`` scripts run with the test interpreter,
so no external tools are needed.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from stream_sentinel.core.exceptions import SubprocessSpawnError
from stream_sentinel.core.process_runner import ProcessRunner

PY = sys.executable


class TestSpawn:
    @pytest.mark.asyncio
    async def test_spawn_and_wait(self) -> None:
        handle = await ProcessRunner().spawn([PY, "-c", "raise SystemExit(3)"])

        assert await handle.wait() == 3
        assert not handle.running
        assert handle.terminate() is False

    @pytest.mark.asyncio
    async def test_terminate_stops_long_running_process(self) -> None:
        handle = await ProcessRunner().spawn([PY, "-c", "import time; time.sleep(30)"])

        assert handle.running
        assert handle.terminate() is True
        await handle.wait()
        assert not handle.running

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self) -> None:
        with pytest.raises(SubprocessSpawnError) as exc_info:
            await ProcessRunner().spawn(["/nonexistent/streamlink", "-o", "x.ts"])

        assert exc_info.value.argv[0] == "/nonexistent/streamlink"

    @pytest.mark.asyncio
    async def test_empty_argv_raises(self) -> None:
        with pytest.raises(SubprocessSpawnError):
            await ProcessRunner().spawn([])

    @pytest.mark.asyncio
    async def test_output_goes_to_log_file(self, tmp_path) -> None:
        log_path = tmp_path / "capture.log"
        handle = await ProcessRunner().spawn([PY, "-c", "print('segment 1')"], log_path=log_path)
        await handle.wait()

        assert "segment 1" in log_path.read_text()


class TestRun:
    @pytest.mark.asyncio
    async def test_run_captures_output(self) -> None:
        result = await ProcessRunner().run([PY, "-c", "print('https://cdn.example/x.m3u8')"])

        assert result.ok
        assert result.stdout.strip() == "https://cdn.example/x.m3u8"

    @pytest.mark.asyncio
    async def test_run_reports_failure(self) -> None:
        result = await ProcessRunner().run(
            [PY, "-c", "import sys; sys.stderr.write('no streams'); sys.exit(1)"]
        )

        assert not result.ok
        assert result.stderr == "no streams"

    @pytest.mark.asyncio
    async def test_run_timeout_raises(self) -> None:
        with pytest.raises(SubprocessSpawnError):
            await ProcessRunner().run([PY, "-c", "import time; time.sleep(30)"], timeout=0.2)


class TestDetached:
    @pytest.mark.asyncio
    async def test_detached_spawn_failure_is_swallowed(self) -> None:
        assert await ProcessRunner().spawn_detached(["/nonexistent/vcs", "x.mp4"]) is None

    @pytest.mark.asyncio
    async def test_detached_process_is_reaped(self) -> None:
        runner = ProcessRunner()
        handle = await runner.spawn_detached([PY, "-c", "pass"])

        assert handle is not None
        await handle.wait()
        for task in list(runner._detached):
            await task
        await asyncio.sleep(0)
        assert not runner._detached
