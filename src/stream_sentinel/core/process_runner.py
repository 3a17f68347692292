"""Spawn, signal and await external capture/convert processes.

All subprocesses run as independent OS processes supervised through
``asyncio``; their completion is delivered by awaiting
:meth:`ProcessHandle.wait`, never by polling.

Example usage::

    runner = ProcessRunner()
    handle = await runner.spawn(["streamlink", "-o", "out.ts", url, "best"])
    returncode = await handle.wait()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path

from stream_sentinel.core.exceptions import SubprocessSpawnError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a short-lived command run to completion.

    Attributes:
        returncode: Exit status of the command.
        stdout: Decoded standard output.
        stderr: Decoded standard error.
    """

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessHandle:
    """Exclusive handle on one running subprocess.

    Args:
        process: The underlying asyncio process.
        argv: Argument list the process was started with.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: list[str]) -> None:
        self._process = process
        self.argv = argv

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def running(self) -> bool:
        return self._process.returncode is None

    def terminate(self, sig: int = signal.SIGINT) -> bool:
        """Send *sig* (default ``SIGINT``) to the process.

        SIGINT lets streamlink and ffmpeg finalise the container before
        exiting.

        Returns:
            True if the signal was delivered, False if the process had
            already exited.
        """
        if not self.running:
            return False
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            return False
        return True

    def kill(self) -> None:
        if self.running:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass

    async def wait(self) -> int:
        return await self._process.wait()

    def __repr__(self) -> str:
        program = self.argv[0] if self.argv else "?"
        return f"<ProcessHandle {program} pid={self.pid} returncode={self.returncode}>"


class ProcessRunner:
    """Factory for supervised subprocesses.

    Fire-and-forget processes started with :meth:`spawn_detached` are
    reaped by background tasks held in ``_detached`` so they never
    linger as zombies.
    """

    def __init__(self) -> None:
        self._detached: set[asyncio.Task[None]] = set()

    async def spawn(
        self,
        argv: list[str],
        log_path: Path | None = None,
    ) -> ProcessHandle:
        """Start *argv* and return a handle to it.

        Args:
            argv: Program followed by its arguments.
            log_path: When given, stdout and stderr are written to this
                file; otherwise both are discarded.

        Returns:
            Handle on the running process.

        Raises:
            SubprocessSpawnError: If the program cannot be started (missing
                binary, permission denied, ...).
        """
        if not argv:
            raise SubprocessSpawnError("refusing to spawn an empty argument list")

        log_file = None
        try:
            if log_path is not None:
                log_file = open(log_path, "wb")  # noqa: SIM115
            sink = log_file if log_file is not None else asyncio.subprocess.DEVNULL
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=sink,
                stderr=sink,
            )
        except OSError as exc:
            raise SubprocessSpawnError(
                f"failed to start {argv[0]}: {exc}", argv=argv
            ) from exc
        finally:
            # The child holds its own descriptor.
            if log_file is not None:
                log_file.close()

        logger.debug("process_runner: started %s pid=%d", argv[0], process.pid)
        return ProcessHandle(process, list(argv))

    async def spawn_detached(self, argv: list[str]) -> ProcessHandle | None:
        """Start *argv* without tracking its outcome.

        Spawn failures are logged and swallowed; the exit status is only
        logged at DEBUG.

        Returns:
            The handle, or ``None`` if the process could not be started.
        """
        try:
            handle = await self.spawn(argv)
        except SubprocessSpawnError as exc:
            logger.warning("process_runner: detached command failed to start: %s", exc)
            return None

        task = asyncio.create_task(self._reap(handle))
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)
        return handle

    async def run(self, argv: list[str], timeout: float = 30.0) -> CommandResult:
        """Run *argv* to completion and capture its output.

        Args:
            argv: Program followed by its arguments.
            timeout: Seconds to wait before killing the command.

        Returns:
            The command's exit status and decoded output.

        Raises:
            SubprocessSpawnError: If the program cannot be started or does
                not finish within *timeout*.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SubprocessSpawnError(
                f"failed to start {argv[0]}: {exc}", argv=argv
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise SubprocessSpawnError(
                f"{argv[0]} did not finish within {timeout:.0f}s", argv=argv
            ) from exc

        return CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    async def _reap(self, handle: ProcessHandle) -> None:
        returncode = await handle.wait()
        logger.debug(
            "process_runner: detached %s pid=%d exited with %d",
            handle.argv[0],
            handle.pid,
            returncode,
        )
