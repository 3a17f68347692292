"""Application-wide exception hierarchy for Stream Sentinel.

All custom exceptions subclass ``StreamSentinelError``, enabling
consistent error handling and structured logging across the application.
None of these is fatal to the process: each failure is isolated to the
streamer that owns it and the poller retries on the next cycle.

Hierarchy::

    StreamSentinelError
    ├── SourceLookupError        (site, identity)
    │   └── SourceAuthError
    ├── SubprocessSpawnError     (argv)
    ├── ConversionError          (returncode)
    └── MissingOutputFileError   (path)
"""

from __future__ import annotations

from pathlib import Path


class StreamSentinelError(Exception):
    """Base class for all Stream Sentinel exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Source exceptions
# ---------------------------------------------------------------------------


class SourceLookupError(StreamSentinelError):
    """Raised when a source adapter cannot answer a liveness or URL query.

    The streamer's recorded state is left unchanged and the lookup is
    retried on the next polling cycle.

    Args:
        message: Human-readable description of the failure.
        site: Platform name of the adapter that failed (e.g. ``"twitch"``).
        identity: Streamer id or raw name the lookup was issued for.
    """

    def __init__(
        self,
        message: str,
        site: str | None = None,
        identity: str | None = None,
    ) -> None:
        super().__init__(message)
        self.site = site
        self.identity = identity


class SourceAuthError(SourceLookupError):
    """Raised when the upstream API rejects the adapter's credentials."""


# ---------------------------------------------------------------------------
# Subprocess exceptions
# ---------------------------------------------------------------------------


class SubprocessSpawnError(StreamSentinelError):
    """Raised when an external command could not be started.

    Args:
        message: Description of the spawn failure.
        argv: The full argument list that was attempted.
    """

    def __init__(self, message: str, argv: list[str] | None = None) -> None:
        super().__init__(message)
        self.argv = list(argv or [])


class ConversionError(StreamSentinelError):
    """Raised when the container conversion command exits unsuccessfully.

    Args:
        message: Description of the failure.
        returncode: Exit status reported by the conversion process.
    """

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class MissingOutputFileError(StreamSentinelError):
    """Raised when a finished capture left no output file behind.

    Args:
        path: The path the capture tool was told to write.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"{path} not found in capturing directory")
        self.path = Path(path)
