"""Abstract base class for all source adapters.

Every supported site is one ``SourceAdapter`` subclass answering three
questions about a streamer: is it live (``query_state``), where can the
stream be played (``resolve_playback_url``), and what is its stable key
(``resolve_identity``).  Adapters hold no lifecycle state; the poller,
supervisor and reconciler compose them rather than inherit from them.

Example usage::

    from stream_sentinel.sources.base import SourceAdapter, SourceState
    from stream_sentinel.sources.registry import register

    @register
    class MyAdapter(SourceAdapter):
        platform_name = "my_site"

        async def query_state(self, identity): ...
        async def resolve_identity(self, name): ...
        def channel_url(self, identity): ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from stream_sentinel.core.exceptions import SourceLookupError, SubprocessSpawnError
from stream_sentinel.core.models import StreamerIdentity, StreamerState
from stream_sentinel.core.process_runner import ProcessRunner

if TYPE_CHECKING:
    from stream_sentinel.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceState:
    """Answer to one liveness query.

    Attributes:
        state: Mapped liveness state.
        display_name: Current display name, when the source reports one.
        message: Transition message suffix overriding the default for
            ``state`` (e.g. ``"'s stream is off."``).
    """

    state: StreamerState
    display_name: str | None = None
    message: str | None = None

    @property
    def is_capturable(self) -> bool:
        return self.state.is_capturable


class SourceAdapter(ABC):
    """Abstract base class for per-site liveness and URL lookups.

    Class Attributes:
        platform_name: Unique registry key and config file stem
            (e.g. ``"twitch"``).
        supports_hls_session: Whether streamlink segmenting flags apply to
            this site's streams.

    Args:
        settings: Runtime settings (credentials, tool paths).
        runner: Process runner used for command-line URL resolution.
        http_client: Optional injected :class:`httpx.AsyncClient` for
            testing.  When ``None`` the adapter builds its own.
    """

    platform_name: str
    supports_hls_session: bool = True

    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.runner = runner or ProcessRunner()
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def site_label(self) -> str:
        return self.platform_name.upper()

    # ------------------------------------------------------------------
    # Abstract interface: must be implemented by every adapter
    # ------------------------------------------------------------------

    @abstractmethod
    async def query_state(self, identity: StreamerIdentity) -> SourceState:
        """Report whether *identity* is live right now.

        Raises:
            SourceLookupError: On network or upstream API failure.  The
                caller leaves the streamer's state unchanged.
        """

    @abstractmethod
    async def resolve_identity(self, name: str) -> StreamerIdentity | None:
        """Map a raw user-supplied name to a stable identity.

        The streamer does not need to be online for this.

        Returns:
            The identity, or ``None`` if the source has no such user.

        Raises:
            SourceLookupError: On network or upstream API failure.
        """

    @abstractmethod
    def channel_url(self, identity: StreamerIdentity) -> str:
        """Public page URL of the streamer's channel."""

    # ------------------------------------------------------------------
    # Concrete helpers: may be overridden
    # ------------------------------------------------------------------

    def normalize_name(self, name: str) -> str:
        """Best-effort id for *name* when the source cannot resolve it.

        Used to drop streamers whose account no longer exists upstream.
        """
        return name.strip()

    async def resolve_playback_url(self, identity: StreamerIdentity) -> str:
        """Resolve a directly playable media URL via ``yt-dlp -g``.

        Raises:
            SourceLookupError: If the tool cannot be started, fails, or
                prints no URL.
        """
        argv = [self.settings.ytdlp_path, "-g", self.channel_url(identity)]
        try:
            result = await self.runner.run(argv)
        except SubprocessSpawnError as exc:
            raise SourceLookupError(
                str(exc), site=self.platform_name, identity=identity.id
            ) from exc

        urls = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not result.ok or not urls:
            detail = result.stderr.strip().splitlines()[-1:] or ["no URL printed"]
            raise SourceLookupError(
                f"{self.platform_name}: could not resolve playback URL for "
                f"{identity.display_name}: {detail[0]}",
                site=self.platform_name,
                identity=identity.id,
            )
        return urls[0]

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = self._build_http_client()
        return self._http_client

    def _build_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=30.0,
            headers={"User-Agent": "StreamSentinel/1.0 (+liveness poller)"},
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        """Release the HTTP client if this adapter created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} platform={getattr(self, 'platform_name', '?')}>"
