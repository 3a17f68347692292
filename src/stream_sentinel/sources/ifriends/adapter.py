"""iFriends source adapter."""

from __future__ import annotations

import logging

import httpx

from stream_sentinel.core.exceptions import SourceLookupError
from stream_sentinel.core.models import StreamerIdentity, StreamerState
from stream_sentinel.sources.base import SourceAdapter, SourceState
from stream_sentinel.sources.ifriends.config import (
    IFRIENDS_CHANNEL_URL,
    IFRIENDS_LIVE_PROBE_URL,
)
from stream_sentinel.sources.registry import register

logger = logging.getLogger(__name__)


@register
class IFriendsAdapter(SourceAdapter):
    """Probes iFriends broadcaster pages over plain HTTP.

    There is no user lookup API; any non-empty name is accepted as its own
    identity.
    """

    platform_name: str = "ifriends"

    async def query_state(self, identity: StreamerIdentity) -> SourceState:
        url = IFRIENDS_LIVE_PROBE_URL.format(name=identity.id)
        try:
            response = await self._client().get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceLookupError(
                f"ifriends: lookup problem for {identity.display_name}: "
                f"HTTP {exc.response.status_code}",
                site=self.platform_name,
                identity=identity.id,
            ) from exc
        except httpx.RequestError as exc:
            raise SourceLookupError(
                f"ifriends: lookup problem for {identity.display_name}: {exc}",
                site=self.platform_name,
                identity=identity.id,
            ) from exc

        if response.text.strip():
            return SourceState(state=StreamerState.OFFLINE)
        return SourceState(state=StreamerState.STREAMING)

    async def resolve_identity(self, name: str) -> StreamerIdentity | None:
        name = name.strip()
        if not name:
            return None
        return StreamerIdentity(id=name, display_name=name)

    def channel_url(self, identity: StreamerIdentity) -> str:
        return IFRIENDS_CHANNEL_URL.format(name=identity.id)
