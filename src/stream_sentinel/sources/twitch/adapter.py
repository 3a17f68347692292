"""Twitch source adapter.

Liveness and identity lookups go through the Helix REST API with an app
access token; playable URLs come from ``streamlink --stream-url`` so the
capture tool sees the same variant playlist it would pick itself.

Identities are keyed by lower-cased login name, which is also what the
watch list stores.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from stream_sentinel.core.exceptions import (
    SourceAuthError,
    SourceLookupError,
    SubprocessSpawnError,
)
from stream_sentinel.core.models import StreamerIdentity, StreamerState
from stream_sentinel.sources.base import SourceAdapter, SourceState
from stream_sentinel.sources.registry import register
from stream_sentinel.sources.twitch.config import (
    STREAM_TYPE_LIVE,
    TWITCH_API_BASE,
    TWITCH_CHANNEL_URL,
    TWITCH_TOKEN_URL,
)

logger = logging.getLogger(__name__)


@register
class TwitchAdapter(SourceAdapter):
    """Polls Twitch channels via the Helix REST API.

    Class Attributes:
        platform_name: ``"twitch"``
        supports_hls_session: ``True``
    """

    platform_name: str = "twitch"
    supports_hls_session: bool = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Cached app access token to avoid re-fetching on every request
        self._app_token: str | None = None

    # ------------------------------------------------------------------
    # SourceAdapter implementation
    # ------------------------------------------------------------------

    async def query_state(self, identity: StreamerIdentity) -> SourceState:
        """Return ``STREAMING`` when ``/streams`` lists a live stream.

        Raises:
            SourceLookupError: On request failure or HTTP error.
            SourceAuthError: When the credentials are rejected.
        """
        data = await self._helix_get("/streams", {"user_login": identity.id}, identity.id)
        streams = data.get("data", [])
        live = next((s for s in streams if s.get("type") == STREAM_TYPE_LIVE), None)
        if live is None:
            return SourceState(state=StreamerState.OFFLINE, message="has gone offline.")
        return SourceState(
            state=StreamerState.STREAMING,
            display_name=live.get("user_name") or None,
            message="is streaming!",
        )

    async def resolve_identity(self, name: str) -> StreamerIdentity | None:
        login = name.strip().lower()
        if not login:
            return None
        data = await self._helix_get("/users", {"login": login}, login)
        users = data.get("data", [])
        if not users:
            logger.info("twitch: no user found for login '%s'", login)
            return None
        user = users[0]
        return StreamerIdentity(
            id=str(user.get("login", login)).lower(),
            display_name=str(user.get("display_name") or login),
        )

    def normalize_name(self, name: str) -> str:
        return name.strip().lower()

    def channel_url(self, identity: StreamerIdentity) -> str:
        return TWITCH_CHANNEL_URL.format(login=identity.id)

    async def resolve_playback_url(self, identity: StreamerIdentity) -> str:
        """Ask streamlink for the ``best`` variant's URL.

        Raises:
            SourceLookupError: If streamlink cannot be run or finds no stream.
        """
        argv = [
            self.settings.streamlink_path,
            "--stream-url",
            self.channel_url(identity),
            "best",
        ]
        try:
            result = await self.runner.run(argv)
        except SubprocessSpawnError as exc:
            raise SourceLookupError(str(exc), site=self.platform_name, identity=identity.id) from exc

        url = result.stdout.strip()
        if not result.ok or not url.startswith("http"):
            raise SourceLookupError(
                f"twitch: streamlink could not resolve {identity.display_name}: "
                f"{(result.stderr or result.stdout).strip() or 'no output'}",
                site=self.platform_name,
                identity=identity.id,
            )
        return url

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _credentials(self) -> tuple[str, str]:
        client_id = self.settings.twitch_client_id
        client_secret = self.settings.twitch_client_secret
        if not client_id or not client_secret:
            raise SourceAuthError(
                "twitch: twitch_client_id and twitch_client_secret must be configured",
                site=self.platform_name,
            )
        return client_id, client_secret

    async def _get_app_token(self) -> str:
        """Obtain (and cache) an app access token via Client Credentials.

        Raises:
            SourceAuthError: If the token endpoint rejects the credentials.
            SourceLookupError: On connection failure.
        """
        if self._app_token:
            return self._app_token

        client_id, client_secret = self._credentials()
        try:
            response = await self._client().post(
                TWITCH_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "grant_type": "client_credentials",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceAuthError(
                f"twitch: failed to obtain app access token: HTTP {exc.response.status_code}",
                site=self.platform_name,
            ) from exc
        except httpx.RequestError as exc:
            raise SourceLookupError(
                f"twitch: connection error obtaining app access token: {exc}",
                site=self.platform_name,
            ) from exc

        token = response.json().get("access_token")
        if not token:
            raise SourceAuthError(
                "twitch: token response missing 'access_token' field",
                site=self.platform_name,
            )
        self._app_token = str(token)
        return self._app_token

    async def _helix_get(
        self,
        path: str,
        params: dict[str, str],
        identity: str,
    ) -> dict[str, Any]:
        """GET a Helix endpoint and return the decoded JSON body.

        A 401 drops the cached token so the next call fetches a fresh one.
        """
        client_id, _ = self._credentials()
        token = await self._get_app_token()
        try:
            response = await self._client().get(
                f"{TWITCH_API_BASE}{path}",
                params=params,
                headers={"Client-Id": client_id, "Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as exc:
            raise SourceLookupError(
                f"twitch: request error on {path}: {exc}",
                site=self.platform_name,
                identity=identity,
            ) from exc

        if response.status_code == 401:
            self._app_token = None
            raise SourceAuthError(
                f"twitch: app token rejected on {path}",
                site=self.platform_name,
                identity=identity,
            )
        if response.status_code == 429:
            raise SourceLookupError(
                f"twitch: rate limited on {path}; "
                f"reset={response.headers.get('Ratelimit-Reset', '?')}",
                site=self.platform_name,
                identity=identity,
            )
        if response.status_code >= 400:
            raise SourceLookupError(
                f"twitch: HTTP {response.status_code} from {path}",
                site=self.platform_name,
                identity=identity,
            )
        return response.json()
