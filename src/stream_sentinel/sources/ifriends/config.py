"""URL constants for the iFriends source adapter."""

from __future__ import annotations

IFRIENDS_LIVE_PROBE_URL: str = (
    "https://www.ifriends.net/userurl_membrg/live/"
    "?psource=lbgrid_altlivebutton10_v2&pclub={name}"
)
"""Live-redirect page; an empty body means the broadcaster is streaming."""

IFRIENDS_CHANNEL_URL: str = "https://www.ifriends.net/userurl/{name}"
"""Broadcaster page handed to yt-dlp for playback URL resolution."""
