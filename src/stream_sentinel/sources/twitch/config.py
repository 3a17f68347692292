"""API constants for the Twitch source adapter."""

from __future__ import annotations

TWITCH_API_BASE: str = "https://api.twitch.tv/helix"
"""Base URL for the Twitch Helix REST API."""

TWITCH_TOKEN_URL: str = "https://id.twitch.tv/oauth2/token"
"""OAuth 2.0 token endpoint for the Client Credentials grant."""

TWITCH_CHANNEL_URL: str = "https://twitch.tv/{login}"
"""Public channel page, handed to streamlink for URL resolution."""

STREAM_TYPE_LIVE: str = "live"
"""``type`` value of a live entry in the ``/streams`` response."""
