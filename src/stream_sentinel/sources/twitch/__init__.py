"""Twitch source package.

Polls channel liveness through the Twitch Helix REST API.

- ``query_state``: ``GET /streams?user_login=<login>``; a returned stream
  of type ``live`` means the channel is capturable.
- ``resolve_identity``: ``GET /users?login=<name>``; unknown logins resolve
  to ``None``.
- ``resolve_playback_url``: ``streamlink --stream-url``.

Credentials: ``twitch_client_id`` and ``twitch_client_secret`` settings.
The app access token (Client Credentials grant) is obtained on demand.
"""
