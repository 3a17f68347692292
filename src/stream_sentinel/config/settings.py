"""Application settings loaded from init kwargs, the environment and YAML.

Uses Pydantic Settings v2 for validated, type-safe configuration.
Configuration is accessed exclusively through this module; never call
``os.getenv`` directly elsewhere in the codebase.

Source precedence (highest first): constructor kwargs, ``STREAM_SENTINEL_*``
environment variables, a ``.env`` file, then ``config.yml``.

Usage::

    from stream_sentinel.config.settings import get_settings

    settings = get_settings()
    capture_dir = settings.capture_directory
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONVERTIBLE_TYPES: frozenset[str] = frozenset({"mp4", "mkv"})
"""Container formats the post-processor converts to.  Any other
``auto_convert_type`` keeps the raw ``.ts`` capture as-is."""

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

RAW_EXTENSION: str = "ts"
"""Container written by the capture tools."""


class Settings(BaseSettings):
    """Runtime configuration for the capture engine.

    All fields have defaults so the application starts with an empty
    environment; the Twitch credentials are only required when the
    ``twitch`` site is enabled.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAM_SENTINEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yml",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    config_dir: Path = Path("config")
    """Directory holding ``<site>.yml`` watch lists and ``<site>_updates.yml``
    request files."""

    capture_directory: Path = Path("captures")
    """Where capture tools write raw ``.ts`` recordings while live."""

    complete_directory: Path = Path("complete")
    """Destination of converted (or moved) recordings."""

    streamer_subdir: bool = False
    """Place finished recordings in a per-streamer subdirectory."""

    include_site_in_dir: bool = False
    """Suffix the per-streamer subdirectory with ``_<site>``."""

    include_site_in_file: bool = False
    """Insert the site name into recording filenames."""

    date_format: str = "%Y%m%d-%H%M%S"
    """``strftime`` pattern used for the timestamp part of filenames."""

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    sites: list[str] = ["twitch"]
    """Platform names of the source adapters to run."""

    scan_interval: float = 60.0
    """Seconds between polling cycles."""

    # ------------------------------------------------------------------
    # Recording limits
    # ------------------------------------------------------------------

    min_byte_size: int = 0
    """Recordings smaller than this are deleted after the capture exits."""

    max_byte_size: int = 0
    """Captures whose file reaches this size are halted.  ``0`` disables
    the file-size watchdog."""

    # ------------------------------------------------------------------
    # Capture and conversion tooling
    # ------------------------------------------------------------------

    streamlink: bool = True
    """Capture with streamlink.  When False, ffmpeg pulls the HLS stream."""

    streamlink_segment_args: list[str] = [
        "--hlssession-time",
        "00:05:00",
        "--hlssession-segment",
    ]
    """Segmenting flags appended to streamlink captures for sources that
    support HLS sessions."""

    auto_convert_type: str = "mp4"
    """Target container: ``mp4``, ``mkv`` or ``ts`` (no conversion)."""

    keep_ts_file: bool = False
    """Keep the raw ``.ts`` after a successful conversion."""

    generate_thumbnails: bool = True
    """Run the contact-sheet command against converted recordings."""

    ffmpeg_path: str = "ffmpeg"
    streamlink_path: str = "streamlink"
    ytdlp_path: str = "yt-dlp"
    thumbnail_path: str = "vcs"

    debug: bool = False
    """Emit ``[DEBUG]`` lines to the notification sink."""

    debug_recorder: bool = False
    """Verbose capture tool output, written to ``<filename>.log``."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    # ------------------------------------------------------------------
    # Source credentials
    # ------------------------------------------------------------------

    twitch_client_id: Optional[str] = None
    """Twitch application Client ID for the Helix API."""

    twitch_client_secret: Optional[str] = None
    """Twitch application secret used for the client-credentials grant."""

    @field_validator("auto_convert_type")
    @classmethod
    def _normalise_convert_type(cls, value: str) -> str:
        return value.strip().lower().lstrip(".")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}"
            )
        return level

    @property
    def converts(self) -> bool:
        """True when finished recordings are remuxed to another container."""
        return self.auto_convert_type in CONVERTIBLE_TYPES

    @property
    def capture_tool(self) -> str:
        return self.streamlink_path if self.streamlink else self.ffmpeg_path

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide :class:`Settings` instance.

    Cached so the YAML file and environment are read once.  Tests that
    patch the environment should call ``get_settings.cache_clear()``.
    """
    return Settings()
