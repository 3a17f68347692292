"""Configuration package for Stream Sentinel.

Re-exports the most commonly used configuration symbols so that
callers can write::

    from stream_sentinel.config import Settings, get_settings
"""

from __future__ import annotations

from stream_sentinel.config.settings import (
    CONVERTIBLE_TYPES,
    RAW_EXTENSION,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "CONVERTIBLE_TYPES",
    "RAW_EXTENSION",
]
