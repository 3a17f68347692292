"""Persisted watch list and the update-request file for one site.

Two YAML documents live in ``Settings.config_dir`` per site:

``<site>.yml``
    Site configuration.  Its ``streamers`` sequence is the primary watch
    list; every other key is site-specific and preserved verbatim when the
    document is rewritten.

``<site>_updates.yml``
    Pending requests with ``include``, ``exclude`` and (optionally)
    ``temporary`` sequences of raw names.  Consumed once per cycle, then
    reset to empty sequences.

The temporary list is session-only and never written to disk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import yaml

logger = logging.getLogger(__name__)


async def _read_yaml(path: Path) -> dict[str, Any] | None:
    """Return the mapping stored at *path*, or ``None`` if it does not exist."""
    if not await aiofiles.os.path.isfile(path):
        return None
    async with aiofiles.open(path, "r", encoding="utf-8") as fh:
        text = await fh.read()
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


async def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    async with aiofiles.open(path, "w", encoding="utf-8") as fh:
        await fh.write(text)


def _as_names(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, (str, int)):
        value = [value]
    return [str(item) for item in value if item is not None and str(item)]


class WatchList:
    """Primary (persisted) and temporary (session-only) identity lists.

    Args:
        path: Location of the ``<site>.yml`` document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.document: dict[str, Any] = {"streamers": []}
        self.temporary: list[str] = []

    @property
    def streamers(self) -> list[str]:
        return self.document["streamers"]

    async def load(self) -> list[str]:
        """Read the site document; a missing file yields an empty list.

        Returns:
            The primary watch list.
        """
        data = await _read_yaml(self.path)
        if data is None:
            logger.info("watchlist: %s does not exist, starting empty", self.path)
            data = {}
        data["streamers"] = _as_names(data.get("streamers"))
        self.document = data
        return self.streamers

    async def save(self) -> None:
        logger.debug("watchlist: rewriting %s", self.path)
        await _write_yaml(self.path, self.document)

    def __contains__(self, streamer_id: object) -> bool:
        return streamer_id in self.document["streamers"]

    def add(self, streamer_id: str) -> bool:
        if streamer_id in self:
            return False
        self.streamers.append(streamer_id)
        return True

    def discard(self, streamer_id: str) -> bool:
        if streamer_id not in self:
            return False
        self.streamers.remove(streamer_id)
        return True

    def add_temporary(self, streamer_id: str) -> bool:
        """Add to the session-only list unless already tracked anywhere."""
        if streamer_id in self or streamer_id in self.temporary:
            return False
        self.temporary.append(streamer_id)
        return True

    def discard_temporary(self, streamer_id: str) -> bool:
        if streamer_id not in self.temporary:
            return False
        self.temporary.remove(streamer_id)
        return True

    def tracked_ids(self) -> list[str]:
        """Primary ids followed by temporary ids not already primary."""
        primary = list(self.streamers)
        return primary + [sid for sid in self.temporary if sid not in primary]


@dataclass
class UpdateRequest:
    """Names pulled from one read of the update-request file."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    temporary: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.include or self.exclude or self.temporary)


class UpdateRequestFile:
    """The ``<site>_updates.yml`` request document.

    Args:
        path: Location of the request file.
    """

    KEYS = ("include", "exclude", "temporary")

    def __init__(self, path: Path) -> None:
        self.path = path

    async def consume(self) -> UpdateRequest:
        """Read pending requests and reset the file.

        The file is rewritten with empty sequences only when something was
        pending, so an idle file is never touched.  A missing file is
        treated as "no requests".
        """
        data = await _read_yaml(self.path)
        if data is None:
            logger.debug("watchlist: %s does not exist", self.path)
            return UpdateRequest()

        request = UpdateRequest(**{key: _as_names(data.get(key)) for key in self.KEYS})
        if request:
            for key in self.KEYS:
                data[key] = []
            await _write_yaml(self.path, data)
        return request

    async def append(self, key: str, name: str) -> None:
        """Queue *name* under *key*; used by the command line."""
        if key not in self.KEYS:
            raise ValueError(f"unknown update key '{key}', expected one of {self.KEYS}")
        data = await _read_yaml(self.path) or {}
        names = _as_names(data.get(key))
        if name not in names:
            names.append(name)
        data[key] = names
        await _write_yaml(self.path, data)
