"""Authoritative mapping of streamer id to :class:`StreamerRecord` for one site.

The registry is the single source of truth mutated by the poller, the
capture supervisor and the watch-list reconciler.  Any mutation that spans
an ``await`` must run inside ``async with registry.lock(streamer_id)`` so a
liveness transition and a capture-exit handler never interleave on the same
record.  Different ids are never ordered relative to each other.

Example usage::

    registry = StreamerRegistry("twitch", site_log)
    registry.add(StreamerIdentity(id="shroud", display_name="shroud"))

    async with registry.lock("shroud"):
        record = registry.get("shroud")
        ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator

from stream_sentinel.core.models import StreamerIdentity, StreamerRecord
from stream_sentinel.core.notifications import SiteLog

logger = logging.getLogger(__name__)


class StreamerRegistry:
    """Owns record creation, removal and per-id serialization for one site.

    Args:
        site: Platform name stored on every record.
        site_log: Message sink for lifecycle lines and redraw requests.
    """

    def __init__(self, site: str, site_log: SiteLog) -> None:
        self.site = site
        self.site_log = site_log
        self._records: dict[str, StreamerRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, streamer_id: str) -> StreamerRecord | None:
        return self._records.get(streamer_id)

    def __contains__(self, streamer_id: object) -> bool:
        return streamer_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[StreamerRecord]:
        # Snapshot so callers may add/remove while iterating.
        return iter(list(self._records.values()))

    def ids(self) -> list[str]:
        return list(self._records)

    def for_each(self, fn: Callable[[StreamerRecord], None]) -> None:
        for record in self:
            fn(record)

    def count_capturing(self) -> int:
        """Number of records holding a capture or conversion handle."""
        return sum(1 for record in self._records.values() if record.is_capturing)

    def lock(self, streamer_id: str) -> asyncio.Lock:
        """Return the lock serializing mutations of *streamer_id*.

        Locks outlive their records so a re-added id keeps the same lock,
        and a coroutine already waiting on it is never split from one
        created later.  The map holds one entry per id this site has ever
        tracked, which is bounded by the watch list plus the session's
        temporary and excluded names.
        """
        lock = self._locks.get(streamer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[streamer_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, identity: StreamerIdentity | None) -> bool:
        """Create an ``Offline`` record for *identity*.

        Returns:
            True if a record was created; False if *identity* is missing or
            malformed (no id) or already tracked.
        """
        if identity is None or not identity.is_valid:
            logger.debug("registry[%s]: ignoring malformed identity %r", self.site, identity)
            return False
        if identity.id in self._records:
            return False

        self._records[identity.id] = StreamerRecord(
            id=identity.id,
            display_name=identity.display_name or identity.id,
            site=self.site,
        )
        self.site_log.render()
        return True

    async def remove(self, streamer_id: str) -> bool:
        """Halt any capture for *streamer_id*, then forget the record.

        Returns:
            True if the record existed and was removed.  An absent id is
            reported through the site log and returns False.
        """
        async with self.lock(streamer_id):
            record = self._records.get(streamer_id)
            if record is None:
                self.site_log.err_msg(f"{streamer_id} not in capture list.")
                return False

            self.site_log.msg(f"{record.display_name} removed from capture list.")
            self.halt_capture(streamer_id)
            del self._records[streamer_id]
        self.site_log.render()
        return True

    def halt_capture(self, streamer_id: str) -> bool:
        """Send SIGINT to the record's capture unless it is post-processing.

        Returns:
            True if a termination signal was delivered.
        """
        record = self._records.get(streamer_id)
        if record is None or record.capture_handle is None or record.post_processing:
            return False
        return record.capture_handle.terminate()

    def halt_all(self) -> int:
        """Apply :meth:`halt_capture` to every record.

        Returns:
            Number of captures signalled.
        """
        return sum(1 for streamer_id in self.ids() if self.halt_capture(streamer_id))
