"""Merge external include/exclude requests into the registry and watch list.

Reconciliation is idempotent: applying the same include/exclude lists twice
changes nothing on the second pass and reports ``dirty=False``.  Only
changes to the persisted (primary) watch list set the dirty flag; the
temporary list is session-only.
"""

from __future__ import annotations

import asyncio
import logging

from stream_sentinel.core.exceptions import SourceLookupError
from stream_sentinel.core.models import StreamerIdentity
from stream_sentinel.core.notifications import SiteLog
from stream_sentinel.core.streamer_registry import StreamerRegistry
from stream_sentinel.core.watchlist import UpdateRequestFile, WatchList
from stream_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class WatchListReconciler:
    """Applies watch-list changes for one site.

    Args:
        adapter: Source adapter used to resolve raw names to identities.
        registry: The site's streamer registry.
        watchlist: The site's primary and temporary lists.
        site_log: Message sink.
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        registry: StreamerRegistry,
        watchlist: WatchList,
        site_log: SiteLog,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self.watchlist = watchlist
        self.site_log = site_log

    async def load_initial(self) -> int:
        """Create records for every identity in the persisted watch list.

        Returns:
            Number of streamers in the watch list.
        """
        streamers = await self.watchlist.load()
        for streamer_id in streamers:
            self.registry.add(StreamerIdentity(id=streamer_id, display_name=streamer_id))
        self.site_log.msg(f"{len(streamers)} streamer(s) in config")
        return len(streamers)

    async def reconcile(self, include: list[str], exclude: list[str]) -> bool:
        """Add *include* and remove *exclude*, persisting the list if dirty.

        Names are resolved concurrently; a name that fails to resolve is
        logged and skipped without affecting the others.

        Returns:
            True if the primary watch list changed and was rewritten.
        """
        dirty = False
        for name, identity in await self._resolve_all(include):
            dirty |= self._include(name, identity, temporary=False)
        for name, identity in await self._resolve_all(exclude):
            dirty |= await self._exclude(name, identity)

        if dirty:
            await self.watchlist.save()
        return dirty

    async def add_temporary(self, names: list[str]) -> int:
        """Track *names* for this session only.

        Identities already in the primary list are suppressed so the same
        streamer is never polled or captured twice.

        Returns:
            Number of identities added to the temporary list.
        """
        added = 0
        for name, identity in await self._resolve_all(names):
            added += self._include(name, identity, temporary=True)
        return added

    async def process_updates(self, update_file: UpdateRequestFile) -> bool:
        """Consume the update-request file and apply it.

        Returns:
            The dirty flag from :meth:`reconcile`.
        """
        request = await update_file.consume()
        if not request:
            return False
        if request.include:
            self.site_log.msg(f"{len(request.include)} streamer(s) to include")
        if request.exclude:
            self.site_log.msg(f"{len(request.exclude)} streamer(s) to exclude")
        if request.temporary:
            await self.add_temporary(request.temporary)
        return await self.reconcile(request.include, request.exclude)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_all(
        self, names: list[str]
    ) -> list[tuple[str, StreamerIdentity | None]]:
        results = await asyncio.gather(
            *(self.adapter.resolve_identity(name) for name in names),
            return_exceptions=True,
        )
        resolved: list[tuple[str, StreamerIdentity | None]] = []
        for name, result in zip(names, results):
            if isinstance(result, SourceLookupError):
                self.site_log.err_msg(f"{name} lookup problem: {result}")
                continue
            if isinstance(result, BaseException):
                logger.error("reconciler: unexpected error resolving '%s'", name, exc_info=result)
                self.site_log.err_msg(f"{name}: {result}")
                continue
            resolved.append((name, result))
        return resolved

    def _include(self, name: str, identity: StreamerIdentity | None, temporary: bool) -> bool:
        if identity is None or not identity.is_valid:
            self.site_log.err_msg(f"{name} does not exist on {self.adapter.platform_name}")
            return False

        if temporary:
            listed = self.watchlist.add_temporary(identity.id)
        else:
            listed = self.watchlist.add(identity.id)
            if listed:
                self.watchlist.discard_temporary(identity.id)

        if listed:
            suffix = " (temporarily)" if temporary else ""
            self.site_log.msg(f"{identity.display_name} added to capture list{suffix}")
        else:
            self.site_log.err_msg(f"{identity.display_name} is already in the capture list")

        self.registry.add(identity)
        return listed

    async def _exclude(self, name: str, identity: StreamerIdentity | None) -> bool:
        if identity is None:
            streamer_id = self.adapter.normalize_name(name)
            logger.debug("reconciler: '%s' did not resolve, removing by name", name)
        else:
            streamer_id = identity.id

        await self.registry.remove(streamer_id)
        self.watchlist.discard_temporary(streamer_id)
        return self.watchlist.discard(streamer_id)
