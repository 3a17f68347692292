"""Per-cycle liveness polling and the per-streamer state machine.

Each cycle queries the source adapter for every tracked identity
concurrently (fan-out/fan-in).  A failed lookup leaves that streamer's
state untouched and never affects the others.  A transition message is
emitted only when the state actually changes.  Whenever a streamer is seen
in a non-capturable state while an unguarded capture is running, the
capture is halted: some sources never signal end-of-stream to the capture
tool.
"""

from __future__ import annotations

import asyncio
import logging

from stream_sentinel.core.exceptions import SourceLookupError
from stream_sentinel.core.models import STATE_MESSAGES, StreamerIdentity
from stream_sentinel.core.notifications import SiteLog
from stream_sentinel.core.streamer_registry import StreamerRegistry
from stream_sentinel.core.watchlist import WatchList
from stream_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class LivenessPoller:
    """Feeds source-adapter answers into the registry for one site.

    Args:
        adapter: Source adapter to query.
        registry: The site's streamer registry.
        watchlist: Supplies the ids to poll (primary, then temporary).
        site_log: Message sink.
        exiting: Set once shutdown starts; suppresses new cycles and
            refreshes.
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        registry: StreamerRegistry,
        watchlist: WatchList,
        site_log: SiteLog,
        exiting: asyncio.Event,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self.watchlist = watchlist
        self.site_log = site_log
        self.exiting = exiting

    async def poll_cycle(self) -> list[str]:
        """Query every tracked streamer once.

        Returns:
            Ids observed in a capturable state this cycle, in watch-list
            order.  Empty while exiting.
        """
        if self.exiting.is_set():
            self.site_log.dbg_msg("Skipping lookup while exit in progress...")
            return []

        streamer_ids = self.watchlist.tracked_ids()
        results = await asyncio.gather(
            *(self.check_streamer_state(sid) for sid in streamer_ids),
            return_exceptions=True,
        )

        to_capture: list[str] = []
        for streamer_id, result in zip(streamer_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "poller: unexpected error polling %s", streamer_id, exc_info=result
                )
                self.site_log.err_msg(f"{streamer_id}: {result}")
            elif result:
                to_capture.append(streamer_id)
        return to_capture

    async def check_streamer_state(self, streamer_id: str, create: bool = True) -> bool:
        """Poll one streamer and apply the observed state.

        Args:
            streamer_id: Id to query.
            create: Create the record if it is missing after the lookup.
                Only done while the id is still on the watch list, so an
                exclusion that lands during the query is never undone.

        Returns:
            True if the streamer is capturable right now.  False on a
            lookup failure, which leaves the recorded state unchanged.
        """
        record = self.registry.get(streamer_id)
        identity = StreamerIdentity(
            id=streamer_id,
            display_name=record.display_name if record else streamer_id,
        )

        try:
            observed = await self.adapter.query_state(identity)
        except SourceLookupError as exc:
            self.site_log.err_msg(f"{identity.display_name} lookup problem: {exc}")
            return False

        async with self.registry.lock(streamer_id):
            record = self.registry.get(streamer_id)
            if record is None:
                if not create or streamer_id not in self.watchlist.tracked_ids():
                    logger.debug("poller: %s removed during lookup", streamer_id)
                    return False
                # First mention of this identity comes from the poll itself.
                self.registry.add(identity)
                record = self.registry.get(streamer_id)
                if record is None:
                    return False

            if observed.display_name:
                record.display_name = observed.display_name

            previous = record.state
            record.state = observed.state
            if record.state != previous:
                message = observed.message or STATE_MESSAGES[observed.state]
                self.site_log.msg(f"{record.display_name} {message}")

            if not observed.is_capturable and record.can_halt:
                tool = "streamlink" if self.adapter.settings.streamlink else "ffmpeg"
                self.site_log.dbg_msg(
                    f"{record.display_name} is no longer broadcasting, "
                    f"ending {tool} capture process."
                )
                self.registry.halt_capture(streamer_id)

        self.site_log.render()
        return observed.is_capturable

    async def refresh(self, streamer_id: str) -> None:
        """Re-poll one streamer right away, e.g. after its capture exits."""
        if self.exiting.is_set() or streamer_id not in self.registry:
            return
        await self.check_streamer_state(streamer_id, create=False)
