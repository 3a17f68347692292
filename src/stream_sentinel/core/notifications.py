"""Notification sink for human-readable lifecycle events.

The engine reports every state change, error and capture lifecycle event
through a :class:`NotificationSink`.  A terminal UI would implement the
sink to append lines to a log pane and redraw its streamer table; the
default :class:`LoggingSink` writes the lines through the logging stack.

Sinks are fire-and-forget: :class:`SiteLog` catches anything a sink raises
so a broken display can never interrupt capture supervision.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

logger = logging.getLogger(__name__)

_events_logger = logging.getLogger("stream_sentinel.events")

SITE_LABEL_WIDTH = 9


class NotificationSink(ABC):
    """Receiver of log lines and redraw requests."""

    @abstractmethod
    def log(self, line: str) -> None:
        """Append one human-readable line."""

    @abstractmethod
    def render(self) -> None:
        """Request a redraw of any status display."""


class LoggingSink(NotificationSink):
    """Default sink: forwards lines to the ``stream_sentinel.events`` logger.

    ``render()`` has no display to redraw; it only counts requests, which
    tests and status output can inspect.
    """

    def __init__(self) -> None:
        self.render_count = 0

    def log(self, line: str) -> None:
        _events_logger.info(line)

    def render(self) -> None:
        self.render_count += 1


class SiteLog:
    """Per-site message formatting on top of a :class:`NotificationSink`.

    Lines are prefixed with ``[<timestamp>] <SITE padded>``; errors add an
    ``[ERROR]`` tag and debug lines are emitted only when *debug* is set.

    Args:
        sink: Destination of formatted lines.
        site_label: Upper-case site label (e.g. ``"TWITCH"``).
        date_format: ``strftime`` pattern for the timestamp prefix.
        debug: Whether :meth:`dbg_msg` lines are emitted.
    """

    def __init__(
        self,
        sink: NotificationSink,
        site_label: str,
        date_format: str = "%Y%m%d-%H%M%S",
        debug: bool = False,
    ) -> None:
        self.sink = sink
        self.site_label = site_label
        self.pad_name = site_label.ljust(SITE_LABEL_WIDTH)
        self.date_format = date_format
        self.debug = debug

    def msg(self, text: str) -> None:
        stamp = datetime.now().strftime(self.date_format)
        self._emit(f"[{stamp}] {self.pad_name}{text}")

    def err_msg(self, text: str) -> None:
        self.msg(f"[ERROR] {text}")

    def dbg_msg(self, text: str) -> None:
        if self.debug:
            self.msg(f"[DEBUG] {text}")

    def render(self) -> None:
        try:
            self.sink.render()
        except Exception as exc:  # noqa: BLE001
            logger.warning("notifications: sink render failed: %s", exc)

    def _emit(self, line: str) -> None:
        try:
            self.sink.log(line)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notifications: sink log failed: %s", exc)
