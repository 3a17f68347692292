"""structlog setup for the capture daemon.

``stream-sentinel run`` calls :func:`configure_logging` before the first
polling cycle.  Engine modules log with ``logging.getLogger(__name__)``;
the coordinator and CLI bind key/value context through structlog.  Both
end up in the same handler on stdout.

While the coordinator drives one site's cycle it sets :data:`site_var`, so
every record emitted by that site's poller, supervisor and adapter carries
a ``site`` field.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

site_var: ContextVar[str | None] = ContextVar("site", default=None)
"""Platform name of the site whose cycle is running, or None between cycles."""

REDACTED = "[REDACTED]"

# Twitch app credentials and the Helix bearer token are the only secrets the
# daemon handles; these fragments match the keys they travel under.
_SECRET_KEY_FRAGMENTS: tuple[str, ...] = (
    "secret",
    "token",
    "authorization",
    "password",
)

# Third-party loggers that are chatty at INFO during every polling cycle.
_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "asyncio")


def _is_secret(key: object) -> bool:
    return isinstance(key, str) and any(f in key.lower() for f in _SECRET_KEY_FRAGMENTS)


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask credential values, including one level of nested mappings (headers)."""
    for key, value in list(event_dict.items()):
        if _is_secret(key):
            event_dict[key] = REDACTED
        elif isinstance(value, MutableMapping):
            for nested in [k for k in value if _is_secret(k)]:
                value[nested] = REDACTED
    return event_dict


def _inject_site(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    site = site_var.get()
    if site is not None:
        event_dict.setdefault("site", site)
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one stdout handler.

    DEBUG renders coloured console lines for watching a session by hand.
    Any other level renders one JSON object per line (``timestamp``,
    ``level``, ``logger``, ``event``, plus ``site`` inside a cycle) for an
    unattended daemon.  Safe to call repeatedly: the root handler is
    replaced, not added to.

    Args:
        log_level: Level name, case-insensitive.  Unknown names fall back
            to INFO.
    """
    level_name = log_level.upper()
    console = level_name == "DEBUG"

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_site,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if console
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not console:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
