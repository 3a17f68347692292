"""Source registry for dynamic discovery and registration of adapters.

Adapters register themselves on import using the ``@register`` decorator.
The registry is a module-level singleton that maps ``platform_name`` strings
to ``SourceAdapter`` subclasses.

Example, looking up an adapter::

    from stream_sentinel.sources.registry import autodiscover, get_source

    autodiscover()
    adapter = get_source("twitch")(settings)
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stream_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

# Registry singleton: platform_name -> SourceAdapter subclass
_REGISTRY: dict[str, type[SourceAdapter]] = {}

SOURCE_DESCRIPTIONS: dict[str, str] = {
    "twitch": "Twitch live channels via the Helix API",
    "ifriends": "iFriends broadcaster pages probed over HTTP",
}


def register(cls: type[SourceAdapter]) -> type[SourceAdapter]:
    """Decorator that registers a ``SourceAdapter`` subclass.

    If an adapter with the same ``platform_name`` is already registered,
    the new registration overwrites it and a warning is emitted.

    Args:
        cls: ``SourceAdapter`` subclass to register.

    Returns:
        The same class (decorator pass-through).

    Raises:
        AttributeError: If ``cls`` does not define ``platform_name``.
    """
    platform_name: str = cls.platform_name  # type: ignore[attr-defined]
    if platform_name in _REGISTRY:
        logger.warning(
            "Source '%s' is already registered (was %s). Overwriting with %s.",
            platform_name,
            _REGISTRY[platform_name].__qualname__,
            cls.__qualname__,
        )
    _REGISTRY[platform_name] = cls
    logger.debug("Registered source adapter: platform=%s class=%s", platform_name, cls.__qualname__)
    return cls


def get_source(platform_name: str) -> type[SourceAdapter]:
    """Retrieve a registered adapter class by platform name.

    Raises:
        KeyError: If no adapter with the given platform name is registered.
            Call ``autodiscover()`` before the first lookup.
    """
    try:
        return _REGISTRY[platform_name]
    except KeyError:
        registered = sorted(_REGISTRY.keys())
        raise KeyError(
            f"No source adapter registered for platform '{platform_name}'. "
            f"Registered platforms: {registered}. "
            "Did you forget to call autodiscover()?"
        ) from None


def list_sources() -> list[dict[str, str]]:
    """Return metadata for all registered adapters, ordered by platform name."""
    return [
        {
            "platform_name": cls.platform_name,  # type: ignore[attr-defined]
            "description": SOURCE_DESCRIPTIONS.get(cls.platform_name, ""),  # type: ignore[attr-defined]
            "adapter_class": f"{cls.__module__}.{cls.__qualname__}",
        }
        for cls in sorted(_REGISTRY.values(), key=lambda c: c.platform_name)  # type: ignore[attr-defined]
    ]


def autodiscover() -> None:
    """Import every ``stream_sentinel.sources.*.adapter`` module.

    Idempotent.  A module that fails to import is logged and skipped so the
    remaining sites still load.
    """
    import stream_sentinel.sources as sources_pkg

    for _finder, module_name, _is_pkg in pkgutil.walk_packages(
        path=sources_pkg.__path__, prefix=sources_pkg.__name__ + "."
    ):
        if module_name.endswith(".adapter"):
            try:
                importlib.import_module(module_name)
                logger.debug("Autodiscovered source module: %s", module_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Failed to import source adapter module '%s': %s",
                    module_name,
                    exc,
                    exc_info=True,
                )
