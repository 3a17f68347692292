"""Unit tests for the source adapter base class and registry.

Tests cover:
- SourceAdapter interface contract (abstract methods, defaults)
- register / get_source / list_sources, overwrite warning
- autodiscover() picks up the shipped adapters
"""

from __future__ import annotations

import logging

import pytest

from stream_sentinel.core.models import StreamerState
from stream_sentinel.sources.base import SourceAdapter, SourceState
from stream_sentinel.sources.registry import (
    _REGISTRY,
    autodiscover,
    get_source,
    list_sources,
    register,
)


def _make_minimal_adapter(name: str = "_test_minimal") -> type[SourceAdapter]:
    """Concrete adapter class; not registered unless a test does so."""

    class _MinimalAdapter(SourceAdapter):
        platform_name = name

        async def query_state(self, identity):  # type: ignore[override]
            return SourceState(StreamerState.OFFLINE)

        async def resolve_identity(self, name):  # type: ignore[override]
            return None

        def channel_url(self, identity):  # type: ignore[override]
            return "https://example.invalid/"

    return _MinimalAdapter


@pytest.fixture
def clean_registry():
    snapshot = dict(_REGISTRY)
    yield
    _REGISTRY.clear()
    _REGISTRY.update(snapshot)


class TestSourceAdapterBase:
    def test_abstract_class_cannot_be_instantiated(self, settings) -> None:
        with pytest.raises(TypeError):
            SourceAdapter(settings)  # type: ignore[abstract]

    def test_defaults(self, settings) -> None:
        adapter = _make_minimal_adapter()(settings)

        assert adapter.site_label == "_TEST_MINIMAL"
        assert adapter.supports_hls_session is True
        assert adapter.normalize_name("  Bob ") == "Bob"
        assert "_test_minimal" in repr(adapter)

    @pytest.mark.asyncio
    async def test_aclose_without_client_is_safe(self, settings) -> None:
        await _make_minimal_adapter()(settings).aclose()

    def test_source_state_capturable_follows_state(self) -> None:
        assert SourceState(StreamerState.PUBLIC_CHAT).is_capturable
        assert not SourceState(StreamerState.GROUP_SHOW).is_capturable


class TestRegistry:
    def test_register_and_retrieve(self, clean_registry) -> None:
        cls = register(_make_minimal_adapter())
        assert get_source("_test_minimal") is cls

    def test_overwrite_logs_warning(self, clean_registry, caplog) -> None:
        register(_make_minimal_adapter())
        with caplog.at_level(logging.WARNING):
            register(_make_minimal_adapter())

        assert "already registered" in caplog.text

    def test_unknown_platform_raises_key_error(self) -> None:
        with pytest.raises(KeyError) as exc_info:
            get_source("no_such_site")

        assert "autodiscover" in str(exc_info.value)

    def test_autodiscover_registers_shipped_adapters(self) -> None:
        autodiscover()

        names = [entry["platform_name"] for entry in list_sources()]
        assert "twitch" in names
        assert "ifriends" in names
        assert get_source("twitch").__name__ == "TwitchAdapter"

    def test_list_sources_is_sorted_with_descriptions(self) -> None:
        autodiscover()
        entries = list_sources()

        assert [e["platform_name"] for e in entries] == sorted(e["platform_name"] for e in entries)
        twitch = next(e for e in entries if e["platform_name"] == "twitch")
        assert twitch["description"]
        assert twitch["adapter_class"].endswith("TwitchAdapter")
