"""Unit tests for the watch-list and update-request YAML files."""

from __future__ import annotations

import pytest
import yaml

from stream_sentinel.core.watchlist import UpdateRequestFile, WatchList


class TestWatchList:
    @pytest.mark.asyncio
    async def test_load_normalises_scalar_and_numbers(self, settings) -> None:
        path = settings.config_dir / "fake.yml"
        path.write_text("streamers: 12345\n", encoding="utf-8")

        assert await WatchList(path).load() == ["12345"]

    @pytest.mark.asyncio
    async def test_empty_document_loads_empty(self, settings) -> None:
        path = settings.config_dir / "fake.yml"
        path.write_text("", encoding="utf-8")

        assert await WatchList(path).load() == []

    @pytest.mark.asyncio
    async def test_save_round_trips_extra_keys(self, settings) -> None:
        path = settings.config_dir / "fake.yml"
        path.write_text("username: me\nstreamers:\n- alice\n", encoding="utf-8")
        watchlist = WatchList(path)
        await watchlist.load()

        watchlist.add("bob")
        await watchlist.save()

        assert yaml.safe_load(path.read_text(encoding="utf-8")) == {
            "username": "me",
            "streamers": ["alice", "bob"],
        }

    def test_tracked_ids_primary_first_without_duplicates(self, settings) -> None:
        watchlist = WatchList(settings.config_dir / "fake.yml")
        watchlist.add("alice")
        watchlist.add_temporary("dave")
        watchlist.temporary.append("alice")

        assert watchlist.tracked_ids() == ["alice", "dave"]

    def test_add_temporary_refuses_primary(self, settings) -> None:
        watchlist = WatchList(settings.config_dir / "fake.yml")
        watchlist.add("alice")

        assert watchlist.add_temporary("alice") is False
        assert watchlist.add_temporary("dave") is True
        assert watchlist.add_temporary("dave") is False


class TestUpdateRequestFile:
    @pytest.mark.asyncio
    async def test_idle_file_is_not_rewritten(self, settings) -> None:
        path = settings.config_dir / "fake_updates.yml"
        path.write_text("# pending requests\ninclude: []\nexclude: []\n", encoding="utf-8")

        request = await UpdateRequestFile(path).consume()

        assert not request
        assert path.read_text(encoding="utf-8").startswith("# pending requests")

    @pytest.mark.asyncio
    async def test_append_creates_file_once_per_name(self, settings) -> None:
        update_file = UpdateRequestFile(settings.config_dir / "fake_updates.yml")

        await update_file.append("include", "alice")
        await update_file.append("include", "alice")
        await update_file.append("temporary", "dave")

        request = await update_file.consume()
        assert request.include == ["alice"]
        assert request.temporary == ["dave"]
        assert request.exclude == []

    @pytest.mark.asyncio
    async def test_append_rejects_unknown_key(self, settings) -> None:
        with pytest.raises(ValueError):
            await UpdateRequestFile(settings.config_dir / "x.yml").append("maybe", "alice")
