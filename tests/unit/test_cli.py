"""Unit tests for the ``stream-sentinel`` command line."""

from __future__ import annotations

import pytest
import yaml

from stream_sentinel import cli


@pytest.fixture(autouse=True)
def _settings(monkeypatch, settings):
    """Point the CLI at the tmp_path-rooted settings and keep logging quiet."""
    settings.sites = ["twitch", "ifriends"]
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def _updates(settings, site: str) -> dict:
    path = settings.config_dir / f"{site}_updates.yml"
    return yaml.safe_load(path.read_text(encoding="utf-8"))


class TestQueueCommands:
    def test_add_defaults_to_first_site(self, settings, capsys) -> None:
        assert cli.main(["add", "alice"]) == 0

        assert _updates(settings, "twitch") == {"include": ["alice"]}
        assert "queued include: alice (twitch)" in capsys.readouterr().out

    def test_add_temporary(self, settings) -> None:
        assert cli.main(["add", "dave", "--site", "ifriends", "--temporary"]) == 0
        assert _updates(settings, "ifriends") == {"temporary": ["dave"]}

    def test_remove_queues_exclude(self, settings) -> None:
        assert cli.main(["remove", "bob", "--site", "twitch"]) == 0
        assert _updates(settings, "twitch") == {"exclude": ["bob"]}

    def test_unknown_site_exits_1(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["add", "alice", "--site", "nowhere"])

        assert exc_info.value.code == 1
        assert "nowhere" in capsys.readouterr().err


class TestInfoCommands:
    def test_list_prints_watch_list(self, settings, capsys) -> None:
        (settings.config_dir / "twitch.yml").write_text(
            yaml.safe_dump({"streamers": ["alice", "bob"]}), encoding="utf-8"
        )

        assert cli.main(["list"]) == 0
        assert capsys.readouterr().out.splitlines() == ["alice", "bob"]

    def test_list_empty(self, capsys) -> None:
        assert cli.main(["list", "--site", "ifriends"]) == 0
        assert "no streamers" in capsys.readouterr().out

    def test_sites_lists_adapters(self, capsys) -> None:
        assert cli.main(["sites"]) == 0

        out = capsys.readouterr().out
        assert "twitch" in out
        assert "ifriends" in out

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])
