"""Unit tests for CaptureArgBuilder.

Tests cover:
- filename composition (site insertion, date format)
- streamlink and ffmpeg capture commands, HLS-session flags, debug mode
- conversion and thumbnail commands
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from stream_sentinel.core.capture_args import CaptureArgBuilder

URL = "https://cdn.example/live.m3u8"
WHEN = datetime(2024, 3, 1, 18, 30, 5)


class TestFilenames:
    def test_default_filename(self, settings) -> None:
        builder = CaptureArgBuilder(settings, "twitch")
        assert builder.make_filename("Alice", now=WHEN) == "Alice_20240301-183005"

    def test_site_in_filename(self, settings) -> None:
        settings.include_site_in_file = True
        builder = CaptureArgBuilder(settings, "twitch")
        assert builder.make_filename("Alice", now=WHEN) == "Alice_twitch_20240301-183005"

    def test_capture_path_uses_ts_in_capture_directory(self, settings) -> None:
        builder = CaptureArgBuilder(settings, "twitch")
        assert builder.capture_path("x") == settings.capture_directory / "x.ts"

    def test_recorder_log_only_in_debug_recorder_mode(self, settings) -> None:
        builder = CaptureArgBuilder(settings, "twitch")
        assert builder.recorder_log_path("x") is None

        settings.debug_recorder = True
        assert builder.recorder_log_path("x") == Path("x.log")


class TestCaptureArgs:
    def test_streamlink_with_hls_session(self, settings) -> None:
        builder = CaptureArgBuilder(settings, "twitch")

        argv = builder.build_capture_args(URL, "x")

        assert argv[:5] == ["streamlink", "-o", str(settings.capture_directory / "x.ts"), URL, "best"]
        assert argv[5:8] == ["--hlssession-time", "00:05:00", "--hlssession-segment"]
        assert argv[-1] == "-Q"

    def test_streamlink_without_hls_session(self, settings) -> None:
        builder = CaptureArgBuilder(settings, "ifriends")

        argv = builder.build_capture_args(URL, "x", hls_session=False)

        assert "--hlssession-segment" not in argv

    def test_streamlink_debug_recorder(self, settings) -> None:
        settings.debug_recorder = True
        argv = CaptureArgBuilder(settings, "twitch").build_capture_args(URL, "x")

        assert argv[-2:] == ["-l", "debug"]
        assert "-Q" not in argv

    def test_ffmpeg_capture(self, settings) -> None:
        settings.streamlink = False
        argv = CaptureArgBuilder(settings, "twitch").build_capture_args(URL, "x")

        assert argv[0] == "ffmpeg"
        assert argv[argv.index("-i") + 1] == URL
        assert str(settings.capture_directory / "x.ts") in argv
        assert argv[-2:] == ["-v", "fatal"]

    def test_capture_args_never_empty(self, settings) -> None:
        for streamlink in (True, False):
            settings.streamlink = streamlink
            assert CaptureArgBuilder(settings, "twitch").build_capture_args(URL, "x")


class TestPostProcessingArgs:
    def test_mp4_conversion(self, settings, tmp_path) -> None:
        builder = CaptureArgBuilder(settings, "twitch")
        raw, out = tmp_path / "x.ts", tmp_path / "x.mp4"

        argv = builder.build_convert_args(raw, out)

        assert argv[0] == "ffmpeg"
        assert argv[argv.index("-i") + 1] == str(raw)
        assert "aac_adtstoasc" in argv
        assert argv[-3:] == ["-copyts", "-start_at_zero", str(out)]

    def test_thumbnail_command(self, settings, tmp_path) -> None:
        builder = CaptureArgBuilder(settings, "twitch")
        video = tmp_path / "x.mp4"

        argv = builder.build_thumbnail_args(video)

        assert argv[0] == "vcs"
        assert argv[-1] == str(video)
        assert "--anonymous" in argv
