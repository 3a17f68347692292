"""Argument-list construction for the capture, convert and thumbnail tools.

Every builder is a pure function of its inputs and the :class:`Settings`
object, so the same job always yields the same argument list.  The exact
flags are a configuration concern; the only contract the rest of the engine
relies on is that a capture argument list is non-empty.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from stream_sentinel.config.settings import RAW_EXTENSION, Settings


class CaptureArgBuilder:
    """Builds argument lists and output paths for one site.

    Args:
        settings: Runtime settings (tool paths, directories, flags).
        site: Platform name, used in filenames when
            ``include_site_in_file`` is set.
    """

    def __init__(self, settings: Settings, site: str) -> None:
        self.settings = settings
        self.site = site

    # ------------------------------------------------------------------
    # Names and paths
    # ------------------------------------------------------------------

    def make_filename(self, display_name: str, now: datetime | None = None) -> str:
        """Return ``<name>_[<site>_]<timestamp>`` without an extension."""
        parts = [display_name]
        if self.settings.include_site_in_file:
            parts.append(self.site)
        parts.append((now or datetime.now()).strftime(self.settings.date_format))
        return "_".join(parts)

    def capture_path(self, filename: str) -> Path:
        return self.settings.capture_directory / f"{filename}.{RAW_EXTENSION}"

    def recorder_log_path(self, filename: str) -> Path | None:
        """Per-capture tool log, written only in ``debug_recorder`` mode."""
        if not self.settings.debug_recorder:
            return None
        return Path(f"{filename}.log")

    # ------------------------------------------------------------------
    # Argument lists
    # ------------------------------------------------------------------

    def build_capture_args(
        self,
        url: str,
        filename: str,
        hls_session: bool = True,
    ) -> list[str]:
        """Build the capture command for *url* writing ``<filename>.ts``.

        Args:
            url: Resolved, directly playable media URL.
            filename: Base filename from :meth:`make_filename`.
            hls_session: Append the configured streamlink segmenting flags.

        Returns:
            Non-empty argument list, program first.
        """
        settings = self.settings
        output = str(self.capture_path(filename))

        if settings.streamlink:
            argv = [settings.streamlink_path, "-o", output, url, "best"]
            if hls_session:
                argv.extend(settings.streamlink_segment_args)
            if settings.debug_recorder:
                argv.extend(["-l", "debug"])
            else:
                argv.append("-Q")
            return argv

        argv = [
            settings.ffmpeg_path,
            "-hide_banner",
            "-i", url,
            "-c", "copy",
            "-vsync", "2",
            "-r", "60",
            "-b:v", "500k",
            output,
        ]
        if not settings.debug_recorder:
            argv.extend(["-v", "fatal"])
        return argv

    def build_convert_args(self, raw_path: Path, output_path: Path) -> list[str]:
        """Remux *raw_path* into *output_path* with stream copy.

        MP4 targets get the ``aac_adtstoasc`` bitstream filter; timestamps
        are preserved and shifted to start at zero.
        """
        argv = [
            self.settings.ffmpeg_path,
            "-hide_banner",
            "-v", "fatal",
            "-i", str(raw_path),
            "-c", "copy",
        ]
        if self.settings.auto_convert_type == "mp4":
            argv.extend(["-bsf:a", "aac_adtstoasc"])
        argv.extend(["-copyts", "-start_at_zero", str(output_path)])
        return argv

    def build_thumbnail_args(self, video_path: Path) -> list[str]:
        """Contact-sheet command for a converted recording."""
        return [
            self.settings.thumbnail_path,
            "-n", "20",
            "-c", "10",
            "-H", "50%",
            "--anonymous",
            str(video_path),
        ]
