"""In-memory data model for tracked streamers and capture jobs.

``StreamerRecord`` is the only mutable object shared between the poller,
the capture supervisor and the watch-list reconciler.  It is owned by
:class:`~stream_sentinel.core.streamer_registry.StreamerRegistry`; callers
mutate it only while holding the registry's per-id lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stream_sentinel.core.process_runner import ProcessHandle


class StreamerState(str, Enum):
    """Liveness states reported by the source adapters.

    Values are the human-readable labels shown in status output.  Only
    :attr:`PUBLIC_CHAT` and :attr:`STREAMING` are capturable; the others
    are source-specific refinements of "not capturable right now".
    """

    OFFLINE = "Offline"
    PUBLIC_CHAT = "Public Chat"
    STREAMING = "Streaming"
    PRIVATE = "Private"
    TRUE_PRIVATE = "True Private"
    GROUP_SHOW = "Group Show"
    AWAY = "Away"

    @property
    def is_capturable(self) -> bool:
        return self in (StreamerState.PUBLIC_CHAT, StreamerState.STREAMING)


STATE_MESSAGES: dict[StreamerState, str] = {
    StreamerState.OFFLINE: "is offline.",
    StreamerState.PUBLIC_CHAT: "is in public chat!",
    StreamerState.STREAMING: "is streaming.",
    StreamerState.PRIVATE: "is in a private show.",
    StreamerState.TRUE_PRIVATE: "is in a true private show.",
    StreamerState.GROUP_SHOW: "is in a group show.",
    StreamerState.AWAY: "is away.",
}
"""Default transition message suffix per state.  Adapters may override it
through :attr:`SourceState.message`."""


class CapturePhase(str, Enum):
    """Where a record sits in the capture pipeline.

    ``IDLE → CAPTURING → TRIAGE → CONVERTING → THUMBNAILING → IDLE``.
    Informational only; the invariants are carried by ``capture_handle``
    and ``post_processing``.
    """

    IDLE = "idle"
    CAPTURING = "capturing"
    TRIAGE = "triage"
    CONVERTING = "converting"
    THUMBNAILING = "thumbnailing"


@dataclass(frozen=True)
class StreamerIdentity:
    """Stable key plus display name of a streamer on one source.

    Attributes:
        id: Source-specific unique key (user id or lower-cased login).
        display_name: Name used in filenames and messages.
    """

    id: str
    display_name: str

    @property
    def is_valid(self) -> bool:
        return bool(self.id)


@dataclass
class StreamerRecord:
    """Lifecycle record for one tracked streamer.

    Attributes:
        id: Stable unique key (see :class:`StreamerIdentity`).
        display_name: Human-readable name.
        site: Label of the source this streamer belongs to.
        state: Last state observed by the poller.
        current_filename: File the active capture or conversion writes;
            empty when idle.
        capture_handle: Handle of the running capture (or conversion)
            process.  ``None`` when nothing is running.
        post_processing: Guard set while the conversion runs.  A guarded
            handle is never terminated by the watchdog or offline logic.
        phase: Current pipeline phase.
    """

    id: str
    display_name: str
    site: str
    state: StreamerState = StreamerState.OFFLINE
    current_filename: str = ""
    capture_handle: ProcessHandle | None = None
    post_processing: bool = False
    phase: CapturePhase = CapturePhase.IDLE

    @property
    def is_capturing(self) -> bool:
        return self.capture_handle is not None

    @property
    def can_halt(self) -> bool:
        """True when the handle may be signalled (present and unguarded)."""
        return self.capture_handle is not None and not self.post_processing

    def store_capture(self, filename: str, handle: ProcessHandle | None) -> None:
        self.current_filename = filename
        self.capture_handle = handle

    def clear_capture(self) -> None:
        self.current_filename = ""
        self.capture_handle = None
        self.phase = CapturePhase.IDLE


@dataclass
class CaptureJob:
    """Ephemeral description of one capture, produced by eligibility checks.

    An empty ``argv`` is the "not eligible" sentinel; the supervisor treats
    it as a no-op.

    Attributes:
        argv: Full argument list for the capture tool (program first).
        filename: Base filename without extension.
        streamer_id: Id of the owning :class:`StreamerRecord`.
        display_name: Streamer name for messages.
    """

    argv: list[str] = field(default_factory=list)
    filename: str = ""
    streamer_id: str = ""
    display_name: str = ""

    @classmethod
    def not_eligible(cls, streamer_id: str = "") -> CaptureJob:
        return cls(streamer_id=streamer_id)

    @property
    def eligible(self) -> bool:
        return bool(self.argv)
