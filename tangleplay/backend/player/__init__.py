"""External renderer control: process lifecycle, IPC, polling and subtitles."""

from tangleplay.backend.player.commands import PlayerCommands
from tangleplay.backend.player.exceptions import (
    IPCDecodeError,
    IPCError,
    IPCTransportError,
    PlayerError,
    RendererNotFoundError,
    RendererStartError,
    SubtitleError,
    SubtitleFetchError,
)
from tangleplay.backend.player.renderer import (
    RendererProcessManager,
    find_working_renderer,
)
from tangleplay.backend.player.session import (
    ControlEvent,
    ControlIntent,
    PlaybackSession,
    PlayRequest,
    SessionController,
    SessionUpdate,
    UpdateKind,
)
from tangleplay.backend.player.sync import format_duration

__all__ = [
    "ControlEvent",
    "ControlIntent",
    "IPCDecodeError",
    "IPCError",
    "IPCTransportError",
    "PlaybackSession",
    "PlayRequest",
    "PlayerCommands",
    "PlayerError",
    "RendererNotFoundError",
    "RendererProcessManager",
    "RendererStartError",
    "SessionController",
    "SessionUpdate",
    "SubtitleError",
    "SubtitleFetchError",
    "UpdateKind",
    "find_working_renderer",
    "format_duration",
]
