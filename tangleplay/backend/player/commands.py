from __future__ import annotations

"""Translate UI intents into renderer IPC commands."""

from typing import Any, Optional, Protocol

from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.player.ipc import IPCResponse

log = get_logger(__name__)


class CommandChannel(Protocol):
    def call(self, name: str, *args: Any, timeout: Optional[float] = ...) -> IPCResponse: ...


class PlayerCommands:
    """One-shot commands; failures propagate to the caller unchanged."""

    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    def set_paused(self, paused: bool) -> None:
        log.info("pausing_playback" if paused else "starting_playback")
        self._channel.call("set_property", "pause", paused)

    def toggle_pause(self, currently_paused: bool) -> bool:
        """Flip the pause state we last set and return the new one.

        The renderer is not asked for its real state, so a pause it triggers
        on its own (end of stream) is not reflected here.
        """

        paused = not currently_paused
        self.set_paused(paused)
        return paused

    def set_volume(self, fraction: float) -> None:
        fraction = max(0.0, min(1.0, float(fraction)))
        log.info("setting_volume", extra={"value": fraction})
        self._channel.call("set_property", "volume", fraction * 100)

    def set_fullscreen(self, enabled: bool) -> None:
        log.info("enabling_fullscreen" if enabled else "disabling_fullscreen")
        self._channel.call("set_property", "fullscreen", bool(enabled))

    def seek(self, position: float) -> int:
        seconds = int(max(0.0, position))
        log.info("seeking", extra={"seconds": seconds})
        self._channel.call("seek", seconds, "absolute")
        return seconds

    # ------------------------------------------------------------------
    # Subtitles
    # ------------------------------------------------------------------
    def clear_subtitles(self) -> None:
        log.info("disabling_subtitles")
        self._channel.call("change-list", "sub-files", "clr")

    def set_subtitle_file(self, path: str) -> None:
        log.info("setting_subtitles", extra={"path": path})
        self._channel.call("change-list", "sub-files", "set", path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_property(self, name: str) -> Any:
        return self._channel.call("get_property", name).data
