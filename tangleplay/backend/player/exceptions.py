from __future__ import annotations

"""Exceptions for the player subsystem."""

from typing import Sequence

from tangleplay.backend.common.errors import TangleplayError


class PlayerError(TangleplayError):
    """Top-level error raised by the player subsystem."""


class RendererNotFoundError(PlayerError):
    """Raised when no usable renderer command could be found."""

    def __init__(self, message: str, remedies: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.remedies = tuple(remedies)


class RendererStartError(PlayerError):
    """Raised when the renderer process could not be spawned."""


class IPCError(PlayerError):
    """Base for renderer control channel failures."""


class IPCDecodeError(IPCError):
    """Raised when a response line is not valid JSON; the current tick is skipped."""


class IPCTransportError(IPCError):
    """Raised when the socket breaks; means the renderer went away."""


class SubtitleError(PlayerError):
    """Raised when subtitle selection fails."""


class SubtitleFetchError(SubtitleError):
    """Raised when downloading a subtitle track from the gateway fails."""


class SubtitleTransferError(SubtitleFetchError):
    """Raised when the gateway drops a subtitle transfer midway; worth another try."""
