"""Backend public interfaces with lazy loading to avoid circular imports."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "ControlEvent",
    "ControlIntent",
    "ErrorSurface",
    "GatewayClient",
    "PlayRequest",
    "PlaybackSession",
    "SessionController",
    "SessionUpdate",
    "SubtitleCandidate",
    "SubtitleNegotiator",
    "TorrentInfo",
    "UpdateKind",
    "WizardController",
    "WizardEvent",
    "WizardEventType",
]

_MODULE_EXPORTS = {
    "common.error_surface": {
        "ErrorSurface",
    },
    "gateway": {
        "GatewayClient",
        "TorrentInfo",
    },
    "player": {
        "ControlEvent",
        "ControlIntent",
        "PlayRequest",
        "PlaybackSession",
        "SessionController",
        "SessionUpdate",
        "UpdateKind",
    },
    "player.subtitles": {
        "SubtitleCandidate",
        "SubtitleNegotiator",
    },
    "wizard": {
        "WizardController",
        "WizardEvent",
        "WizardEventType",
    },
}

if TYPE_CHECKING:  # pragma: no cover - for static analysis only
    from .common.error_surface import ErrorSurface
    from .gateway import GatewayClient, TorrentInfo
    from .player import (
        ControlEvent,
        ControlIntent,
        PlayRequest,
        PlaybackSession,
        SessionController,
        SessionUpdate,
        UpdateKind,
    )
    from .player.subtitles import SubtitleCandidate, SubtitleNegotiator
    from .wizard import WizardController, WizardEvent, WizardEventType


def __getattr__(name: str) -> Any:
    for module_name, symbols in _MODULE_EXPORTS.items():
        if name in symbols:
            module = importlib.import_module(f"{__name__}.{module_name}")
            value = getattr(module, name)
            globals()[name] = value
            return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    exported = set(__all__)
    for symbols in _MODULE_EXPORTS.values():
        exported.update(symbols)
    exported.update(globals().keys())
    return sorted(exported)
