"""Streaming gateway client and metadata models."""

from tangleplay.backend.gateway.client import GatewayClient
from tangleplay.backend.gateway.models import (
    README_PLACEHOLDER,
    MediaCandidate,
    TorrentFile,
    TorrentInfo,
)

__all__ = [
    "GatewayClient",
    "MediaCandidate",
    "README_PLACEHOLDER",
    "TorrentFile",
    "TorrentInfo",
]
