from tangleplay.backend.player.subtitles.models import (
    NONE_CANDIDATE,
    SUBTITLE_EXTENSIONS,
    SubtitleCandidate,
    SubtitleKind,
    build_subtitle_candidates,
    is_subtitle_file,
)
from tangleplay.backend.player.subtitles.service import (
    SubtitleDownload,
    SubtitleNegotiator,
)

__all__ = [
    "NONE_CANDIDATE",
    "SUBTITLE_EXTENSIONS",
    "SubtitleCandidate",
    "SubtitleDownload",
    "SubtitleKind",
    "SubtitleNegotiator",
    "build_subtitle_candidates",
    "is_subtitle_file",
]
