from __future__ import annotations

"""Subtitle track candidates offered next to the selected media file."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from tangleplay.backend.gateway.models import MediaCandidate, display_path_without_root

SUBTITLE_EXTENSIONS: tuple[str, ...] = (".srt", ".vtt", ".ass")

NONE_PRIORITY = -1
SUBTITLE_PRIORITY = 0
EXTRA_PRIORITY = 1
MANUAL_PRIORITY = 2


class SubtitleKind(str, Enum):
    NONE = "none"
    INTEGRATED = "integrated"
    EXTRA = "extra"
    MANUAL = "manual"


_ROW_SUBTITLES = {
    SubtitleKind.NONE: "Disable subtitles",
    SubtitleKind.INTEGRATED: "Integrated subtitle",
    SubtitleKind.EXTRA: "Extra file from media",
    SubtitleKind.MANUAL: "Manually added",
}


@dataclass(frozen=True, slots=True)
class SubtitleCandidate:
    name: str
    priority: int
    size_bytes: int = 0
    local_path: Optional[str] = None

    @property
    def kind(self) -> SubtitleKind:
        if self.priority == NONE_PRIORITY:
            return SubtitleKind.NONE
        if self.local_path is not None:
            return SubtitleKind.MANUAL
        if self.priority == SUBTITLE_PRIORITY:
            return SubtitleKind.INTEGRATED
        return SubtitleKind.EXTRA

    @property
    def title(self) -> str:
        if self.kind in (SubtitleKind.NONE, SubtitleKind.MANUAL):
            return self.name
        return display_path_without_root(self.name)

    @property
    def subtitle(self) -> str:
        return _ROW_SUBTITLES[self.kind]


NONE_CANDIDATE = SubtitleCandidate(name="None", priority=NONE_PRIORITY)


def is_subtitle_file(name: str) -> bool:
    return name.lower().endswith(SUBTITLE_EXTENSIONS)


def build_subtitle_candidates(candidates: Iterable[MediaCandidate], selected_path: str) -> List[SubtitleCandidate]:
    """``None`` first, then every other bundle entry in bundle order."""

    result: List[SubtitleCandidate] = [NONE_CANDIDATE]
    for candidate in candidates:
        if candidate.display_path == selected_path:
            continue
        priority = SUBTITLE_PRIORITY if is_subtitle_file(candidate.display_path) else EXTRA_PRIORITY
        result.append(
            SubtitleCandidate(
                name=candidate.display_path,
                priority=priority,
                size_bytes=candidate.size_bytes,
            )
        )
    return result
