"""Typed views of the gateway metadata payloads."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

from pydantic import BaseModel, ConfigDict, Field

README_PLACEHOLDER = "No README found."


class TorrentFile(BaseModel):
    """One file entry of a bundle as reported by the gateway."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    path: str
    length: int = Field(default=0, ge=0)


class TorrentInfo(BaseModel):
    """Metadata for a whole bundle: ``lookup(identifier)`` result."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    description: str = ""
    files: List[TorrentFile] = Field(default_factory=list)

    def candidates(self) -> List["MediaCandidate"]:
        return [MediaCandidate(display_path=f.path, size_bytes=f.length) for f in self.files]

    @property
    def readme(self) -> str:
        return readme_or_placeholder(self.description)


@dataclass(frozen=True, slots=True)
class MediaCandidate:
    display_path: str
    size_bytes: int = 0

    @property
    def display_name(self) -> str:
        return display_path_without_root(self.display_path)

    @property
    def basename(self) -> str:
        return self.display_path.rsplit("/", 1)[-1]

    @property
    def size_label(self) -> str:
        return f"{self.size_bytes // 1000 // 1000} MB"


def display_path_without_root(path: str) -> str:
    # Gateway paths are always "/" separated; the result is for display only.
    parts = path.split("/")
    if len(parts) < 2:
        return path

    return os.path.join(*parts[1:])


def readme_or_placeholder(text: str) -> str:
    if not text or not text.strip():
        return README_PLACEHOLDER
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return README_PLACEHOLDER

    return text
