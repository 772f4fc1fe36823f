from __future__ import annotations

"""Subtitle track selection: on-demand download from the gateway and hand-off to the renderer."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Protocol, Sequence
import posixpath
import time

import requests

from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.common.tasks import TaskSpec, run_with_retries
from tangleplay.backend.network_handlers.session import NetError
from tangleplay.backend.player.commands import PlayerCommands
from tangleplay.backend.player.exceptions import (
    SubtitleError,
    SubtitleFetchError,
    SubtitleTransferError,
)
from tangleplay.backend.player.subtitles.models import (
    MANUAL_PRIORITY,
    NONE_CANDIDATE,
    SubtitleCandidate,
    SubtitleKind,
)

log = get_logger(__name__)

_CHUNK_SIZE = 64 * 1024
DOWNLOAD_RETRIES = 2


class StreamSource(Protocol):
    def stream_url(self, identifier: str, file_path: str) -> str: ...

    def open_stream(self, url: str) -> requests.Response: ...


@dataclass(slots=True)
class SubtitleDownload:
    path: Path
    source: str


class SubtitleNegotiator:
    """Mutually exclusive group of subtitle options for one playback session."""

    def __init__(
        self,
        candidates: Sequence[SubtitleCandidate],
        commands: PlayerCommands,
        gateway: StreamSource,
        identifier: str,
        scratch_dir: Path,
        *,
        download_retries: int = DOWNLOAD_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        options = list(candidates)
        if not options or options[0] != NONE_CANDIDATE:
            options = [NONE_CANDIDATE, *(c for c in options if c != NONE_CANDIDATE)]
        self._options: List[SubtitleCandidate] = options
        self._commands = commands
        self._gateway = gateway
        self._identifier = identifier
        self._scratch_dir = scratch_dir
        self._download_retries = download_retries
        self._sleep = sleep
        self._active_index = 0

    @property
    def options(self) -> List[SubtitleCandidate]:
        return list(self._options)

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def active(self) -> SubtitleCandidate:
        return self._options[self._active_index]

    def select(self, index: int) -> SubtitleCandidate:
        if index < 0 or index >= len(self._options):
            raise SubtitleError(f"No subtitle option at index {index}")
        candidate = self._options[index]

        if candidate.kind is SubtitleKind.NONE:
            self._commands.clear_subtitles()
        elif candidate.local_path is not None:
            self._commands.set_subtitle_file(candidate.local_path)
        else:
            spec = TaskSpec(
                fn=self.download,
                args=(candidate,),
                retries=self._download_retries,
                retry_on=(SubtitleTransferError,),
                name="subtitle_download",
            )
            download = run_with_retries(spec, sleep=self._sleep)
            self._commands.set_subtitle_file(str(download.path))

        self._active_index = index
        return candidate

    def add_local(self, path: str) -> int:
        """Use a file picked from disk; becomes a new option and is activated."""

        local = Path(path).expanduser()
        self._commands.set_subtitle_file(str(local))
        self._options.append(
            SubtitleCandidate(name=local.name, priority=MANUAL_PRIORITY, local_path=str(local))
        )
        self._active_index = len(self._options) - 1
        return self._active_index

    def download(self, candidate: SubtitleCandidate) -> SubtitleDownload:
        url = self._gateway.stream_url(self._identifier, candidate.name)
        log.info("downloading_subtitles", extra={"stream_url": url})
        try:
            response = self._gateway.open_stream(url)
        except NetError as exc:
            raise SubtitleFetchError(str(exc)) from exc

        with response:
            if response.status_code != 200:
                raise SubtitleFetchError(f"{response.status_code} {response.reason or ''}".strip())
            target = self._scratch_dir / _remote_basename(candidate.name)
            try:
                self._scratch_dir.mkdir(parents=True, exist_ok=True)
                with target.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            except requests.exceptions.RequestException as exc:
                raise SubtitleTransferError(f"Subtitle transfer from {url} was interrupted: {exc}") from exc
            except OSError as exc:
                raise SubtitleFetchError(f"Could not save subtitles to {target}: {exc}") from exc

        return SubtitleDownload(path=target, source=url)


def _remote_basename(name: str) -> str:
    base = posixpath.basename(name.rstrip("/"))
    return base or "subtitles"
