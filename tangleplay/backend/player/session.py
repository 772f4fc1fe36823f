from __future__ import annotations

"""Playback session controller: renderer process, IPC, polling and subtitles for one selection."""

from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional
import shutil
import tempfile
import threading

from tangleplay.backend.common.dispatch import UpdateQueue
from tangleplay.backend.common.errors import TaskError
from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.common.tasks import TaskRunner, TaskSpec
from tangleplay.backend.gateway.client import GatewayClient
from tangleplay.backend.player.commands import PlayerCommands
from tangleplay.backend.player.exceptions import (
    IPCDecodeError,
    IPCError,
    IPCTransportError,
    PlayerError,
    SubtitleError,
)
from tangleplay.backend.player.ipc import (
    CONNECT_RETRY_INTERVAL,
    IPCChannel,
    connect_with_retry,
)
from tangleplay.backend.player.renderer import (
    RendererExit,
    RendererHandle,
    RendererProcessManager,
)
from tangleplay.backend.player.subtitles import (
    SubtitleCandidate,
    SubtitleNegotiator,
)
from tangleplay.backend.player.sync import (
    POLL_INTERVAL,
    PlaybackProgress,
    PlaybackSynchronizer,
    SeekGuard,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class PlayRequest:
    identifier: str
    selected_path: str
    title: str = ""
    description: str = ""
    subtitle_candidates: tuple[SubtitleCandidate, ...] = ()


@dataclass
class PlaybackSession:
    stream_url: str
    auth_token: str
    ipc_endpoint_path: str
    process_handle: RendererHandle
    seek_guard: SeekGuard = field(default_factory=SeekGuard)
    total_duration: float = 0.0
    last_known_position: float = 0.0
    is_paused: bool = True
    is_fullscreen: bool = False
    volume: float = 1.0
    active_subtitle_index: int = 0

    @property
    def is_user_seeking(self) -> bool:
        return self.seek_guard.is_seeking()


class ControlIntent(str, Enum):
    TOGGLE_PLAY = "toggle_play"
    SEEK = "seek"
    SEEK_HOVER = "seek_hover"
    SET_VOLUME = "set_volume"
    SET_FULLSCREEN = "set_fullscreen"
    SELECT_SUBTITLE = "select_subtitle"
    ADD_SUBTITLE_FILE = "add_subtitle_file"
    STOP = "stop"


@dataclass(frozen=True)
class ControlEvent:
    intent: ControlIntent
    value: Any = None


class UpdateKind(str, Enum):
    CONNECTED = "connected"
    READY = "ready"
    PROGRESS = "progress"
    SUBTITLE_CHANGED = "subtitle_changed"
    ERROR = "error"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionUpdate:
    kind: UpdateKind
    progress: Optional[PlaybackProgress] = None
    subtitle_index: Optional[int] = None
    error: Optional[BaseException] = None
    reason: str = ""
    polled: bool = False


class SessionController:
    """Owns exactly one :class:`PlaybackSession` for an open controls view.

    Background work (connect retry, polling, renderer exit wait, subtitle
    downloads) only ever posts :class:`SessionUpdate` messages; the UI thread
    drains them and passes each to :meth:`apply` to mutate session state.
    """

    def __init__(
        self,
        request: PlayRequest,
        gateway: GatewayClient,
        renderer_command: str,
        *,
        manager: Optional[RendererProcessManager] = None,
        task_runner: Optional[TaskRunner] = None,
        updates: Optional[UpdateQueue[SessionUpdate]] = None,
        poll_interval: float = POLL_INTERVAL,
        connect_interval: float = CONNECT_RETRY_INTERVAL,
        temp_root: Optional[str] = None,
    ) -> None:
        self.request = request
        self._gateway = gateway
        self._renderer_command = renderer_command
        self._manager = manager or RendererProcessManager(temp_root=temp_root)
        self._owns_runner = task_runner is None
        self._task_runner = task_runner or TaskRunner(max_workers=3, context="session")
        self.updates: UpdateQueue[SessionUpdate] = updates or UpdateQueue()
        self._poll_interval = poll_interval
        self._connect_interval = connect_interval
        self._temp_root = temp_root

        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._torn_down = False
        self._ended_posted = False
        self.session: Optional[PlaybackSession] = None
        self._scratch_dir: Optional[Path] = None
        self._channel: Optional[IPCChannel] = None
        self._commands: Optional[PlayerCommands] = None
        self._sync: Optional[PlaybackSynchronizer] = None
        self._negotiator: Optional[SubtitleNegotiator] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> PlaybackSession:
        if self.session is not None:
            raise PlayerError("session already started")

        stream_url = self._gateway.stream_url(self.request.identifier, self.request.selected_path)
        auth_token = self._gateway.auth_token()
        ipc_path, handle = self._manager.start(self._renderer_command, stream_url, auth_token)
        self._scratch_dir = Path(tempfile.mkdtemp(prefix="tangleplay-subtitles", dir=self._temp_root))

        self.session = PlaybackSession(
            stream_url=stream_url,
            auth_token=auth_token,
            ipc_endpoint_path=ipc_path,
            process_handle=handle,
        )
        log.info(
            "session_started",
            extra={"stream_url": stream_url, "ipc_path": ipc_path, "pid": handle.pid},
        )

        self._task_runner.submit(TaskSpec(fn=self._connect, name="ipc_connect"))
        self._task_runner.submit(TaskSpec(fn=self._wait_for_exit, args=(handle,), name="renderer_wait"))
        return self.session

    def teardown(self, reason: str = "stopped") -> None:
        """Release everything the session owns. Safe from any thread, safe to repeat."""

        with self._lock:
            if self._torn_down or self.session is None:
                return
            self._torn_down = True
            session = self.session
            channel = self._channel
            sync = self._sync

        log.info("session_teardown", extra={"reason": reason})
        # Fixed order: kill renderer, remove its socket directory, stop polling.
        try:
            self._manager.stop(session.process_handle)
        except PlayerError as exc:
            log.error("renderer_stop_failed", extra={"error": str(exc)})
            self.updates.post(SessionUpdate(kind=UpdateKind.ERROR, error=exc))
        finally:
            self._cancelled.set()
            if sync is not None:
                sync.stop()
            if channel is not None:
                channel.close()
            if self._scratch_dir is not None:
                shutil.rmtree(self._scratch_dir, ignore_errors=True)
            self._post_ended(reason)
            if self._owns_runner:
                self._task_runner.close(wait=False)

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    @property
    def connected(self) -> bool:
        return self._commands is not None and not self._torn_down

    @property
    def subtitle_options(self) -> List[SubtitleCandidate]:
        if self._negotiator is not None:
            return self._negotiator.options
        return list(self.request.subtitle_candidates)

    # ------------------------------------------------------------------
    # UI side
    # ------------------------------------------------------------------
    def dispatch(self, event: ControlEvent) -> bool:
        """Single entry point for UI intents. Returns False when ignored."""

        if event.intent is ControlIntent.STOP:
            self.teardown("stopped")
            return True

        session = self.session
        commands = self._commands
        if session is None or commands is None or self._torn_down:
            log.info("control_ignored_not_connected", extra={"intent": event.intent.value})
            return False

        try:
            if event.intent is ControlIntent.TOGGLE_PLAY:
                session.is_paused = commands.toggle_pause(session.is_paused)
            elif event.intent is ControlIntent.SEEK:
                self._seek(session, commands, float(event.value))
            elif event.intent is ControlIntent.SEEK_HOVER:
                session.seek_guard.set_hovering(bool(event.value))
            elif event.intent is ControlIntent.SET_VOLUME:
                commands.set_volume(float(event.value))
                session.volume = float(event.value)
            elif event.intent is ControlIntent.SET_FULLSCREEN:
                target = (not session.is_fullscreen) if event.value is None else bool(event.value)
                commands.set_fullscreen(target)
                session.is_fullscreen = target
            elif event.intent is ControlIntent.SELECT_SUBTITLE:
                index = int(event.value)
                if not 0 <= index < len(self.subtitle_options):
                    log.info("subtitle_option_missing", extra={"index": index})
                    return False
                self._task_runner.submit(
                    TaskSpec(fn=self._select_subtitle, args=(index,), name="subtitle_select")
                )
            elif event.intent is ControlIntent.ADD_SUBTITLE_FILE:
                index = self._require_negotiator().add_local(str(event.value))
                self.updates.post(SessionUpdate(kind=UpdateKind.SUBTITLE_CHANGED, subtitle_index=index))
            else:  # pragma: no cover - exhaustive over ControlIntent
                return False
        except IPCTransportError:
            # The channel already reported it; teardown follows from there.
            return False
        except IPCDecodeError as exc:
            log.warning("ipc_decode_failed", extra={"intent": event.intent.value, "error": str(exc)})
            return False
        except FuturesTimeout:
            log.warning("ipc_command_timeout", extra={"intent": event.intent.value})
            return False
        except TaskError:
            log.info("control_ignored_session_closing", extra={"intent": event.intent.value})
            return False
        except (IPCError, SubtitleError) as exc:
            self.updates.post(SessionUpdate(kind=UpdateKind.ERROR, error=exc))
            return False
        return True

    def apply(self, update: SessionUpdate) -> bool:
        """Fold a drained update into session state; call on the UI thread.

        Returns False for polled progress that arrives while the user is
        seeking. Such an update is stale and must not be shown either.
        """

        session = self.session
        if session is None:
            return True
        if update.kind is UpdateKind.PROGRESS and update.progress is not None:
            if update.polled and session.is_user_seeking:
                log.debug("stale_progress_dropped", extra={"elapsed": update.progress.elapsed})
                return False
            session.total_duration = update.progress.total
            session.last_known_position = update.progress.elapsed
        elif update.kind is UpdateKind.READY and self._sync is not None:
            session.total_duration = self._sync.total
        elif update.kind is UpdateKind.SUBTITLE_CHANGED and update.subtitle_index is not None:
            session.active_subtitle_index = update.subtitle_index
        return True

    # ------------------------------------------------------------------
    # Background side
    # ------------------------------------------------------------------
    def _connect(self) -> None:
        session = self.session
        if session is None:
            return
        sock = connect_with_retry(
            session.ipc_endpoint_path,
            self._cancelled,
            interval=self._connect_interval,
        )
        if sock is None:
            return

        channel = IPCChannel(sock, on_transport_error=self._on_transport_error)
        with self._lock:
            if self._torn_down:
                channel.close()
                return
            self._channel = channel

        commands = PlayerCommands(channel)
        try:
            commands.set_volume(1.0)
        except IPCTransportError:
            return
        except (IPCError, FuturesTimeout) as exc:
            log.warning("initial_volume_failed", extra={"error": str(exc)})

        negotiator = SubtitleNegotiator(
            self.request.subtitle_candidates,
            commands,
            self._gateway,
            self.request.identifier,
            self._scratch_dir or Path(tempfile.gettempdir()),
        )
        sync = PlaybackSynchronizer(
            commands,
            session.seek_guard,
            on_ready=lambda: self.updates.post(SessionUpdate(kind=UpdateKind.READY)),
            on_progress=lambda p: self.updates.post(
                SessionUpdate(kind=UpdateKind.PROGRESS, progress=p, polled=True)
            ),
            interval=self._poll_interval,
        )
        with self._lock:
            if self._torn_down:
                return
            self._negotiator = negotiator
            self._sync = sync
            self._commands = commands
            sync.start()
        self.updates.post(SessionUpdate(kind=UpdateKind.CONNECTED))

    def _wait_for_exit(self, handle: RendererHandle) -> RendererExit:
        outcome = self._manager.wait(handle)
        if outcome.failed:
            self.updates.post(
                SessionUpdate(
                    kind=UpdateKind.ERROR,
                    error=PlayerError(f"renderer exited with status {outcome.returncode}"),
                )
            )
        self.teardown("renderer_exited")
        return outcome

    def _on_transport_error(self, error: IPCTransportError) -> None:
        log.warning("renderer_connection_lost", extra={"error": str(error)})
        self.teardown("renderer_gone")

    def _select_subtitle(self, index: int) -> None:
        try:
            self._require_negotiator().select(index)
        except IPCTransportError:
            return
        except (SubtitleError, IPCError) as exc:
            log.warning("subtitle_select_failed", extra={"index": index, "error": str(exc)})
            self.updates.post(SessionUpdate(kind=UpdateKind.ERROR, error=exc))
            return
        self.updates.post(SessionUpdate(kind=UpdateKind.SUBTITLE_CHANGED, subtitle_index=index))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _seek(self, session: PlaybackSession, commands: PlayerCommands, position: float) -> None:
        session.seek_guard.interact()
        commands.seek(position)
        session.last_known_position = position
        progress = PlaybackProgress(total=session.total_duration, elapsed=position)
        self.updates.post(SessionUpdate(kind=UpdateKind.PROGRESS, progress=progress))

    def _require_negotiator(self) -> SubtitleNegotiator:
        if self._negotiator is None:
            raise SubtitleError("renderer is not connected yet")
        return self._negotiator

    def _post_ended(self, reason: str) -> None:
        with self._lock:
            if self._ended_posted:
                return
            self._ended_posted = True
        self.updates.post(SessionUpdate(kind=UpdateKind.ENDED, reason=reason))
