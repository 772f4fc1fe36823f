from __future__ import annotations

"""Periodic reconciliation of renderer state with what the UI shows."""

from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Callable, Optional
import math
import threading
import time

from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.player.commands import PlayerCommands
from tangleplay.backend.player.exceptions import IPCDecodeError, IPCTransportError

log = get_logger(__name__)

POLL_INTERVAL = 0.1
SEEK_SETTLE_WINDOW = 0.2


def format_duration(seconds: float) -> str:
    """``HH:MM:SS`` with every field floored."""

    total = int(math.floor(max(0.0, seconds)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass(frozen=True)
class PlaybackProgress:
    total: float
    elapsed: float

    @property
    def remaining(self) -> float:
        return max(0.0, self.total - self.elapsed)

    @property
    def elapsed_label(self) -> str:
        return format_duration(self.elapsed)

    @property
    def remaining_label(self) -> str:
        return "-" + format_duration(self.remaining)


class SeekGuard:
    """Keeps polled positions off the seek bar while the user drags it.

    Every interaction (re)arms a deadline one settle window ahead. When the
    deadline passes and the pointer still hovers the bar, it is pushed back
    once more; after that the flag clears.
    """

    def __init__(self, settle: float = SEEK_SETTLE_WINDOW, clock: Callable[[], float] = time.monotonic) -> None:
        self._settle = settle
        self._clock = clock
        self._lock = threading.Lock()
        self._seeking = False
        self._deadline = 0.0
        self._renewed = False
        self._hovering = False

    def interact(self) -> None:
        with self._lock:
            self._seeking = True
            self._deadline = self._clock() + self._settle
            self._renewed = False

    def set_hovering(self, hovering: bool) -> None:
        with self._lock:
            self._hovering = hovering

    @property
    def hovering(self) -> bool:
        return self._hovering

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline if self._seeking else None

    def is_seeking(self) -> bool:
        with self._lock:
            if self._seeking and self._clock() >= self._deadline:
                if self._hovering and not self._renewed:
                    self._deadline = self._clock() + self._settle
                    self._renewed = True
                else:
                    self._seeking = False
            return self._seeking


class PlaybackSynchronizer:
    """Polls duration then position every tick and reports them upstream."""

    def __init__(
        self,
        commands: PlayerCommands,
        guard: SeekGuard,
        *,
        on_ready: Optional[Callable[[], None]] = None,
        on_progress: Optional[Callable[[PlaybackProgress], None]] = None,
        interval: float = POLL_INTERVAL,
    ) -> None:
        self._commands = commands
        self._guard = guard
        self._on_ready = on_ready
        self._on_progress = on_progress
        self._interval = interval
        self._ready = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.total = 0.0
        self.position = 0.0

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[PlaybackProgress]:
        """One poll; ``None`` when nothing should be applied this time."""

        try:
            total = _as_seconds(self._commands.get_property("duration"))
        except IPCDecodeError as exc:
            log.error("ipc_decode_failed", extra={"property": "duration", "error": str(exc)})
            return None
        self.total = total

        if total > 0 and not self._ready:
            self._ready = True
            log.info("playback_ready", extra={"total": total})
            if self._on_ready is not None:
                self._on_ready()

        try:
            elapsed = _as_seconds(self._commands.get_property("time-pos"))
        except IPCDecodeError as exc:
            log.error("ipc_decode_failed", extra={"property": "time-pos", "error": str(exc)})
            return None

        if self._guard.is_seeking():
            return None

        self.position = elapsed
        progress = PlaybackProgress(total=total, elapsed=elapsed)
        log.debug(
            "updating_scale",
            extra={"total": total, "elapsed": elapsed, "remaining": progress.remaining},
        )
        if self._on_progress is not None:
            self._on_progress(progress)
        return progress

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="tangleplay-sync", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.tick()
            except IPCTransportError:
                # The channel reports this to the session itself.
                log.debug("sync_stopped_transport_closed")
                return
            except FuturesTimeout:
                log.warning("sync_tick_timeout")


def _as_seconds(value: object) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0.0
    return seconds if math.isfinite(seconds) and seconds > 0 else 0.0
