from __future__ import annotations

"""Line-delimited JSON control channel to the renderer.

Wire format, one object per line::

    -> {"command": ["get_property", "duration"]}
    <- {"data": 125.4, "error": "success"}

Requests carry no id, so a response belongs to whichever request was written
last. :class:`IPCChannel` keeps that pairing intact by funnelling every caller
through one worker thread that owns the socket and handles one request at a
time.
"""

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import json
import queue
import socket
import threading

from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.player.exceptions import (
    IPCDecodeError,
    IPCError,
    IPCTransportError,
)

log = get_logger(__name__)

CONNECT_RETRY_INTERVAL = 0.1
DEFAULT_IO_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IPCRequest:
    command_name: str
    args: tuple[Any, ...] = ()

    def to_wire(self) -> bytes:
        return encode_command(self.command_name, *self.args)


@dataclass(frozen=True)
class IPCResponse:
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error in (None, "success")


@dataclass
class _Pending:
    request: IPCRequest
    future: Future = field(default_factory=Future)


def encode_command(name: str, *args: Any) -> bytes:
    payload = {"command": [name, *args]}
    return (json.dumps(payload, separators=(",", ":")) + "\n").encode("utf-8")


def decode_line(line: bytes) -> Optional[IPCResponse]:
    """Decode one line; ``None`` for unsolicited event notifications."""

    try:
        obj = json.loads(line)
    except ValueError as exc:
        raise IPCDecodeError(f"could not parse JSON from socket: {exc}") from exc
    if not isinstance(obj, dict):
        raise IPCDecodeError(f"unexpected message type {type(obj).__name__}")
    if "event" in obj and "data" not in obj and "error" not in obj:
        return None

    error = obj.get("error")
    if error not in (None, "success"):
        return IPCResponse(data=None, error=str(error))

    return IPCResponse(data=obj.get("data"), error=error)


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

def _unix_connect(path: str) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(path)
    except OSError:
        sock.close()
        raise
    return sock


def connect_with_retry(
    path: str,
    cancelled: threading.Event,
    *,
    interval: float = CONNECT_RETRY_INTERVAL,
    connector: Callable[[str], socket.socket] = _unix_connect,
) -> Optional[socket.socket]:
    """Dial ``path`` until it answers; ``None`` once ``cancelled`` is set.

    The renderer creates its socket some time after it was spawned, so
    failures here are expected and only logged at debug level.
    """

    attempt = 0
    while not cancelled.is_set():
        attempt += 1
        try:
            sock = connector(path)
        except OSError as exc:
            log.debug(
                "ipc_connect_retry",
                extra={"path": path, "attempt": attempt, "error": str(exc), "retry_in": interval},
            )
            cancelled.wait(interval)
            continue
        log.info("ipc_connected", extra={"path": path, "attempts": attempt})
        return sock

    return None


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

_CLOSE = object()


class IPCChannel:
    """Single owner of the renderer socket with an internal request queue."""

    def __init__(
        self,
        sock: socket.socket,
        *,
        on_transport_error: Optional[Callable[[IPCTransportError], None]] = None,
        io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT,
    ) -> None:
        self._sock = sock
        if io_timeout is not None:
            self._sock.settimeout(io_timeout)
        self._reader = sock.makefile("rb")
        self._on_transport_error = on_transport_error
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(target=self._run, name="tangleplay-ipc", daemon=True)
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def request(self, name: str, *args: Any) -> Future:
        pending = _Pending(IPCRequest(name, tuple(args)))
        with self._lock:
            if self._closed:
                pending.future.set_exception(IPCTransportError("IPC channel is closed"))
                return pending.future
            self._queue.put(pending)
        return pending.future

    def call(self, name: str, *args: Any, timeout: Optional[float] = DEFAULT_IO_TIMEOUT) -> IPCResponse:
        return self.request(name, *args).result(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSE)
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout=2)
        self._release()
        log.debug("ipc_channel_closed")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                return
            pending: _Pending = item
            if not pending.future.set_running_or_notify_cancel():
                continue
            try:
                response = self._roundtrip(pending.request)
            except IPCDecodeError as exc:
                pending.future.set_exception(exc)
                continue
            except (OSError, IPCTransportError) as exc:
                error = exc if isinstance(exc, IPCTransportError) else IPCTransportError(str(exc))
                pending.future.set_exception(error)
                self._fail(error)
                return
            pending.future.set_result(response)

    def _roundtrip(self, request: IPCRequest) -> IPCResponse:
        self._sock.sendall(request.to_wire())
        while True:
            line = self._reader.readline()
            if not line:
                raise IPCTransportError("renderer closed the IPC connection")
            response = decode_line(line)
            if response is not None:
                return response

    def _fail(self, error: IPCTransportError) -> None:
        with self._lock:
            already_closed = self._closed
            self._closed = True
        self._release(error)
        if already_closed:
            return
        log.warning("ipc_transport_failed", extra={"error": str(error)})
        if self._on_transport_error is not None:
            self._on_transport_error(error)

    def _release(self, error: Optional[IPCError] = None) -> None:
        reason = error or IPCTransportError("IPC channel is closed")
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSE:
                continue
            if item.future.set_running_or_notify_cancel():
                item.future.set_exception(reason)
        try:
            self._reader.close()
        except OSError:
            pass
        try:
            self._sock.close()
        except OSError:
            pass
