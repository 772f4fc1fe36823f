from __future__ import annotations

"""Spawn, supervise and terminate the external renderer (mpv)."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence
import os
import shlex
import shutil
import signal
import subprocess
import sys
import tempfile
import threading

import psutil

from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.player.exceptions import (
    PlayerError,
    RendererNotFoundError,
    RendererStartError,
)

log = get_logger(__name__)

MPV_FLATHUB_URL = "https://flathub.org/apps/details/io.mpv.Mpv"
MPV_WEBSITE_URL = "https://mpv.io/installation/"

FLATPAK_INFO = Path("/.flatpak-info")

# No on-screen controller, no default key bindings, start paused, keep the
# window open once the stream ends.
RENDERER_FLAGS: tuple[str, ...] = (
    "--keep-open=always",
    "--no-osc",
    "--no-input-default-bindings",
    "--pause",
)

IPC_DIR_PREFIX = "mpv-ipc"
IPC_SOCKET_NAME = "mpv.sock"

_SANDBOXED_CANDIDATES: tuple[str, ...] = (
    "flatpak-spawn --host mpv",
    "flatpak-spawn --host flatpak run io.mpv.Mpv",
)
_HOST_CANDIDATES: tuple[str, ...] = (
    "mpv",
    "flatpak run io.mpv.Mpv",
)

_IS_WINDOWS = sys.platform.startswith("win")


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def remediation_hints() -> List[str]:
    """Ways out offered to the user when no renderer works."""

    hints: List[str] = []
    if sys.platform.startswith("linux"):
        hints.append(f"Install mpv from Flathub: {MPV_FLATHUB_URL}")
    hints.append(f"Install mpv: {MPV_WEBSITE_URL}")
    hints.append("Configure the renderer command manually: tangleplay settings set renderer_command '<command>'")
    return hints


def _probe(command: str, runner: Callable[..., subprocess.CompletedProcess]) -> bool:
    try:
        result = runner(
            [*shlex.split(command), "--version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        log.debug("renderer_probe_failed", extra={"command": command, "error": str(exc)})
        return False

    return result.returncode == 0


def find_working_renderer(
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    *,
    sandboxed: Optional[bool] = None,
) -> str:
    """Return the first renderer command that answers ``--version``."""

    if sandboxed is None:
        sandboxed = FLATPAK_INFO.exists()
    candidates = _SANDBOXED_CANDIDATES if sandboxed else _HOST_CANDIDATES

    for command in candidates:
        if _probe(command, runner):
            log.info("renderer_found", extra={"command": command})
            return command

    raise RendererNotFoundError("could not find a working mpv", remediation_hints())


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def build_command_line(command: str, ipc_path: str, auth_token: str, stream_url: str) -> List[str]:
    """Shell invocation for ``command``; the command itself may carry arguments."""

    args = [
        *RENDERER_FLAGS,
        f"--input-ipc-server={ipc_path}",
        f"--http-header-fields=Authorization: Basic {auth_token}",
        stream_url,
    ]
    if _IS_WINDOWS:
        return ["cmd", "/c", f"{command} {subprocess.list2cmdline(args)}"]

    return ["sh", "-c", " ".join([command, *(shlex.quote(a) for a in args)])]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@dataclass
class RendererHandle:
    """Process, IPC socket and its scratch directory; released together."""

    process: subprocess.Popen
    ipc_dir: Path
    ipc_path: Path
    stop_requested: bool = False
    released: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid


@dataclass(frozen=True)
class RendererExit:
    returncode: Optional[int]
    intentional: bool

    @property
    def failed(self) -> bool:
        return not self.intentional and self.returncode not in (0, None)


class RendererProcessManager:
    """Starts the renderer detached from our process group and tears it down."""

    def __init__(
        self,
        temp_root: Optional[str] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._temp_root = temp_root
        self._popen = popen

    def start(self, command: str, stream_url: str, auth_token: str) -> tuple[str, RendererHandle]:
        if not command.strip():
            raise RendererNotFoundError("no renderer command configured", remediation_hints())

        # Fresh directory per session; never reuse a socket left by a crashed run.
        ipc_dir = Path(tempfile.mkdtemp(prefix=IPC_DIR_PREFIX, dir=self._temp_root))
        ipc_path = ipc_dir / IPC_SOCKET_NAME
        argv = build_command_line(command, str(ipc_path), auth_token, stream_url)

        popen_kwargs: dict = {
            "stdin": subprocess.DEVNULL,
        }
        if _IS_WINDOWS:
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        try:
            process = self._popen(argv, **popen_kwargs)
        except OSError as exc:
            shutil.rmtree(ipc_dir, ignore_errors=True)
            raise RendererStartError(f"could not start renderer: {exc}") from exc

        log.info("renderer_started", extra={"pid": process.pid, "ipc_path": str(ipc_path)})
        return str(ipc_path), RendererHandle(process=process, ipc_dir=ipc_dir, ipc_path=ipc_path)

    def stop(self, handle: RendererHandle) -> None:
        """Kill the renderer tree and remove its IPC directory. Safe to repeat."""

        with handle._lock:
            handle.stop_requested = True
            if handle.released:
                return
            try:
                self._terminate(handle.process)
            finally:
                # The directory goes with the handle even when the kill fails.
                shutil.rmtree(handle.ipc_dir, ignore_errors=True)
                handle.released = True
        log.info("renderer_stopped", extra={"pid": handle.pid})

    def wait(self, handle: RendererHandle) -> RendererExit:
        """Block until the renderer exits and classify the exit."""

        returncode = handle.process.wait()
        # Must be read after wait() returns: a kill from stop() sets it first.
        intentional = handle.stop_requested
        outcome = RendererExit(returncode=returncode, intentional=intentional)
        if outcome.failed:
            log.error("renderer_crashed", extra={"pid": handle.pid, "returncode": returncode})
        else:
            log.info("renderer_exited", extra={"pid": handle.pid, "returncode": returncode, "intentional": intentional})
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _terminate(self, process: subprocess.Popen) -> None:
        if _IS_WINDOWS:
            _kill_tree(process.pid)
        else:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                log.debug("renderer_already_exited", extra={"pid": process.pid})
            except PermissionError as exc:
                raise PlayerError(f"could not stop renderer: {exc}") from exc
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired as exc:
            raise PlayerError(f"renderer {process.pid} did not exit after kill") from exc


def _kill_tree(pid: int) -> None:
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        log.debug("renderer_already_exited", extra={"pid": pid})
        return

    try:
        procs: Sequence[psutil.Process] = [*parent.children(recursive=True), parent]
    except psutil.NoSuchProcess:
        procs = [parent]

    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs(procs, timeout=5)
