import json
import socket
import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from conftest import wait_until
from tangleplay.backend.common.dispatch import UpdateQueue
from tangleplay.backend.gateway.models import MediaCandidate
from tangleplay.backend.network_handlers.session import NotFound
from tangleplay.backend.player.exceptions import PlayerError, SubtitleFetchError
from tangleplay.backend.player.renderer import RendererExit
from tangleplay.backend.player.session import (
    ControlEvent,
    ControlIntent,
    PlayRequest,
    SessionController,
    SessionUpdate,
    UpdateKind,
)
from tangleplay.backend.player.subtitles import build_subtitle_candidates
from tangleplay.backend.player.sync import PlaybackProgress, SeekGuard

CONNECT = "tangleplay.backend.player.session.connect_with_retry"


class FakeMpv:
    """Answers IPC requests like mpv would and records every command."""

    def __init__(self, sock, duration=125.4, position=10.0):
        self.sock = sock
        self.duration = duration
        self.position = position
        self.commands = []
        self._lock = threading.Lock()
        threading.Thread(target=self._run, daemon=True).start()

    def sent(self, *command):
        with self._lock:
            return list(command) in self.commands

    def _run(self):
        try:
            with self.sock.makefile("rb") as reader:
                for line in reader:
                    command = json.loads(line)["command"]
                    with self._lock:
                        self.commands.append(command)
                    data = None
                    if command[:2] == ["get_property", "duration"]:
                        data = self.duration
                    elif command[:2] == ["get_property", "time-pos"]:
                        data = self.position
                    self.sock.sendall((json.dumps({"data": data, "error": "success"}) + "\n").encode())
        except OSError:
            pass

    def hang_up(self):
        self.sock.shutdown(socket.SHUT_RDWR)


class FakeManager:
    def __init__(self, returncode=0):
        self.returncode = returncode
        self.exited = threading.Event()
        self.started = None
        self.stop_calls = 0

    def start(self, command, stream_url, auth_token):
        self.started = (command, stream_url, auth_token)
        return "/tmp/mpv-ipc-test/mpv.sock", SimpleNamespace(pid=4242, stop_requested=False)

    def stop(self, handle):
        handle.stop_requested = True
        self.stop_calls += 1
        self.exited.set()

    def wait(self, handle):
        self.exited.wait()
        return RendererExit(returncode=self.returncode, intentional=handle.stop_requested)

    def crash(self):
        self.exited.set()


def _collect(controller, kind, timeout=3.0):
    """Drain updates (applying them) until one of ``kind`` shows up."""

    seen = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        update = controller.updates.get(timeout=0.05)
        if update is None:
            continue
        controller.apply(update)
        seen.append(update)
        if update.kind is kind:
            return seen
    raise AssertionError(f"no {kind} update; saw {[u.kind for u in seen]}")


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.stream_url.return_value = "http://gw/stream?magnet=id&path=Bundle%2Fmovie.mkv"
    gateway.auth_token.return_value = "dXNlcjpwYXNz"
    return gateway


@pytest.fixture
def request_():
    bundle = [MediaCandidate("Bundle/movie.mkv"), MediaCandidate("Bundle/movie.en.srt")]
    return PlayRequest(
        identifier="magnet:?xt=urn:btih:abc",
        selected_path="Bundle/movie.mkv",
        title="Bundle",
        subtitle_candidates=tuple(build_subtitle_candidates(bundle, "Bundle/movie.mkv")),
    )


@pytest.fixture
def wired(gateway, request_, tmp_path):
    left, right = socket.socketpair()
    mpv = FakeMpv(right)
    manager = FakeManager()
    controller = SessionController(
        request_,
        gateway,
        "mpv",
        manager=manager,
        poll_interval=0.01,
        connect_interval=0.01,
        temp_root=str(tmp_path),
    )
    with patch(CONNECT, return_value=left):
        controller.start()
        seen = _collect(controller, UpdateKind.CONNECTED)
    yield SimpleNamespace(controller=controller, mpv=mpv, manager=manager, gateway=gateway, seen=seen)
    controller.teardown("test_done")
    for sock in (left, right):
        sock.close()


def test_start_spawns_renderer_with_stream_url_and_token(wired, request_):
    assert wired.manager.started == ("mpv", "http://gw/stream?magnet=id&path=Bundle%2Fmovie.mkv", "dXNlcjpwYXNz")
    wired.gateway.stream_url.assert_called_once_with(request_.identifier, request_.selected_path)
    session = wired.controller.session
    assert session.ipc_endpoint_path == "/tmp/mpv-ipc-test/mpv.sock"
    assert session.is_paused is True


def test_volume_is_set_to_full_after_connecting(wired):
    assert wired.mpv.commands[0] == ["set_property", "volume", 100.0]


def test_polling_reports_ready_then_progress(wired):
    seen = list(wired.seen)
    if UpdateKind.READY not in [u.kind for u in seen]:
        seen += _collect(wired.controller, UpdateKind.READY)
    seen += _collect(wired.controller, UpdateKind.PROGRESS)

    assert [u.kind for u in seen].count(UpdateKind.READY) == 1
    assert wired.controller.session.total_duration == 125.4
    assert wired.controller.session.last_known_position == 10.0


def test_controls_translate_to_commands(wired):
    controller = wired.controller

    assert controller.dispatch(ControlEvent(ControlIntent.TOGGLE_PLAY))
    assert controller.session.is_paused is False
    assert controller.dispatch(ControlEvent(ControlIntent.SET_VOLUME, 0.25))
    assert controller.dispatch(ControlEvent(ControlIntent.SET_FULLSCREEN))
    assert controller.session.is_fullscreen is True
    assert controller.dispatch(ControlEvent(ControlIntent.SEEK, 61.7))

    assert wired.mpv.sent("set_property", "pause", False)
    assert wired.mpv.sent("set_property", "volume", 25.0)
    assert wired.mpv.sent("set_property", "fullscreen", True)
    assert wired.mpv.sent("seek", 61, "absolute")
    assert controller.session.last_known_position == 61.7


def test_seek_hover_marks_pointer_over_the_bar(wired):
    wired.controller.dispatch(ControlEvent(ControlIntent.SEEK_HOVER, True))

    assert wired.controller.session.seek_guard.hovering is True


def test_selecting_none_subtitle_clears_tracks(wired):
    assert wired.controller.dispatch(ControlEvent(ControlIntent.SELECT_SUBTITLE, 0))

    seen = _collect(wired.controller, UpdateKind.SUBTITLE_CHANGED)

    assert seen[-1].subtitle_index == 0
    assert wired.mpv.sent("change-list", "sub-files", "clr")
    wired.gateway.open_stream.assert_not_called()


def test_subtitle_fetch_failure_surfaces_error_and_keeps_session(wired):
    wired.gateway.open_stream.side_effect = NotFound("404 Not Found")

    wired.controller.dispatch(ControlEvent(ControlIntent.SELECT_SUBTITLE, 1))
    seen = _collect(wired.controller, UpdateKind.ERROR)

    assert isinstance(seen[-1].error, SubtitleFetchError)
    assert wired.controller.session.active_subtitle_index == 0
    assert not wired.controller.torn_down


def test_adding_local_subtitle_file(wired, tmp_path):
    picked = tmp_path / "mine.srt"

    assert wired.controller.dispatch(ControlEvent(ControlIntent.ADD_SUBTITLE_FILE, str(picked)))
    seen = _collect(wired.controller, UpdateKind.SUBTITLE_CHANGED)

    assert seen[-1].subtitle_index == 2
    assert wired.controller.subtitle_options[2].title == "mine.srt"
    assert wired.controller.session.active_subtitle_index == 2
    assert wired.mpv.sent("change-list", "sub-files", "set", str(picked))


def test_stop_tears_down_once(wired):
    controller = wired.controller

    assert controller.dispatch(ControlEvent(ControlIntent.STOP))
    controller.teardown("again")
    seen = _collect(controller, UpdateKind.ENDED)

    assert wired.manager.stop_calls == 1
    assert controller.torn_down
    assert not controller.connected
    assert seen[-1].reason == "stopped"
    assert all(u.kind is not UpdateKind.ENDED for u in controller.updates.drain())
    assert controller.dispatch(ControlEvent(ControlIntent.TOGGLE_PLAY)) is False


def test_renderer_hang_up_ends_session(wired):
    wired.mpv.hang_up()

    seen = _collect(wired.controller, UpdateKind.ENDED)

    assert seen[-1].reason == "renderer_gone"
    assert all(u.kind is not UpdateKind.ERROR for u in seen)
    assert wired.manager.stop_calls == 1


def test_renderer_crash_surfaces_error(wired):
    wired.manager.returncode = 1
    wired.manager.crash()

    seen = _collect(wired.controller, UpdateKind.ENDED)
    kinds = [u.kind for u in seen]

    assert UpdateKind.ERROR in kinds
    assert kinds.index(UpdateKind.ERROR) < kinds.index(UpdateKind.ENDED)
    assert isinstance(next(u for u in seen if u.kind is UpdateKind.ERROR).error, PlayerError)
    assert seen[-1].reason == "renderer_exited"


def test_controls_are_ignored_until_connected(gateway, request_, tmp_path):
    manager = FakeManager()
    controller = SessionController(request_, gateway, "mpv", manager=manager, temp_root=str(tmp_path))
    with patch(CONNECT, return_value=None):
        controller.start()
        assert controller.dispatch(ControlEvent(ControlIntent.TOGGLE_PLAY)) is False
    assert controller.subtitle_options == list(request_.subtitle_candidates)
    controller.teardown("stopped")
    assert wait_until(lambda: manager.stop_calls == 1)


def test_teardown_removes_subtitle_scratch_directory(gateway, request_, tmp_path):
    controller = SessionController(
        request_, gateway, "mpv", manager=FakeManager(), temp_root=str(tmp_path), updates=UpdateQueue()
    )
    with patch(CONNECT, return_value=None):
        controller.start()
    scratch = [p for p in tmp_path.iterdir() if p.name.startswith("tangleplay-subtitles")]
    assert len(scratch) == 1

    controller.teardown("stopped")

    assert not scratch[0].exists()
    assert [u.kind for u in controller.updates.drain()] == [UpdateKind.ENDED]


def test_start_twice_is_refused(gateway, request_, tmp_path):
    controller = SessionController(request_, gateway, "mpv", manager=FakeManager(), temp_root=str(tmp_path))
    with patch(CONNECT, return_value=None):
        controller.start()
        with pytest.raises(PlayerError):
            controller.start()
    controller.teardown("stopped")


def test_out_of_range_subtitle_is_ignored(wired):
    assert wired.controller.dispatch(ControlEvent(ControlIntent.SELECT_SUBTITLE, 99)) is False
    assert wired.controller.dispatch(ControlEvent(ControlIntent.SELECT_SUBTITLE, -1)) is False

    time.sleep(0.05)
    assert all(u.kind is not UpdateKind.ERROR for u in wired.controller.updates.drain())
    assert wired.controller.session.active_subtitle_index == 0
    assert not wired.controller.torn_down


def test_polled_progress_is_dropped_while_seeking(gateway, request_, tmp_path):
    controller = SessionController(request_, gateway, "mpv", manager=FakeManager(), temp_root=str(tmp_path))
    with patch(CONNECT, return_value=None):
        controller.start()
    session = controller.session
    session.seek_guard = SeekGuard(clock=lambda: 0.0)
    session.seek_guard.interact()

    stale = SessionUpdate(UpdateKind.PROGRESS, progress=PlaybackProgress(total=100.0, elapsed=5.0), polled=True)
    assert controller.apply(stale) is False
    assert session.last_known_position == 0.0

    own = SessionUpdate(UpdateKind.PROGRESS, progress=PlaybackProgress(total=100.0, elapsed=42.0))
    assert controller.apply(own) is True
    assert session.last_known_position == 42.0
    controller.teardown("stopped")


class StuckManager(FakeManager):
    def stop(self, handle):
        super().stop(handle)
        raise PlayerError("could not stop renderer: [Errno 1] EPERM")


def test_failed_renderer_stop_is_reported_and_cleanup_continues(gateway, request_, tmp_path):
    controller = SessionController(
        request_, gateway, "mpv", manager=StuckManager(), temp_root=str(tmp_path), updates=UpdateQueue()
    )
    with patch(CONNECT, return_value=None):
        controller.start()

    controller.teardown("stopped")

    assert controller.torn_down
    assert list(tmp_path.iterdir()) == []
    updates = controller.updates.drain()
    assert [u.kind for u in updates] == [UpdateKind.ERROR, UpdateKind.ENDED]
    assert "EPERM" in str(updates[0].error)
