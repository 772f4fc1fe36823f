"""Playback CLI: inspect a bundle and play one of its files through mpv."""

from __future__ import annotations

import argparse
import queue
import sys
import threading
from typing import Callable, Iterable, Optional, Sequence

from tangleplay.backend.common.error_surface import ErrorSurface
from tangleplay.backend.common.errors import GatewayError
from tangleplay.backend.common.logging import init_logging
from tangleplay.backend.gateway import GatewayClient
from tangleplay.backend.player.exceptions import PlayerError, RendererNotFoundError
from tangleplay.backend.player.renderer import find_working_renderer
from tangleplay.backend.player.session import (
    ControlEvent,
    ControlIntent,
    PlayRequest,
    SessionController,
    SessionUpdate,
    UpdateKind,
)
from tangleplay.backend.wizard import (
    LOOKUP_FAILED_NOTICE,
    SelectionState,
    WizardController,
    WizardEvent,
    WizardEventType,
    WizardStep,
)
from tangleplay.config import settings
from tangleplay.config.settings import get_player_temp_dir

from ._utils import add_command, dispatch, exit_with_error, exit_with_remedies, print_json

CONTROLS_HELP = """Controls:
  p               play / pause
  s <position>    seek to seconds or HH:MM:SS
  v <0-100>       volume
  f               toggle fullscreen
  subs            list subtitle options
  sub <n>         select subtitle option n
  add <path>      use a subtitle file from disk
  l               show the magnet link to share it
  q               stop playback"""

RIGHTS_PROMPT = "Do you have the right to stream this file? [y/N] "

Prompt = Callable[[str], str]


def parse_position(text: str) -> float:
    """Seconds from ``90``, ``1:30`` or ``01:01:30``."""

    parts = text.strip().split(":")
    if not parts or len(parts) > 3:
        raise ValueError(f"invalid position '{text}'")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    if seconds < 0:
        raise ValueError(f"invalid position '{text}'")
    return seconds


def parse_control(line: str) -> Optional[ControlEvent]:
    """Map one line typed by the user onto a control event; ``None`` if it is not one."""

    command, _, rest = line.strip().partition(" ")
    command = command.lower()
    rest = rest.strip()
    try:
        if command in ("p", "pause", "play"):
            return ControlEvent(ControlIntent.TOGGLE_PLAY)
        if command in ("s", "seek") and rest:
            return ControlEvent(ControlIntent.SEEK, parse_position(rest))
        if command in ("v", "volume") and rest:
            return ControlEvent(ControlIntent.SET_VOLUME, max(0.0, min(100.0, float(rest))) / 100)
        if command in ("f", "fullscreen"):
            return ControlEvent(ControlIntent.SET_FULLSCREEN)
        if command == "sub" and rest:
            return ControlEvent(ControlIntent.SELECT_SUBTITLE, int(rest))
        if command == "add" and rest:
            return ControlEvent(ControlIntent.ADD_SUBTITLE_FILE, rest)
        if command in ("q", "quit", "stop"):
            return ControlEvent(ControlIntent.STOP)
    except ValueError:
        return None
    return None


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------

def _print_candidates(state: SelectionState) -> None:
    print(state.title)
    print()
    print(state.description)
    print()
    for number, candidate in enumerate(state.candidates, start=1):
        print(f"{number:3d}. {candidate.display_name} ({candidate.size_label})")


def _choose_file(state: SelectionState, prompt: Prompt) -> str:
    _print_candidates(state)
    while True:
        answer = prompt(f"Select a file [1-{len(state.candidates)}]: ").strip()
        try:
            index = int(answer) - 1
        except ValueError:
            continue
        if 0 <= index < len(state.candidates):
            return state.candidates[index].display_path


def run_wizard(
    wizard: WizardController,
    identifier: str,
    *,
    file_path: Optional[str] = None,
    confirmed: bool = False,
    prompt: Prompt = input,
    poll: float = 0.1,
) -> PlayRequest:
    wizard.dispatch(WizardEvent(WizardEventType.IDENTIFIER_CHANGED, identifier))
    wizard.dispatch(WizardEvent(WizardEventType.SUBMIT))
    if not wizard.state.busy:
        exit_with_error("Enter a magnet link.")

    sys.stderr.write("Getting info ...\n")
    state = wizard.state
    while state.busy:
        state = wizard.pump(timeout=poll)
    if state.notice:
        exit_with_error(state.notice)
    if not state.candidates:
        exit_with_error("This magnet link contains no files.")

    path = file_path or _choose_file(state, prompt)
    state = wizard.dispatch(WizardEvent(WizardEventType.MEDIA_SELECTED, path))
    if state.selected_path != path:
        exit_with_error(f"'{path}' is not part of this magnet link.")

    if not confirmed:
        confirmed = prompt(RIGHTS_PROMPT).strip().lower() in ("y", "yes")
    wizard.dispatch(WizardEvent(WizardEventType.RIGHTS_TOGGLED, confirmed))
    state = wizard.dispatch(WizardEvent(WizardEventType.NEXT))
    if state.step is not WizardStep.READY:
        exit_with_error("Playback needs the rights confirmation.")

    wizard.dispatch(WizardEvent(WizardEventType.PLAY))
    return wizard.play_request()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def _resolve_renderer(explicit: Optional[str]) -> str:
    if explicit:
        return explicit
    cfg = settings.get_settings()
    if cfg.has_renderer:
        return cfg.renderer_command
    try:
        command = find_working_renderer()
    except RendererNotFoundError as exc:
        exit_with_remedies(str(exc), exc.remedies)
    return settings.update_settings(renderer_command=command).renderer_command


def _start_line_reader(stream: Iterable[str]) -> "queue.Queue[Optional[str]]":
    lines: "queue.Queue[Optional[str]]" = queue.Queue()

    def _read() -> None:
        for line in stream:
            lines.put(line.strip())
        lines.put(None)

    threading.Thread(target=_read, name="tangleplay-stdin", daemon=True).start()
    return lines


def _print_subtitles(controller: SessionController) -> None:
    active = controller.session.active_subtitle_index if controller.session else 0
    for index, option in enumerate(controller.subtitle_options):
        marker = "*" if index == active else " "
        print(f"{marker} {index}. {option.title} ({option.subtitle})")


def _show_update(controller: SessionController, update: SessionUpdate) -> None:
    if update.kind is UpdateKind.CONNECTED:
        print("Preparing stream ...")
    elif update.kind is UpdateKind.READY:
        print("Ready.")
    elif update.kind is UpdateKind.PROGRESS and update.progress is not None:
        progress = update.progress
        sys.stdout.write(f"\r{progress.elapsed_label} {progress.remaining_label}")
        sys.stdout.flush()
    elif update.kind is UpdateKind.SUBTITLE_CHANGED and update.subtitle_index is not None:
        option = controller.subtitle_options[update.subtitle_index]
        print(f"\nSubtitles: {option.title}")


def run_session(
    controller: SessionController,
    lines: "queue.Queue[Optional[str]]",
    surface: ErrorSurface,
    *,
    poll: float = 0.1,
) -> int:
    """Drive one session from typed commands until it ends."""

    controller.start()
    print(CONTROLS_HELP)
    awaiting_choice = False

    while True:
        update = controller.updates.get(timeout=poll)
        if update is not None:
            if not controller.apply(update):
                continue
            if update.kind is UpdateKind.ERROR and update.error is not None:
                if not awaiting_choice:
                    surface.show(update.error)
                    print("Type 'r' to report the error or 'c' to close.")
                    awaiting_choice = True
            elif update.kind is UpdateKind.ENDED:
                if not awaiting_choice:
                    if update.reason == "renderer_gone":
                        print("\nLost the connection to the renderer.")
                    print("\nPlayback ended.")
                    return 0
            else:
                _show_update(controller, update)

        try:
            line = lines.get_nowait()
        except queue.Empty:
            continue

        if awaiting_choice:
            controller.teardown("error")
            if line is not None and line.lower().startswith("r"):
                surface.report()
            surface.close()
            return 1

        if line is None:
            controller.dispatch(ControlEvent(ControlIntent.STOP))
            continue
        if not line:
            continue
        if line.lower() in ("subs", "subtitles"):
            _print_subtitles(controller)
            continue
        if line.lower() in ("h", "help", "?"):
            print(CONTROLS_HELP)
            continue
        if line.lower() in ("l", "link"):
            print(controller.request.identifier)
            continue

        event = parse_control(line)
        if event is None:
            print(CONTROLS_HELP)
            continue
        if event.intent is ControlIntent.SELECT_SUBTITLE and not 0 <= event.value < len(controller.subtitle_options):
            print(f"\nNo subtitle option {event.value}; type 'subs' to list them.")
            continue
        if not controller.dispatch(event) and event.intent is not ControlIntent.STOP:
            print("\nNot connected to the renderer yet.")
        elif event.intent is ControlIntent.TOGGLE_PLAY and controller.session is not None:
            print("\nPaused." if controller.session.is_paused else "\nPlaying.")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _handle_info(args: argparse.Namespace) -> None:
    client = GatewayClient.from_settings()
    try:
        info = client.lookup(args.identifier)
    except GatewayError as exc:
        exit_with_error(f"{LOOKUP_FAILED_NOTICE} ({exc})")
    finally:
        client.close()

    print_json(
        {
            "name": info.name,
            "description": info.readme,
            "files": [
                {
                    "path": candidate.display_path,
                    "name": candidate.display_name,
                    "size_bytes": candidate.size_bytes,
                    "size": candidate.size_label,
                }
                for candidate in info.candidates()
            ],
        }
    )


def _handle_play(args: argparse.Namespace) -> None:
    renderer_command = _resolve_renderer(args.renderer)
    client = GatewayClient.from_settings()
    wizard = WizardController(client)
    try:
        request = run_wizard(wizard, args.identifier, file_path=args.file, confirmed=args.yes)
        controller = SessionController(
            request,
            client,
            renderer_command,
            temp_root=get_player_temp_dir(),
        )
        surface = ErrorSurface()
        try:
            code = run_session(controller, _start_line_reader(sys.stdin), surface)
        except PlayerError as exc:
            controller.teardown("error")
            surface.show(exc)
            surface.close()
            return
        finally:
            controller.teardown("stopped")
            wizard.dispatch(WizardEvent(WizardEventType.SESSION_ENDED))
    finally:
        wizard.close()
        client.close()
    raise SystemExit(code)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tangleplay", description="Stream files of a magnet link through mpv.")
    parser.add_argument(
        "-v",
        "--verbosity",
        type=int,
        help="Log verbosity from 0 (silent) to 7 (debug); defaults to the configured value.",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    info = add_command(commands, "info", _handle_info, help="Show the name, README and files of a magnet link.")
    info.add_argument("identifier", help="Magnet link.")

    play = add_command(commands, "play", _handle_play, help="Play one file of a magnet link.")
    play.add_argument("identifier", help="Magnet link.")
    play.add_argument("--file", help="Path of the file inside the bundle; asks when omitted.")
    play.add_argument("--renderer", help="Renderer command for this run (e.g. 'flatpak run io.mpv.Mpv').")
    play.add_argument("-y", "--yes", action="store_true", help="Confirm you have the right to stream the file.")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    cfg = settings.get_settings()
    init_logging(cfg.log_level, verbosity=cfg.verbosity if args.verbosity is None else args.verbosity)
    dispatch(parser, args)


if __name__ == "__main__":  # pragma: no cover
    main()
