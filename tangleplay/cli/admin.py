"""Administrative CLI for inspecting and configuring tangleplay."""

from __future__ import annotations

import argparse
from typing import Any, Dict, Optional, Sequence

from tangleplay.backend.common.errors import ConfigError
from tangleplay.backend.player.exceptions import RendererNotFoundError
from tangleplay.backend.player.renderer import find_working_renderer
from tangleplay.config import settings
from tangleplay.config.settings import paths as path_settings

from ._utils import (
    add_command,
    add_group,
    dispatch,
    exit_with_error,
    parse_key_value_pairs,
    print_json,
    to_serializable,
)

_INT_KEYS = {"verbosity"}
_FLOAT_KEYS = {"http_timeout"}


def _coerce_setting(key: str, raw: str) -> Any:
    if key in _INT_KEYS:
        try:
            return int(raw)
        except ValueError:
            exit_with_error(f"'{key}' expects an integer, got '{raw}'")
    if key in _FLOAT_KEYS:
        try:
            return float(raw)
        except ValueError:
            exit_with_error(f"'{key}' expects a number, got '{raw}'")
    if key == "log_level":
        return raw.upper()
    return raw


def _settings_payload(reload: bool = False) -> Dict[str, Any]:
    return to_serializable(settings.get_settings(reload=reload))


def _handle_settings_show(args: argparse.Namespace) -> None:
    print_json(_settings_payload(reload=args.reload))


def _handle_settings_set(args: argparse.Namespace) -> None:
    try:
        pairs = parse_key_value_pairs(args.pairs)
    except argparse.ArgumentTypeError as exc:
        exit_with_error(str(exc))
    changes = {key: _coerce_setting(key, value) for key, value in pairs.items()}
    try:
        updated = settings.update_settings(**changes)
    except ConfigError as exc:
        exit_with_error(f"{exc}. Known settings: {', '.join(settings.PERSISTED_KEYS)}")
    print_json(to_serializable(updated))


def _handle_paths_show(_: argparse.Namespace) -> None:
    print_json(path_settings.describe_paths())


def _handle_renderer_check(args: argparse.Namespace) -> None:
    current = settings.get_settings()
    try:
        command = find_working_renderer()
    except RendererNotFoundError as exc:
        print_json({"found": False, "configured": current.renderer_command, "remedies": list(exc.remedies)})
        raise SystemExit(1)

    payload: Dict[str, Any] = {"found": True, "command": command, "configured": current.renderer_command}
    if args.save:
        updated = settings.update_settings(renderer_command=command)
        payload["configured"] = updated.renderer_command
    print_json(payload)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tangleplay-admin", description="Inspect and configure tangleplay.")
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    settings_group = add_group(commands, "settings", help="Show or change persisted settings.")
    show = add_command(settings_group, "show", _handle_settings_show, help="Display the effective settings.")
    show.add_argument("--reload", action="store_true", help="Re-read environment and settings file first.")
    store = add_command(settings_group, "set", _handle_settings_set, help="Persist one or more settings.")
    store.add_argument(
        "pairs",
        nargs="+",
        metavar="KEY=VALUE",
        help=f"Settings to store ({', '.join(settings.PERSISTED_KEYS)}).",
    )

    paths_group = add_group(commands, "paths", help="Show configuration file locations.")
    add_command(paths_group, "show", _handle_paths_show, help="Display resolved configuration paths.")

    renderer_group = add_group(commands, "renderer", help="Locate the external media renderer.")
    check = add_command(renderer_group, "check", _handle_renderer_check, help="Probe for a working mpv command.")
    check.add_argument("--save", action="store_true", help="Store the discovered command in the settings file.")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    dispatch(parser, parser.parse_args(argv))


if __name__ == "__main__":  # pragma: no cover
    main()
