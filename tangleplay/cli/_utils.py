"""Shared helpers for the tangleplay CLI modules."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, MutableMapping, NoReturn

Handler = Callable[[argparse.Namespace], None]


def add_command(parent: argparse._SubParsersAction, name: str, handler: Handler, **kwargs: Any) -> argparse.ArgumentParser:
    """Register ``name`` under ``parent`` and route it to ``handler``."""

    parser = parent.add_parser(name, **kwargs)
    parser.set_defaults(func=handler)
    return parser


def add_group(parent: argparse._SubParsersAction, name: str, **kwargs: Any) -> argparse._SubParsersAction:
    """Register a command group (``settings``, ``paths`` ...) whose sub-command is mandatory."""

    parser = parent.add_parser(name, **kwargs)
    group = parser.add_subparsers(dest=f"{name}_command", metavar="COMMAND")
    group.required = True
    return group


def dispatch(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return
    handler(args)


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))


def to_serializable(value: Any) -> Any:
    """Convert settings, models and enums into JSON-friendly structures.

    ``as_dict`` wins over the generic conversions so objects can mask
    secrets before they are printed.
    """

    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_serializable(item) for item in value]
    if hasattr(value, "as_dict"):
        return to_serializable(value.as_dict())
    if hasattr(value, "model_dump"):
        return to_serializable(value.model_dump())
    if is_dataclass(value) and not isinstance(value, type):
        return to_serializable(asdict(value))
    return str(value)


def parse_key_value_pairs(pairs: Iterable[str]) -> MutableMapping[str, str]:
    data: MutableMapping[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE syntax, got '{pair}'")
        data[key.strip()] = value.strip()
    return data


def exit_with_error(message: str, *, code: int = 1) -> NoReturn:
    sys.stderr.write(f"Error: {message}\n")
    raise SystemExit(code)


def exit_with_remedies(message: str, remedies: Iterable[str], *, code: int = 1) -> NoReturn:
    """Print an error followed by one line per thing the user can try."""

    lines = [f"Error: {message}", *(f"  - {hint}" for hint in remedies)]
    sys.stderr.write("\n".join(lines) + "\n")
    raise SystemExit(code)
