"""Single place every user-visible failure ends up."""

from __future__ import annotations

import sys
import webbrowser
from typing import Callable, NoReturn, Optional, TextIO

from tangleplay.backend.common.logging import get_logger

log = get_logger(__name__)

ISSUES_URL = "https://github.com/tangleplay/tangleplay/issues"


class ErrorSurface:
    """Shows an error and offers two terminal ways out: report it or close the app.

    Both end the process with exit code 1; nothing is retried once an error
    reaches this point.
    """

    def __init__(
        self,
        *,
        issues_url: str = ISSUES_URL,
        opener: Callable[[str], bool] = webbrowser.open,
        exit: Callable[[int], NoReturn] = sys.exit,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.issues_url = issues_url
        self._opener = opener
        self._exit = exit
        self._stream = stream
        self.last_error: Optional[BaseException] = None

    def show(self, error: BaseException) -> None:
        self.last_error = error
        log.error("error_surfaced", extra={"error": str(error), "error_type": type(error).__name__})
        stream = self._stream or sys.stderr
        stream.write(f"Error: {error}\n")
        stream.write(f"Report it at {self.issues_url} or close tangleplay.\n")
        stream.flush()

    def report(self) -> NoReturn:
        try:
            opened = self._opener(self.issues_url)
        except webbrowser.Error as exc:
            log.warning("issues_url_open_failed", extra={"url": self.issues_url, "error": str(exc)})
            opened = False
        if not opened:
            (self._stream or sys.stderr).write(f"Open {self.issues_url} to report the error.\n")
        self._exit(1)

    def close(self) -> NoReturn:
        self._exit(1)
