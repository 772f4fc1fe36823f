import io
import webbrowser
from unittest.mock import MagicMock

import pytest

from tangleplay.backend.common.error_surface import ISSUES_URL, ErrorSurface
from tangleplay.backend.player.exceptions import PlayerError


def _surface(opener=None):
    stream = io.StringIO()
    exit_ = MagicMock()
    surface = ErrorSurface(opener=opener or MagicMock(return_value=True), exit=exit_, stream=stream)
    return surface, exit_, stream


def test_show_writes_error_and_where_to_report():
    surface, exit_, stream = _surface()

    surface.show(PlayerError("renderer exited with status 2"))

    assert "Error: renderer exited with status 2" in stream.getvalue()
    assert ISSUES_URL in stream.getvalue()
    assert isinstance(surface.last_error, PlayerError)
    exit_.assert_not_called()


def test_report_opens_issue_tracker_and_exits():
    opener = MagicMock(return_value=True)
    surface, exit_, stream = _surface(opener)

    surface.report()

    opener.assert_called_once_with(ISSUES_URL)
    exit_.assert_called_once_with(1)
    assert stream.getvalue() == ""


@pytest.mark.parametrize("opener", [MagicMock(return_value=False), MagicMock(side_effect=webbrowser.Error("no browser"))])
def test_report_prints_url_when_browser_unavailable(opener):
    surface, exit_, stream = _surface(opener)

    surface.report()

    assert ISSUES_URL in stream.getvalue()
    exit_.assert_called_once_with(1)


def test_close_exits_with_failure():
    surface, exit_, _ = _surface()

    surface.close()

    exit_.assert_called_once_with(1)


def test_default_exit_raises_system_exit():
    surface = ErrorSurface(opener=MagicMock(return_value=True), stream=io.StringIO())

    with pytest.raises(SystemExit) as excinfo:
        surface.close()
    assert excinfo.value.code == 1
