from unittest.mock import MagicMock

import pytest
import requests

from tangleplay.backend.network_handlers import session as http
from tangleplay.backend.network_handlers.url_manager import URLManager


def _response(status, reason=""):
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    return resp


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(http.time, "sleep", lambda _: None)
    session = http.HttpSession(URLManager("http://localhost:1337/", "user", "pass"), timeout=5)
    session._session = MagicMock()
    return session


def test_get_sends_basic_auth_and_query(client):
    client._session.get.return_value = _response(200)

    client.get("/info", params={"magnet": "abc"})

    client._session.get.assert_called_once_with(
        "http://localhost:1337/info?magnet=abc",
        headers={"Authorization": "Basic dXNlcjpwYXNz"},
        timeout=5,
        stream=False,
    )


def test_busy_gateway_is_retried(client):
    ok = _response(200)
    client._session.get.side_effect = [_response(503, "Service Unavailable"), ok]

    assert client.get("/info") is ok
    assert client._session.get.call_count == 2


def test_busy_gateway_gives_up_after_last_attempt(client):
    client._session.get.return_value = _response(503, "Service Unavailable")

    with pytest.raises(http.GatewayBusy):
        client.get("/info", retries=2)
    assert client._session.get.call_count == 2


@pytest.mark.parametrize("status, error", [(401, http.Unauthorized), (404, http.NotFound), (400, http.ClientError)])
def test_client_errors_are_not_retried(client, status, error):
    client._session.get.return_value = _response(status)

    with pytest.raises(error):
        client.get("/info")
    assert client._session.get.call_count == 1


def test_allowed_statuses_are_returned(client):
    client._session.get.return_value = _response(401)

    assert client.get("/", allowed_statuses=range(400, 600)).status_code == 401


def test_connection_errors_are_retried_then_typed(client):
    client._session.get.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(http.ConnectionFailed):
        client.get("/info")
    assert client._session.get.call_count == http.HttpSession.retry_max_attempts


def test_timeouts_are_typed(client):
    client._session.get.side_effect = requests.exceptions.ReadTimeout("slow")

    with pytest.raises(http.RequestTimeout):
        client.get("/info", retries=1)


@pytest.mark.parametrize("status, expected", [(404, http.NotFound), (503, http.GatewayBusy), (418, http.ClientError)])
def test_error_for_status(status, expected):
    error = http.error_for_status(status, "Reason")

    assert isinstance(error, expected)
    assert str(error) == f"{status} Reason"
