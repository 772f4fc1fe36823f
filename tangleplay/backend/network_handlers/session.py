from __future__ import annotations

from typing import Any, Collection, Dict, Optional, Type
import random
import socket
import time

import requests
from requests.adapters import HTTPAdapter

from tangleplay.backend.common.errors import NetworkError
from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.network_handlers.url_manager import URLManager

log = get_logger(__name__)


# ---------------- Exceptions ----------------

class NetError(NetworkError): ...
class RequestTimeout(NetError): ...
class DNSFailure(NetError): ...
class ConnectionFailed(NetError): ...
class Unauthorized(NetError): ...
class NotFound(NetError): ...
class GatewayBusy(NetError): ...
class ClientError(NetError): ...


_STATUS_ERRORS: Dict[int, Type[NetError]] = {
    401: Unauthorized,
    403: Unauthorized,
    404: NotFound,
}

# The gateway answers these while it is still fetching bundle metadata from peers.
_TRANSIENT_STATUSES = frozenset((408, 502, 503, 504))


def error_for_status(status: int, reason: str = "") -> NetError:
    label = f"{status} {reason}".strip()
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](label)
    if status >= 500:
        return GatewayBusy(label)
    return ClientError(label)


def _backoff_seconds(attempt: int, base_ms: int, max_ms: int, jitter_ms: int) -> float:
    delay = min(max_ms, base_ms * (2 ** (attempt - 1)))
    return (delay + random.randint(0, max(0, jitter_ms))) / 1000.0


class _Retry(Exception):
    def __init__(self, error: NetError) -> None:
        super().__init__(str(error))
        self.error = error


# ---------------- Main Session ----------------

class HttpSession:
    """
    HTTP client for the streaming gateway:
      - every request is resolved and authenticated through URLManager
      - connection errors, timeouts and busy answers are retried with backoff
      - failures surface as typed NetError subclasses
    """

    retry_max_attempts = 3
    base_backoff_ms = 250
    max_backoff_ms = 2000
    jitter_ms = 100

    def __init__(self, urlm: URLManager, timeout: float = 20):
        self.urlm = urlm
        self.timeout = timeout

        self._session = requests.Session()
        adapter = HTTPAdapter(pool_connections=2, pool_maxsize=4)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def get(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        allowed_statuses: Optional[Collection[int]] = None,
        stream: bool = False,
        retries: Optional[int] = None,
    ) -> requests.Response:
        """GET ``path`` on the gateway; ``retries`` is the total number of attempts."""

        url, auth = self.urlm.build(path, params)
        merged = {**auth, **(headers or {})}
        allowed = frozenset(allowed_statuses or ())
        attempts = max(1, self.retry_max_attempts if retries is None else retries)

        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(url, merged, allowed, stream)
            except _Retry as retry:
                if attempt == attempts:
                    raise retry.error from retry.error.__cause__
                delay = _backoff_seconds(attempt, self.base_backoff_ms, self.max_backoff_ms, self.jitter_ms)
                log.debug(
                    "http_retry",
                    extra={"url": url, "attempt": attempt, "retry_in": delay, "error": str(retry.error)},
                )
                time.sleep(delay)

        raise NetError(f"no attempt made for {url}")  # pragma: no cover

    def close(self) -> None:
        self._session.close()

    def _attempt(
        self,
        url: str,
        headers: Dict[str, str],
        allowed: Collection[int],
        stream: bool,
    ) -> requests.Response:
        try:
            resp = self._session.get(url, headers=headers, timeout=self.timeout, stream=stream)
        except requests.exceptions.Timeout as exc:
            error: NetError = RequestTimeout(str(exc))
            error.__cause__ = exc
            raise _Retry(error)
        except requests.exceptions.ConnectionError as exc:
            if isinstance(exc.__cause__, socket.gaierror):
                raise DNSFailure(str(exc)) from exc
            error = ConnectionFailed(str(exc))
            error.__cause__ = exc
            raise _Retry(error)
        except requests.exceptions.RequestException as exc:
            raise NetError(str(exc)) from exc

        status = resp.status_code
        if status < 400 or status in allowed:
            return resp

        resp.close()
        error = error_for_status(status, resp.reason or "")
        if status in _TRANSIENT_STATUSES:
            raise _Retry(error)
        raise error
