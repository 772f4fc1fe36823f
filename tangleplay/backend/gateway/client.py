"""Black-box access to the streaming gateway: metadata lookup and stream URLs."""

from __future__ import annotations

from typing import Optional
import time

import requests
from pydantic import ValidationError

from tangleplay.backend.common.errors import GatewayError
from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.common.types import HttpResult
from tangleplay.backend.gateway.models import TorrentInfo
from tangleplay.backend.network_handlers.session import HttpSession, NetError
from tangleplay.backend.network_handlers.url_manager import URLManager
from tangleplay.config import settings

log = get_logger(__name__)


class GatewayClient:
    """Talks to an HTTP gateway that serves files of peer-to-peer bundles."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 20,
        session: Optional[HttpSession] = None,
    ) -> None:
        self.urlm = URLManager(base_url, username, password)
        self._http = session or HttpSession(self.urlm, timeout=timeout)

    @classmethod
    def from_settings(cls) -> "GatewayClient":
        cfg = settings.get_settings()
        return cls(
            cfg.gateway_url,
            cfg.gateway_username,
            cfg.gateway_password,
            timeout=cfg.http_timeout,
        )

    @property
    def base_url(self) -> str:
        return self.urlm.view.base_url

    @property
    def username(self) -> str:
        return self.urlm.view.username

    def lookup(self, identifier: str) -> TorrentInfo:
        log.info("gateway_lookup", extra={"identifier": identifier})
        try:
            response = self._http.get("/info", params={"magnet": identifier})
        except NetError as exc:
            raise GatewayError(f"Could not get info for {identifier}: {exc}") from exc
        try:
            return TorrentInfo.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise GatewayError(f"Gateway returned an invalid info payload: {exc}") from exc

    def stream_url(self, identifier: str, file_path: str) -> str:
        return self.urlm.stream_url(identifier, file_path)

    def auth_token(self) -> str:
        return self.urlm.auth_token()

    def open_stream(self, url: str) -> requests.Response:
        """Authenticated streaming GET; the caller closes the response."""

        return self._http.get(url, stream=True, retries=1)

    def probe(self) -> HttpResult:
        """Reachability check against the gateway root; any HTTP answer counts as reachable."""

        url, _ = self.urlm.build("/")
        started = time.monotonic()
        try:
            response = self._http.get("/", allowed_statuses=range(400, 600), retries=1)
        except NetError as exc:
            elapsed = int((time.monotonic() - started) * 1000)
            log.warning("gateway_unreachable", extra={"url": url, "error": str(exc)})
            return HttpResult(url=url, status_code=0, ok=False, elapsed_ms=elapsed, error=str(exc))
        elapsed = int((time.monotonic() - started) * 1000)
        response.close()
        # 401 still proves something is listening; bad credentials show up on lookup.
        ok = response.status_code < 500
        return HttpResult(url=url, status_code=response.status_code, ok=ok, elapsed_ms=elapsed)

    def close(self) -> None:
        self._http.close()
