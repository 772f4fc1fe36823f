from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit



# ----------------------------
# Data views (read-only access)
# ----------------------------

@dataclass(frozen=True)
class GatewayView:
    base_url: str
    username: str
    password: str

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.password)


# ----------------------------
# URL Manager
# ----------------------------

class URLManager:
    """
    Builds gateway URLs and the headers that authenticate against it,
    without doing any network I/O.

    - Every gateway route is resolved relative to the configured base URL
    - Credentials travel as HTTP Basic auth, both for our own requests and
      for the header handed to the renderer
    """

    def __init__(self, base_url: str, username: str = "", password: str = ""):
        self._view = GatewayView(base_url=base_url, username=username, password=password)

    @property
    def view(self) -> GatewayView:
        return self._view

    # -------- Public API --------

    def build(self, path: str, params: Optional[Dict[str, Any]] = None
              ) -> Tuple[str, Dict[str, str]]:
        """
        Build a full URL for an absolute/relative path on the gateway.
        Returns (url, headers).
        """
        base = _ensure_trailing_slash(self._view.base_url)
        url = urljoin(base, path.lstrip("/")) if not _is_absolute(path) else path

        if params:
            url = _merge_query(url, params)

        return url, self.auth_headers()

    def stream_url(self, identifier: str, file_path: str) -> str:
        """URL that streams one file of the bundle identified by ``identifier``."""

        return stream_url(self._view.base_url, identifier, file_path)

    def auth_token(self) -> str:
        return basic_token(self._view.username, self._view.password)

    def auth_headers(self) -> Dict[str, str]:
        if not self._view.has_credentials:
            return {}

        return {"Authorization": f"Basic {self.auth_token()}"}


# ----------------------------
# Helpers
# ----------------------------

def stream_url(base: str, identifier: str, file_path: str) -> str:
    """Resolve ``/stream`` against ``base`` and attach the bundle + file query."""

    stream = urljoin(base, "/stream")

    return _merge_query(stream, {"magnet": identifier, "path": file_path})


def basic_token(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode("utf-8")

    return base64.b64encode(raw).decode("ascii")


def _merge_query(url: str, params: Dict[str, Any]) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({k: v for k, v in params.items() if v is not None})

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))


def _is_absolute(u: str) -> bool:
    return bool(urlsplit(u).scheme)


def _ensure_trailing_slash(u: str) -> str:
    return u if u.endswith("/") else (u + "/")
