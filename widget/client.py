from __future__ import annotations

"""
HTTP client for the gateway, as used by the embedded widget.

Clients are handed out by an explicit `ClientRegistry` owned by whoever
composes the widget; there is no module-level cache of clients.
"""

import threading
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

import requests

from common.errors import InvalidToken, NotFound, UpstreamError
from common.logging_setup import get_logger
from common.map_styles import DEFAULT_STYLE
from common.types import Location, Resolved
from gateway.mapbox import first_center


log = get_logger(__name__)


class LocatorApiClient:
    def __init__(self, base_url: str, token: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        if not token:
            raise ValueError("widget token is required")
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = float(timeout)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}

    def _check(self, r: requests.Response, what: str) -> None:
        if r.status_code == 401:
            raise InvalidToken(f"{what}: unauthorized")
        if r.status_code == 404:
            raise NotFound(f"{what}: not found")
        if not (200 <= r.status_code < 300):
            raise UpstreamError(f"{what} failed", status_code=r.status_code)

    def _request(self, method: str, path: str, what: str, **kw) -> requests.Response:
        try:
            r = self.session.request(method, f"{self.base_url}{path}", headers=self._headers(), timeout=self.timeout, **kw)
        except requests.RequestException as e:
            raise UpstreamError(f"{what} failed: {type(e).__name__}") from e
        self._check(r, what)
        return r

    # ----------------------------
    # Public API
    # ----------------------------
    def fetch_locations(self) -> List[Location]:
        r = self._request("GET", "/api/locations", "locations")
        return [Location.from_cms_item(item) for item in r.json() or []]

    def geocode_batch(self, locations: Iterable[Location]) -> Dict[str, Resolved]:
        """POST the unresolved locations; ids missing from the reply stay unresolved."""
        payload = [{"id": loc.id, "address": loc.address} for loc in locations]
        if not payload:
            return {}
        r = self._request("POST", "/api/geocode", "geocode batch", json={"locations": payload})
        out: Dict[str, Resolved] = {}
        for row in (r.json() or {}).get("geocodedLocations") or []:
            try:
                out[str(row["id"])] = Resolved(float(row["latitude"]), float(row["longitude"]))
            except (KeyError, TypeError, ValueError):
                log.warning("dropping malformed geocode row")
        return out

    def geocode_address(self, address: str) -> Resolved:
        r = self._request("GET", "/api/geocode", "geocode", params={"address": address})
        c = first_center(r.json())
        if c is None:
            raise NotFound("Location not found.")
        return c

    def tile_url_template(self, style: str = DEFAULT_STYLE) -> str:
        """Leaflet-style `{z}/{x}/{y}` template; the token rides in the query string."""
        q = urlencode({"token": self.token, "style": style})
        return f"{self.base_url}/api/maps/tiles/{{z}}/{{x}}/{{y}}.png?{q}"


class ClientRegistry:
    """
    Hands out one client per (base URL, token). Construct one registry per
    composition root (or per test) and pass it where clients are needed.
    """

    def __init__(self, session_factory=requests.Session, timeout: float = 10.0):
        self._session_factory = session_factory
        self._timeout = timeout
        self._clients: Dict[Tuple[str, str], LocatorApiClient] = {}
        self._lock = threading.Lock()

    def get(self, base_url: str, token: str) -> LocatorApiClient:
        key = ((base_url or "").rstrip("/"), token)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = LocatorApiClient(key[0], token, session=self._session_factory(), timeout=self._timeout)
                self._clients[key] = client
            return client

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)
