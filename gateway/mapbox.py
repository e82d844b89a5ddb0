from __future__ import annotations

"""
Mapbox adapter: forward geocoding and static raster tiles.

The access token is passed per call (it comes out of a verified capability
token), so one client and one connection pool serve every site.

Usage:
    mb = MapboxClient()
    fc = mb.geocode("1600 Pennsylvania Ave", access_token=scope.map_provider_key)
    c = first_center(fc)             # Resolved | None
    resp = mb.open_tile("streets-v12", 12, 1205, 1539, access_token=...)
"""

from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

import requests

from common.errors import NotFound, UpstreamError
from common.logging_setup import get_logger, redact
from common.types import Resolved


log = get_logger(__name__)


def first_center(feature_collection: Dict[str, Any]) -> Optional[Resolved]:
    """The first feature's `center` ([lon, lat]) is the coordinate of record."""
    feats = (feature_collection or {}).get("features") or []
    if not feats:
        return None
    center = feats[0].get("center") or (feats[0].get("geometry") or {}).get("coordinates")
    try:
        lon, lat = float(center[0]), float(center[1])
        return Resolved(lat, lon)
    except (TypeError, ValueError, IndexError):
        return None


class MapboxClient:
    def __init__(self, api_base: str = "https://api.mapbox.com", session: Optional[requests.Session] = None):
        """
        Params:
            api_base: scheme+host of the Mapbox API
            session: optional requests.Session for connection reuse
        """
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()

    # ----------------------------
    # URLs (no request performed)
    # ----------------------------
    def geocode_url(self, address: str, access_token: str, limit: Optional[int] = None) -> str:
        params: Dict[str, Any] = {"access_token": access_token}
        if limit:
            params["limit"] = int(limit)
        return f"{self.api_base}/geocoding/v5/mapbox.places/{quote(address, safe='')}.json?{urlencode(params)}"

    def tile_url(self, style_id: str, z: int, x: int, y: int, access_token: str, user: str = "mapbox") -> str:
        return (
            f"{self.api_base}/styles/v1/{user}/{style_id}/tiles/{int(z)}/{int(x)}/{int(y)}"
            f"?{urlencode({'access_token': access_token})}"
        )

    # ----------------------------
    # Requests
    # ----------------------------
    def geocode(self, address: str, access_token: str, timeout: float = 5.0, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Forward-geocode `address` and return the provider's feature collection.

        Raises:
            UpstreamError: non-2xx (status propagated) or no response (500)
        """
        url = self.geocode_url(address, access_token, limit=limit)
        try:
            r = self.session.get(url, timeout=timeout)
        except requests.RequestException as e:
            log.warning("Mapbox geocode request failed: %s", redact(str(e), access_token))
            raise UpstreamError("Geocoding service failed") from e
        if not (200 <= r.status_code < 300):
            log.warning("Mapbox geocode returned %s", r.status_code)
            raise UpstreamError("Failed to fetch from Mapbox", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamError("Mapbox returned a non-JSON body") from e

    def open_tile(self, style_id: str, z: int, x: int, y: int, access_token: str, timeout: float = 10.0) -> requests.Response:
        """
        Start a streamed tile download. Caller owns the response and must
        close it (the tile proxy does so once the body is drained).

        Raises:
            NotFound: upstream 404
            UpstreamError: other non-2xx (status propagated) or no response (500)
        """
        url = self.tile_url(style_id, z, x, y, access_token)
        try:
            r = self.session.get(url, timeout=timeout, stream=True)
        except requests.RequestException as e:
            log.warning("Mapbox tile request failed: %s", redact(str(e), access_token))
            raise UpstreamError("Failed to fetch tile from Mapbox") from e
        if r.status_code == 404:
            r.close()
            raise NotFound("Tile not found")
        if not (200 <= r.status_code < 300):
            status = r.status_code
            r.close()
            log.warning("Mapbox tile returned %s", status)
            raise UpstreamError("Failed to fetch tile from Mapbox", status_code=status)
        return r
