from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator

from common.errors import MalformedRequest
from common.logging_setup import get_logger
from common.map_styles import resolve_style
from common.types import TokenScope
from gateway.mapbox import MapboxClient


log = get_logger(__name__)

MAX_ZOOM = 22


@dataclass
class TileResponse:
    """Streamed tile body plus the headers the proxy answers with."""
    body: Iterator[bytes]
    media_type: str = "image/png"
    headers: Dict[str, str] = field(default_factory=dict)


def validate_tile_coords(z: int, x: int, y: int) -> None:
    if not (0 <= z <= MAX_ZOOM):
        raise MalformedRequest(f"zoom out of range: {z}")
    n = 1 << z
    if not (0 <= x < n) or not (0 <= y < n):
        raise MalformedRequest(f"tile {x},{y} out of range at zoom {z}")


class TileProxy:
    """
    Proxies raster tiles from the map provider.

    The provider key only ever comes from the verified scope and the style
    only from the fixed style table, so nothing the caller sends reaches the
    upstream URL verbatim.
    """

    def __init__(self, mapbox: MapboxClient, timeout: float = 10.0, max_age: int = 86400, chunk_size: int = 16384):
        self.mapbox = mapbox
        self.timeout = float(timeout)
        self.max_age = int(max_age)
        self.chunk_size = int(chunk_size)

    def fetch_tile(self, z: int, x: int, y: int, style_name: str, scope: TokenScope) -> TileResponse:
        validate_tile_coords(z, x, y)
        style_id = resolve_style(style_name)
        if style_id is None:
            raise MalformedRequest("unknown map style")

        upstream = self.mapbox.open_tile(style_id, z, x, y, access_token=scope.map_provider_key, timeout=self.timeout)
        media_type = upstream.headers.get("Content-Type") or "image/png"
        return TileResponse(
            body=self._drain(upstream),
            media_type=media_type,
            headers={"Cache-Control": f"public, max-age={self.max_age}"},
        )

    def _drain(self, upstream) -> Iterator[bytes]:
        try:
            for chunk in upstream.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        finally:
            upstream.close()
