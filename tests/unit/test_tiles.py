"""
Unit tests for the tile proxy
"""

import os
import sys
from unittest.mock import Mock

import pytest
import requests

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import MalformedRequest, NotFound, UpstreamError
from common.map_styles import resolve_style
from common.types import TokenScope
from gateway.mapbox import MapboxClient
from gateway.tiles import TileProxy, validate_tile_coords

SCOPE = TokenScope("site-1", "coll-1", "pk.secret")


def _upstream(status=200, chunks=(b"\x89PNG", b"data"), content_type="image/png"):
    r = Mock()
    r.status_code = status
    r.headers = {"Content-Type": content_type}
    r.iter_content.return_value = iter(chunks)
    return r


def _proxy(resp=None, side_effect=None):
    session = Mock()
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = resp
    return TileProxy(MapboxClient(session=session), timeout=7.0), session


class TestStyles:
    """fixed enumerated mapping"""

    @pytest.mark.parametrize(
        "name,style",
        [
            (None, "streets-v12"),
            ("", "streets-v12"),
            ("Streets", "streets-v12"),
            ("Satellite Streets", "satellite-streets-v12"),
            ("dark-v11", "dark-v11"),
            ("satellite-v9", "satellite-v9"),
        ],
    )
    def test_known(self, name, style):
        assert resolve_style(name) == style

    @pytest.mark.parametrize("name", ["../../evil", "streets-v12?x=1", "mapbox/streets-v12", "Neon"])
    def test_unknown(self, name):
        assert resolve_style(name) is None


class TestCoords:
    """z/x/y validation"""

    @pytest.mark.parametrize("zxy", [(0, 0, 0), (1, 1, 1), (22, 4194303, 0)])
    def test_valid(self, zxy):
        validate_tile_coords(*zxy)

    @pytest.mark.parametrize("zxy", [(-1, 0, 0), (23, 0, 0), (1, 2, 0), (1, 0, 2), (3, -1, 0)])
    def test_invalid(self, zxy):
        with pytest.raises(MalformedRequest):
            validate_tile_coords(*zxy)


class TestFetchTile:
    """streaming passthrough and error mapping"""

    def test_success_streams_and_closes(self):
        up = _upstream()
        proxy, session = _proxy(up)
        t = proxy.fetch_tile(3, 2, 1, "Dark", SCOPE)
        assert b"".join(t.body) == b"\x89PNGdata"
        up.close.assert_called_once()
        assert t.media_type == "image/png"
        assert t.headers["Cache-Control"] == "public, max-age=86400"
        url = session.get.call_args[0][0]
        assert "/styles/v1/mapbox/dark-v11/tiles/3/2/1?" in url
        assert "access_token=pk.secret" in url
        assert session.get.call_args[1]["stream"] is True
        assert session.get.call_args[1]["timeout"] == 7.0

    def test_unknown_style_never_calls_upstream(self):
        proxy, session = _proxy(_upstream())
        with pytest.raises(MalformedRequest):
            proxy.fetch_tile(1, 0, 0, "../../x", SCOPE)
        session.get.assert_not_called()

    def test_bad_coords_never_call_upstream(self):
        proxy, session = _proxy(_upstream())
        with pytest.raises(MalformedRequest):
            proxy.fetch_tile(2, 9, 0, "Streets", SCOPE)
        session.get.assert_not_called()

    def test_upstream_404(self):
        proxy, _ = _proxy(_upstream(status=404))
        with pytest.raises(NotFound):
            proxy.fetch_tile(1, 0, 0, None, SCOPE)

    @pytest.mark.parametrize("status", [401, 403, 429, 502])
    def test_upstream_status_propagates(self, status):
        up = _upstream(status=status)
        proxy, _ = _proxy(up)
        with pytest.raises(UpstreamError) as ei:
            proxy.fetch_tile(1, 0, 0, None, SCOPE)
        assert ei.value.status_code == status
        up.close.assert_called_once()

    def test_timeout_is_upstream_500(self):
        proxy, _ = _proxy(side_effect=requests.Timeout("slow"))
        with pytest.raises(UpstreamError) as ei:
            proxy.fetch_tile(1, 0, 0, None, SCOPE)
        assert ei.value.status_code == 500

    def test_upstream_content_type_kept(self):
        proxy, _ = _proxy(_upstream(content_type="image/jpeg"))
        assert proxy.fetch_tile(1, 0, 0, "Satellite", SCOPE).media_type == "image/jpeg"
