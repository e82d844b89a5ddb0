"""
Unit tests for the request gate and CORS helpers
"""

import os
import sys

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import ExpiredToken, InvalidToken, MissingToken
from gateway import tokens
from gateway.middleware import Gate, cors_headers, origin_allowed
from gateway.tokens import CapabilityPayload

SECRET = "gate-test-secret-0123456789abcdef0123456789"
NOW = 1_700_000_000
ALLOWED = [
    "http://localhost:4321",
    "https://webflow.com",
    "https://*.webflow.io",
    "null",
]


def _token(exp=NOW + 3600):
    return tokens.encode(CapabilityPayload("site-1", "coll-1", "pk.test", NOW, exp), SECRET)


class TestProtectedPaths:
    """explicit allow-list of gated routes"""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/locations", True),
            ("/api/geocode", True),
            ("/api/maps/tiles/1/0/0.png", True),
            ("/api/auth/generate-token", False),
            ("/health", False),
            ("/api/locationsX", False),
            ("/other/api/locations", False),
        ],
    )
    def test_no_base_path(self, path, expected):
        assert Gate(SECRET).is_protected(path) is expected

    def test_base_path(self):
        g = Gate(SECRET, base_path="/map")
        assert g.is_protected("/map/api/locations")
        assert g.is_protected("/map/api/maps/tiles/3/1/2.png")
        assert not g.is_protected("/api/locations")


class TestTokenExtraction:
    """header first, query string only for tiles"""

    def test_bearer_header(self):
        g = Gate(SECRET)
        assert g.extract_token("/api/locations", {"authorization": "Bearer abc"}, {}) == "abc"

    def test_scheme_is_case_insensitive(self):
        g = Gate(SECRET)
        assert g.extract_token("/api/locations", {"authorization": "bearer abc"}, {}) == "abc"

    def test_header_wins_over_query(self):
        g = Gate(SECRET)
        path = "/api/maps/tiles/1/0/0.png"
        assert g.extract_token(path, {"authorization": "Bearer hdr"}, {"token": "qs"}) == "hdr"

    def test_query_fallback_only_on_tiles(self):
        g = Gate(SECRET)
        assert g.extract_token("/api/maps/tiles/1/0/0.png", {}, {"token": "qs"}) == "qs"
        assert g.extract_token("/api/locations", {}, {"token": "qs"}) is None

    @pytest.mark.parametrize("value", ["", "Bearer", "Basic abc", "Bearer a b", "abc"])
    def test_bad_header_shapes(self, value):
        assert Gate(SECRET).extract_token("/api/locations", {"authorization": value}, {}) is None


class TestAuthorize:
    """state machine outcomes"""

    def test_authorized_scope(self):
        g = Gate(SECRET, clock=lambda: NOW)
        scope = g.authorize("/api/locations", {"authorization": f"Bearer {_token()}"}, {})
        assert scope.site_id == "site-1"
        assert scope.collection_id == "coll-1"
        assert scope.map_provider_key == "pk.test"

    def test_missing(self):
        with pytest.raises(MissingToken):
            Gate(SECRET, clock=lambda: NOW).authorize("/api/locations", {}, {})

    def test_expired(self):
        g = Gate(SECRET, clock=lambda: NOW)
        with pytest.raises(ExpiredToken):
            g.authorize("/api/maps/tiles/1/0/0.png", {}, {"token": _token(exp=NOW - 1)})

    def test_invalid(self):
        g = Gate(SECRET, clock=lambda: NOW)
        with pytest.raises(InvalidToken):
            g.authorize("/api/locations", {"authorization": f"Bearer {_token()}x"}, {})


class TestCors:
    """origin echo and fixed header set"""

    @pytest.mark.parametrize(
        "origin,ok",
        [
            ("http://localhost:4321", True),
            ("https://webflow.com", True),
            ("https://shop.webflow.io", True),
            ("https://webflow-abc.design.webflow.com", True),
            ("null", True),
            ("https://evil.example.com", False),
            ("https://.webflow.io", False),
            ("http://shop.webflow.io", False),
            (None, False),
        ],
    )
    def test_origin_allowed(self, origin, ok):
        assert origin_allowed(origin, ALLOWED) is ok

    def test_allowed_origin_is_echoed(self):
        h = cors_headers("https://shop.webflow.io", ALLOWED)
        assert h["Access-Control-Allow-Origin"] == "https://shop.webflow.io"
        assert h["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"
        assert h["Access-Control-Allow-Credentials"] == "true"
        assert h["Access-Control-Max-Age"] == "86400"

    def test_unknown_origin_gets_wildcard(self):
        assert cors_headers("https://evil.example.com", ALLOWED)["Access-Control-Allow-Origin"] == "*"
