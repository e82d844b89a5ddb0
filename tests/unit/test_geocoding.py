"""
Unit tests for the geocode batcher and its cache tier
"""

import os
import sys
import threading
from unittest.mock import Mock

import pytest
import requests

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import NotFound, UpstreamError
from common.types import UNRESOLVED, Location, Resolved, TokenScope
from gateway.cache import MemoryCache, geocode_key
from gateway.geocoding import GeocodeBatcher
from gateway.mapbox import MapboxClient

SCOPE = TokenScope("site-1", "coll-1", "pk.test")


def _fc(lon, lat):
    return {"type": "FeatureCollection", "features": [{"center": [lon, lat], "place_name": "x"}]}


class FakeMapbox:
    """Answers from a table; addresses mapped to an exception raise it."""

    def __init__(self, table):
        self.table = table
        self.calls = []
        self._lock = threading.Lock()

    def geocode(self, address, access_token, timeout=5.0, limit=None):
        with self._lock:
            self.calls.append((address, access_token))
        v = self.table.get(address)
        if isinstance(v, Exception):
            raise v
        if v is None:
            return {"type": "FeatureCollection", "features": []}
        return v


class TestGeocodeBatch:
    """fan-out, join by id, failure isolation"""

    def test_one_of_three_fails(self):
        mb = FakeMapbox(
            {
                "1 Main St": _fc(-74.0, 40.0),
                "2 Broken Rd": UpstreamError("boom", status_code=503),
                "3 Elm St": _fc(-73.0, 41.0),
            }
        )
        out = GeocodeBatcher(mb).geocode_batch([("a", "1 Main St"), ("b", "2 Broken Rd"), ("c", "3 Elm St")], SCOPE)
        assert set(out) == {"a", "c"}
        assert out["a"] == Resolved(40.0, -74.0)
        assert out["c"] == Resolved(41.0, -73.0)

    def test_timeout_leaves_unresolved(self):
        mb = FakeMapbox({"slow": UpstreamError("timeout"), "fast": _fc(1.0, 2.0)})
        out = GeocodeBatcher(mb).geocode_batch([("a", "slow"), ("b", "fast")], SCOPE)
        assert out == {"b": Resolved(2.0, 1.0)}

    def test_zero_features_leaves_unresolved(self):
        out = GeocodeBatcher(FakeMapbox({})).geocode_batch([("a", "nowhere")], SCOPE)
        assert out == {}

    def test_shared_address_is_looked_up_once_and_joined_by_id(self):
        mb = FakeMapbox({"5 Oak Ave": _fc(-70.0, 42.0)})
        out = GeocodeBatcher(mb).geocode_batch([("a", "5 Oak Ave"), ("b", "  5  oak ave ")], SCOPE)
        assert len(mb.calls) == 1
        assert out["a"] == out["b"] == Resolved(42.0, -70.0)

    def test_provider_key_comes_from_scope(self):
        mb = FakeMapbox({"x": _fc(0.0, 0.0)})
        GeocodeBatcher(mb).geocode_batch([("a", "x")], SCOPE)
        assert mb.calls == [("x", "pk.test")]

    def test_blank_entries_are_skipped(self):
        mb = FakeMapbox({})
        assert GeocodeBatcher(mb).geocode_batch([("a", "   "), ("", "addr")], SCOPE) == {}
        assert mb.calls == []

    def test_many_locations_use_bounded_pool(self):
        table = {f"addr {i}": _fc(float(i % 180), 10.0) for i in range(40)}
        mb = FakeMapbox(table)
        out = GeocodeBatcher(mb, max_workers=4).geocode_batch([(str(i), f"addr {i}") for i in range(40)], SCOPE)
        assert len(out) == 40
        assert len(mb.calls) == 40


class TestGeocodeCacheTier:
    """only successes are cached"""

    def test_success_is_cached_failure_is_not(self):
        cache = MemoryCache()
        mb = FakeMapbox({"good": _fc(1.0, 1.0), "bad": UpstreamError("x")})
        b = GeocodeBatcher(mb, cache=cache)
        b.geocode_batch([("a", "good"), ("b", "bad")], SCOPE)
        assert cache.get(geocode_key("coll-1", "a"))["latitude"] == 1.0
        assert cache.get(geocode_key("coll-1", "b")) is None

        b.geocode_batch([("a", "good"), ("b", "bad")], SCOPE)
        # a came from cache, b was retried
        assert [c[0] for c in mb.calls].count("good") == 1
        assert [c[0] for c in mb.calls].count("bad") == 2

    def test_changed_address_misses_cache(self):
        cache = MemoryCache()
        mb = FakeMapbox({"old": _fc(1.0, 1.0), "new": _fc(2.0, 2.0)})
        b = GeocodeBatcher(mb, cache=cache)
        b.geocode_batch([("a", "old")], SCOPE)
        out = b.geocode_batch([("a", "new")], SCOPE)
        assert out["a"] == Resolved(2.0, 2.0)

    def test_cache_is_per_collection(self):
        cache = MemoryCache()
        mb = FakeMapbox({"x": _fc(1.0, 1.0)})
        b = GeocodeBatcher(mb, cache=cache)
        b.geocode_batch([("a", "x")], SCOPE)
        b.geocode_batch([("a", "x")], TokenScope("site-1", "coll-2", "pk.test"))
        assert len(mb.calls) == 2


class TestResolve:
    """partition + enrich transient copies"""

    def test_partition_and_order(self):
        locs = [
            Location("1", "One", "X", UNRESOLVED),
            Location("2", "Two", "Y", Resolved(40.0, -74.0)),
            Location("3", "Three", "", UNRESOLVED),
        ]
        mb = FakeMapbox({"X": _fc(-73.9, 41.0)})
        out = GeocodeBatcher(mb).resolve(locs, SCOPE)
        assert [l.id for l in out] == ["1", "2", "3"]
        assert out[0].coordinate == Resolved(41.0, -73.9)
        assert out[1] is locs[1]
        assert out[2].coordinate is UNRESOLVED
        assert mb.calls == [("X", "pk.test")]
        # input untouched
        assert locs[0].coordinate is UNRESOLVED

    def test_nothing_to_do(self):
        mb = FakeMapbox({})
        locs = [Location("2", coordinate=Resolved(1.0, 1.0))]
        assert GeocodeBatcher(mb).resolve(locs, SCOPE) == locs
        assert mb.calls == []


class TestResolveOne:
    """ad-hoc single-address lookup"""

    def test_first_feature_center(self):
        fc = {"features": [{"center": [-74.0, 40.7]}, {"center": [0.0, 0.0]}]}
        b = GeocodeBatcher(FakeMapbox({"nyc": fc}), cache=MemoryCache())
        assert b.resolve_one("nyc", SCOPE) == Resolved(40.7, -74.0)
        assert len(b.cache) == 0

    def test_not_found(self):
        with pytest.raises(NotFound):
            GeocodeBatcher(FakeMapbox({})).resolve_one("atlantis", SCOPE)

    def test_upstream_error_propagates(self):
        mb = FakeMapbox({"x": UpstreamError("nope", status_code=429)})
        with pytest.raises(UpstreamError) as ei:
            GeocodeBatcher(mb).lookup("x", SCOPE)
        assert ei.value.status_code == 429


class TestMapboxClientGeocode:
    """requests-level behaviour of the provider adapter"""

    def test_url_and_success(self):
        session = Mock()
        resp = Mock(status_code=200)
        resp.json.return_value = _fc(1.0, 2.0)
        session.get.return_value = resp
        mb = MapboxClient(session=session)
        assert mb.geocode("1 Main St", "pk.abc", timeout=3.0) == _fc(1.0, 2.0)
        url = session.get.call_args[0][0]
        assert url.startswith("https://api.mapbox.com/geocoding/v5/mapbox.places/1%20Main%20St.json?")
        assert "access_token=pk.abc" in url
        assert session.get.call_args[1]["timeout"] == 3.0

    def test_non_success_status_propagates(self):
        session = Mock()
        session.get.return_value = Mock(status_code=401)
        with pytest.raises(UpstreamError) as ei:
            MapboxClient(session=session).geocode("x", "pk")
        assert ei.value.status_code == 401

    def test_network_failure_is_500(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(UpstreamError) as ei:
            MapboxClient(session=session).geocode("x", "pk")
        assert ei.value.status_code == 500
