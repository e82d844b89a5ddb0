from __future__ import annotations

"""
Geocode batching in front of the map provider.

A batch is a list of (location id, address) pairs. Identical addresses are
looked up once, lookups fan out on a bounded thread pool, and results are
joined back by id. One address failing (HTTP error, timeout, zero features)
only leaves that id unresolved.

Successful per-location results are cached under
`geocode:{collectionId}:{locationId}`; failures are never cached so the
next page load retries them. Single free-text lookups (viewer search) are
never cached.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from common.errors import LocatorError, NotFound
from common.logging_setup import get_logger
from common.types import GeocodeCacheEntry, Location, Resolved, TokenScope
from common.utils import normalize_address
from gateway.cache import KeyValueCache, geocode_key
from gateway.mapbox import MapboxClient, first_center


log = get_logger(__name__)


class GeocodeBatcher:
    def __init__(
        self,
        mapbox: MapboxClient,
        cache: Optional[KeyValueCache] = None,
        timeout: float = 5.0,
        max_workers: int = 8,
        cache_ttl: Optional[int] = None,
    ):
        self.mapbox = mapbox
        self.cache = cache
        self.timeout = float(timeout)
        self.max_workers = max(1, int(max_workers))
        self.cache_ttl = cache_ttl

    # -------- public API --------

    def lookup(self, address: str, scope: TokenScope) -> Dict[str, Any]:
        """Single free-text lookup; returns the provider feature collection as-is."""
        if not address or not address.strip():
            raise NotFound("empty address")
        return self.mapbox.geocode(address.strip(), scope.map_provider_key, timeout=self.timeout)

    def resolve_one(self, address: str, scope: TokenScope) -> Resolved:
        c = first_center(self.lookup(address, scope))
        if c is None:
            raise NotFound("Location not found.")
        return c

    def geocode_batch(self, items: Iterable[Tuple[str, str]], scope: TokenScope) -> Dict[str, Resolved]:
        """
        Resolve (id, address) pairs. Returns {id: coordinate} for the ids that
        resolved; everything else is simply absent.
        """
        pending: List[Tuple[str, str]] = []
        resolved: Dict[str, Resolved] = {}
        for loc_id, address in items:
            norm = normalize_address(address)
            if not loc_id or not norm:
                continue
            hit = self._cached(scope.collection_id, loc_id, norm)
            if hit is not None:
                resolved[loc_id] = hit
            else:
                pending.append((loc_id, address))

        if not pending:
            return resolved

        # one provider call per distinct address
        by_address: Dict[str, List[str]] = {}
        first_text: Dict[str, str] = {}
        for loc_id, address in pending:
            norm = normalize_address(address)
            by_address.setdefault(norm, []).append(loc_id)
            first_text.setdefault(norm, address.strip())

        fetched = self._fan_out(first_text, scope)
        failed = 0
        for norm, ids in by_address.items():
            c = fetched.get(norm)
            if c is None:
                failed += len(ids)
                continue
            for loc_id in ids:
                resolved[loc_id] = c
                self._store(scope.collection_id, loc_id, norm, c)

        log.info(
            "geocode batch done",
            extra={
                "extra": {
                    "requested": len(pending),
                    "lookups": len(by_address),
                    "resolved": len(resolved),
                    "unresolved": failed,
                }
            },
        )
        return resolved

    def resolve(self, locations: Sequence[Location], scope: TokenScope) -> List[Location]:
        """
        Fill coordinates for locations that need them. Order is preserved and
        locations that fail to resolve come back unchanged (Unresolved).
        """
        todo = [(loc.id, loc.address) for loc in locations if loc.needs_geocoding]
        if not todo:
            return list(locations)
        found = self.geocode_batch(todo, scope)
        return [loc.with_coordinate(found[loc.id]) if loc.id in found else loc for loc in locations]

    # -------- internals --------

    def _lookup_coordinate(self, address: str, scope: TokenScope) -> Optional[Resolved]:
        try:
            fc = self.mapbox.geocode(address, scope.map_provider_key, timeout=self.timeout, limit=1)
        except LocatorError as e:
            log.warning("geocode failed; leaving unresolved: %s", e.kind)
            return None
        return first_center(fc)

    def _fan_out(self, addresses: Mapping[str, str], scope: TokenScope) -> Dict[str, Optional[Resolved]]:
        keys = list(addresses)
        workers = min(self.max_workers, len(keys))
        if workers <= 1:
            return {k: self._lookup_coordinate(addresses[k], scope) for k in keys}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geocode") as pool:
            results = pool.map(lambda k: self._lookup_coordinate(addresses[k], scope), keys)
            return dict(zip(keys, results))

    def _cached(self, collection_id: str, loc_id: str, norm_address: str) -> Optional[Resolved]:
        if self.cache is None:
            return None
        raw = self.cache.get(geocode_key(collection_id, loc_id))
        if not isinstance(raw, dict):
            return None
        entry = GeocodeCacheEntry.from_dict(raw)
        if entry is None or entry.address != norm_address:
            return None
        return entry.coordinate

    def _store(self, collection_id: str, loc_id: str, norm_address: str, c: Resolved) -> None:
        if self.cache is None:
            return
        entry = GeocodeCacheEntry(location_id=loc_id, coordinate=c, address=norm_address)
        self.cache.put(geocode_key(collection_id, loc_id), entry.to_dict(), self.cache_ttl)
