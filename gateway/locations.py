from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from common.errors import MissingUpstreamConfig
from common.logging_setup import get_logger
from common.types import Location, TokenScope
from gateway.cache import KeyValueCache, locations_key, unwrap_items, wrap_items
from gateway.cms import CmsClient
from gateway.geocoding import GeocodeBatcher
from gateway.sites import SiteStore


log = get_logger(__name__)


class LocationService:
    """
    Serves a collection's item list for a verified scope.

    The whole list is cached per collection for `ttl` seconds to absorb
    bursts of widget loads. With a batcher attached, missing coordinates are
    filled before the list is cached.
    """

    def __init__(
        self,
        sites: SiteStore,
        cache: KeyValueCache,
        cms_factory: Callable[[str], CmsClient],
        ttl: int = 3600,
        batcher: Optional[GeocodeBatcher] = None,
    ):
        self.sites = sites
        self.cache = cache
        self.cms_factory = cms_factory
        self.ttl = int(ttl)
        self.batcher = batcher

    def list_items(self, scope: TokenScope) -> List[Dict[str, Any]]:
        key = locations_key(scope.collection_id)
        cached = unwrap_items(self.cache.get(key))
        if cached is not None:
            return cached

        site = self.sites.get(scope.site_id)
        if site is None:
            raise MissingUpstreamConfig("Site not configured or access denied")

        items = self.cms_factory(site.cms_access_token).list_items(scope.collection_id)
        if self.batcher is not None:
            locs = self.batcher.resolve([Location.from_cms_item(i) for i in items], scope)
            items = [loc.to_cms_item() for loc in locs]

        self.cache.put(key, wrap_items(items), self.ttl)
        log.info("locations fetched", extra={"extra": {"collection_id": scope.collection_id, "count": len(items)}})
        return items
