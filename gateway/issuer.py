from __future__ import annotations

from typing import Optional

from common.errors import MalformedRequest, MissingUpstreamConfig
from common.logging_setup import get_logger
from common.utils import epoch_now
from gateway import tokens
from gateway.sites import SiteStore


log = get_logger(__name__)


class TokenIssuer:
    """
    Mints capability tokens. Stateless: nothing is recorded about issued
    tokens, so issuing twice just yields two independently valid tokens.

    The caller is expected to have authenticated the operator already; the
    issuer trusts whatever it is asked to sign.
    """

    def __init__(self, secret: str, sites: Optional[SiteStore] = None, default_ttl: int = 365 * 24 * 3600, clock=epoch_now):
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty secret")
        self._secret = secret
        self.sites = sites
        self.default_ttl = int(default_ttl)
        self._clock = clock

    def issue(self, site_id: str, collection_id: str, map_provider_key: Optional[str], ttl: Optional[int] = None) -> str:
        if not site_id or not collection_id:
            raise MalformedRequest("siteId and collectionId are required")
        if not map_provider_key:
            raise MissingUpstreamConfig("Map provider key not found for this site")
        ttl = self.default_ttl if ttl is None else int(ttl)
        if ttl <= 0:
            raise MalformedRequest("ttl must be positive")

        now = int(self._clock())
        payload = tokens.CapabilityPayload(
            site_id=site_id,
            collection_id=collection_id,
            map_provider_key=map_provider_key,
            issued_at=now,
            expires_at=now + ttl,
        )
        log.info(
            "issued capability token",
            extra={"extra": {"site_id": site_id, "collection_id": collection_id, "exp": payload.expires_at}},
        )
        return tokens.encode(payload, self._secret)

    def issue_for_site(self, site_id: str, collection_id: str, ttl: Optional[int] = None) -> str:
        """Look the provider key up in the site store, then issue."""
        if not site_id or not collection_id:
            raise MalformedRequest("siteId and collectionId are required")
        if self.sites is None:
            raise MissingUpstreamConfig("no site store configured")
        site = self.sites.get(site_id)
        if site is None or not site.map_provider_key:
            raise MissingUpstreamConfig("Map provider key not found for this site")
        return self.issue(site_id, collection_id, site.map_provider_key, ttl)
