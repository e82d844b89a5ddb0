from __future__ import annotations

"""
Webflow CMS adapter: list the items of one collection.

Only the server ever holds the CMS access token; the widget sees the item
list, never the token.
"""

from typing import Any, Dict, List, Optional

import requests

from common.errors import NotFound, UpstreamError
from common.logging_setup import get_logger


log = get_logger(__name__)


class CmsClient:
    def __init__(
        self,
        access_token: str,
        api_base: str = "https://api.webflow.com/v2",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        page_size: int = 100,
    ):
        if not access_token:
            raise ValueError("CMS access token is required")
        self.access_token = access_token
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = float(timeout)
        self.page_size = max(1, int(page_size))

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self.session.get(
                f"{self.api_base}{path}",
                params=params,
                headers={"Authorization": f"Bearer {self.access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.warning("CMS request failed: %s", type(e).__name__)
            raise UpstreamError("Failed to fetch items from Webflow") from e
        if r.status_code == 404:
            raise NotFound("Collection not found")
        if not (200 <= r.status_code < 300):
            log.warning("CMS returned %s for %s", r.status_code, path)
            raise UpstreamError("Failed to fetch items from Webflow", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamError("CMS returned a non-JSON body") from e

    def list_items(self, collection_id: str) -> List[Dict[str, Any]]:
        """All items of the collection, following offset pagination."""
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            data = self._get(f"/collections/{collection_id}/items", {"offset": offset, "limit": self.page_size})
            page = data.get("items") or []
            items.extend(page)
            total = (data.get("pagination") or {}).get("total")
            offset += len(page)
            if not page or total is None or offset >= int(total):
                break
        return items
