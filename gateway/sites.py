from __future__ import annotations

"""
Site records: the operator-held upstream credentials per site.

Creating and editing these records belongs to the operator setup flow and is
not part of the gateway; the gateway only looks them up. Two read-only
stores are provided: a YAML file (one document, `sites:` list) and an
in-memory dict for tests and embedding.

    sites:
      - site_id: 64f0...
        cms_access_token: wf_...
        map_provider_key: pk.eyJ...
        selected_collection_id: 6501...
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

import yaml

from common.logging_setup import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class SiteRecord:
    site_id: str
    cms_access_token: str
    map_provider_key: Optional[str] = None
    selected_collection_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.selected_collection_id and self.map_provider_key)


class SiteStore(Protocol):
    def get(self, site_id: str) -> Optional[SiteRecord]: ...


class MemorySiteStore:
    def __init__(self, records: Iterable[SiteRecord] = ()):
        self._records: Dict[str, SiteRecord] = {r.site_id: r for r in records}

    def get(self, site_id: str) -> Optional[SiteRecord]:
        return self._records.get(site_id)

    def __len__(self) -> int:
        return len(self._records)


class YamlSiteStore(MemorySiteStore):
    """Reads the file once at construction; a missing file is an empty store."""

    def __init__(self, path: str):
        self.path = Path(path)
        super().__init__(self._read())

    def _read(self) -> Iterable[SiteRecord]:
        if not self.path.exists():
            log.warning("site file not found; no sites configured", extra={"extra": {"path": str(self.path)}})
            return []
        with self.path.open("r") as f:
            doc = yaml.safe_load(f) or {}
        out = []
        for row in doc.get("sites") or []:
            if not row.get("site_id") or not row.get("cms_access_token"):
                log.warning("skipping site row without site_id/cms_access_token")
                continue
            out.append(
                SiteRecord(
                    site_id=str(row["site_id"]),
                    cms_access_token=str(row["cms_access_token"]),
                    map_provider_key=(str(row["map_provider_key"]) if row.get("map_provider_key") else None),
                    selected_collection_id=(
                        str(row["selected_collection_id"]) if row.get("selected_collection_id") else None
                    ),
                )
            )
        return out
