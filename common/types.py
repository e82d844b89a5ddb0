from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union
import math
import time


def _as_float(v: Any) -> Optional[float]:
    """Coerce a CMS field to a finite float; None for missing/null/garbage."""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


# -------------------------
# Coordinate = Resolved(lat, lon) | Unresolved
# -------------------------
@dataclass(frozen=True, slots=True)
class Resolved:
    """A WGS84 point in degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0) or not (-180.0 <= self.longitude <= 180.0):
            raise ValueError("lat/lon out of range")

    @property
    def is_resolved(self) -> bool:
        return True


class Unresolved:
    """Singleton marker for a location that has no usable coordinate."""

    _instance: Optional["Unresolved"] = None

    def __new__(cls) -> "Unresolved":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def is_resolved(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = Unresolved()
Coordinate = Union[Resolved, Unresolved]


def coordinate_from_fields(latitude: Any, longitude: Any) -> Coordinate:
    """
    Map the CMS's unset/null/number latitude+longitude pair onto the variant.
    Anything short of two finite, in-range numbers is UNRESOLVED.
    """
    lat = _as_float(latitude)
    lon = _as_float(longitude)
    if lat is None or lon is None:
        return UNRESOLVED
    try:
        return Resolved(lat, lon)
    except ValueError:
        return UNRESOLVED


# -------------------------
# Token scope
# -------------------------
@dataclass(frozen=True, slots=True)
class TokenScope:
    """What a verified capability token authorizes."""
    site_id: str
    collection_id: str
    map_provider_key: str


# -------------------------
# Locations
# -------------------------
@dataclass(frozen=True)
class Location:
    """
    A store location read from the CMS collection.

    `raw` keeps the original CMS item so enriched copies can be written back
    out in the same shape the widget consumes.
    """
    id: str
    name: str = ""
    address: str = ""
    coordinate: Coordinate = UNRESOLVED
    phone: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_cms_item(cls, item: Dict[str, Any]) -> "Location":
        fd = item.get("fieldData") or {}
        return cls(
            id=str(item.get("id", "")),
            name=str(fd.get("name") or ""),
            address=str(fd.get("address") or ""),
            coordinate=coordinate_from_fields(fd.get("latitude"), fd.get("longitude")),
            phone=str(fd.get("phone") or ""),
            raw=item,
        )

    def with_coordinate(self, coordinate: Coordinate) -> "Location":
        """Transient enriched copy; the upstream item is never mutated."""
        return replace(self, coordinate=coordinate)

    @property
    def needs_geocoding(self) -> bool:
        return not self.coordinate.is_resolved and bool(self.address.strip())

    def to_cms_item(self) -> Dict[str, Any]:
        item = dict(self.raw) if self.raw else {"id": self.id}
        fd = dict(item.get("fieldData") or {})
        fd.setdefault("name", self.name)
        fd.setdefault("address", self.address)
        if self.phone:
            fd.setdefault("phone", self.phone)
        if isinstance(self.coordinate, Resolved):
            fd["latitude"] = self.coordinate.latitude
            fd["longitude"] = self.coordinate.longitude
        item["fieldData"] = fd
        return item


@dataclass(slots=True)
class GeocodeCacheEntry:
    """
    Only ever built from a successful provider response. `address` is the
    normalized address that was geocoded; an entry for a location whose
    address has since changed is stale.
    """
    location_id: str
    coordinate: Resolved
    address: str = ""
    cached_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locationId": self.location_id,
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "address": self.address,
            "cachedAt": self.cached_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Optional["GeocodeCacheEntry"]:
        c = coordinate_from_fields(d.get("latitude"), d.get("longitude"))
        if not isinstance(c, Resolved):
            return None
        return cls(
            location_id=str(d.get("locationId", "")),
            coordinate=c,
            address=str(d.get("address", "")),
            cached_at=float(d.get("cachedAt", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class ViewerPosition:
    """Where the viewer is, from device GPS or a searched address."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0) or not (-180.0 <= self.longitude <= 180.0):
            raise ValueError("lat/lon out of range")

    @classmethod
    def from_coordinate(cls, c: Resolved) -> "ViewerPosition":
        return cls(c.latitude, c.longitude)


@dataclass(frozen=True, slots=True)
class RankedLocation:
    """Location plus great-circle distance in km (inf when unresolved)."""
    location: Location
    distance_km: float = math.inf

    @property
    def has_distance(self) -> bool:
        return math.isfinite(self.distance_km)


@dataclass(frozen=True, slots=True)
class DisplayedLocation:
    """Presentation row: ranking already done, distance converted to `unit`."""
    location: Location
    distance: Optional[float]
    unit: str

    def label(self) -> str:
        if self.distance is None:
            return ""
        return f"{self.distance:.1f} {self.unit} away"
