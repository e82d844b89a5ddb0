from __future__ import annotations

"""
Nearest-location ranking.

Ranking is always done in kilometers. Conversion to the display unit is a
separate step applied to an already-ranked list.
"""

from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from common.geo import haversine_km_many, kilometers_to_miles
from common.types import DisplayedLocation, Location, RankedLocation, Resolved, ViewerPosition


class DistanceUnit(str, Enum):
    KILOMETERS = "km"
    MILES = "mi"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "DistanceUnit":
        """Widget option values: "Kilometers" -> km, anything else -> mi."""
        if label and label.strip().lower() in ("kilometers", "km"):
            return cls.KILOMETERS
        return cls.MILES


def rank(locations: Sequence[Location], origin: ViewerPosition) -> List[RankedLocation]:
    """
    Sort by great-circle distance from `origin`, ascending.

    Unresolved locations get an infinite distance and go last. The sort is
    stable, so ties and the unresolved tail keep their input order.
    """
    if not locations:
        return []
    lats = np.full(len(locations), np.nan)
    lons = np.full(len(locations), np.nan)
    for i, loc in enumerate(locations):
        c = loc.coordinate
        if isinstance(c, Resolved):
            lats[i] = c.latitude
            lons[i] = c.longitude

    d = haversine_km_many(origin.latitude, origin.longitude, lats, lons)
    d = np.where(np.isnan(d), np.inf, d)
    order = np.argsort(d, kind="stable")
    return [RankedLocation(locations[i], float(d[i])) for i in order]


def unranked(locations: Sequence[Location]) -> List[RankedLocation]:
    """Input order, no distances yet (before the viewer has an origin)."""
    return [RankedLocation(loc) for loc in locations]


def to_display(ranked: Sequence[RankedLocation], unit: DistanceUnit = DistanceUnit.MILES) -> List[DisplayedLocation]:
    out = []
    for r in ranked:
        if not r.has_distance:
            dist = None
        elif unit is DistanceUnit.MILES:
            dist = kilometers_to_miles(r.distance_km)
        else:
            dist = r.distance_km
        out.append(DisplayedLocation(r.location, dist, unit.value))
    return out
