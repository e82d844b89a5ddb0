from __future__ import annotations

from typing import Sequence
import math
import numpy as np


EARTH_RADIUS_KM = 6371.0088  # mean Earth radius
KM_PER_MILE = 1.609344
MILES_PER_KM = 1.0 / KM_PER_MILE


# -------------------------
# Great-circle distance
# -------------------------
def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance (km) on a spherical Earth."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dphi = p2 - p1
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2.0) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2.0) ** 2
    # clamp guards asin against a > 1 from rounding on antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def haversine_km_many(
    lat0: float,
    lon0: float,
    lats: Sequence[float],
    lons: Sequence[float],
) -> np.ndarray:
    """
    Vectorized haversine from one origin to many points.
    NaN inputs produce NaN outputs; the caller decides what that means.
    """
    la = np.radians(np.asarray(lats, dtype=float))
    lo = np.radians(np.asarray(lons, dtype=float))
    p0 = math.radians(lat0)
    l0 = math.radians(lon0)
    a = np.sin((la - p0) / 2.0) ** 2 + math.cos(p0) * np.cos(la) * np.sin((lo - l0) / 2.0) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


# -------------------------
# Units
# -------------------------
def kilometers_to_miles(km: float) -> float:
    return km * MILES_PER_KM
