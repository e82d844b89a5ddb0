"""
Widget: caller side of the store locator

Provides:
- LocatorApiClient / ClientRegistry: talk to the gateway with an embedded token
- ranker: haversine ranking (km) and unit conversion for display
- origin: viewer position from device geolocation or a searched address
- StoreLocatorController: loading, ranking, stale-result suppression and
  the map/marker state machine

Usage:
    registry = ClientRegistry()
    ctl = StoreLocatorController(registry.get(base_url, token), surface, distance_unit="Miles")
    ctl.start()
    ctl.search("Brooklyn, NY")
"""
from .client import ClientRegistry, LocatorApiClient
from .controller import MapState, StoreLocatorController
from .ranker import DistanceUnit, rank, to_display

__all__ = [
    "ClientRegistry",
    "LocatorApiClient",
    "MapState",
    "StoreLocatorController",
    "DistanceUnit",
    "rank",
    "to_display",
]
