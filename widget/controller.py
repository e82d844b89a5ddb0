from __future__ import annotations

"""
Store locator widget controller.

Owns the widget's state (all locations, the ranked list on display, the
selected location) and drives a map renderer through `MapSurface`.

The location list and the viewer origin are generation-guarded separately:
loads bump one counter, searches and device locates bump the other, and a
completion only lands if its generation is still the latest of its kind.
Whichever lands re-ranks against the current value of the other, so a
search that finishes mid-load never leaves the list empty.

Map/marker lifecycle is an explicit state machine:

    UNINITIALIZED --on_styles_loaded--> MAP_READY --on_locations_updated--> MARKERS_SYNCED
                                           ^                                    |
                                           +---------- (re-sync on update) -----+
    any --teardown--> UNINITIALIZED
"""

import threading
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from common.errors import GeolocationUnavailable, LocatorError, NotFound
from common.logging_setup import get_logger
from common.map_styles import DEFAULT_STYLE, resolve_style
from common.types import DisplayedLocation, Location, RankedLocation, Resolved, ViewerPosition
from widget import origin as origin_mod
from widget.client import LocatorApiClient
from widget.ranker import DistanceUnit, rank, to_display, unranked


log = get_logger(__name__)

DEFAULT_CENTER = (40.7128, -74.006)  # NYC
DEFAULT_ZOOM = 12
ORIGIN_ZOOM = 13
SELECT_ZOOM = 15


class MapSurface(Protocol):
    def set_view(self, lat: float, lon: float, zoom: int) -> None: ...

    def fly_to(self, lat: float, lon: float, zoom: int) -> None: ...

    def add_tile_layer(self, url_template: str) -> None: ...

    def clear_markers(self) -> None: ...

    def add_marker(self, lat: float, lon: float, popup: str) -> None: ...

    def invalidate_size(self) -> None: ...


class MapState(str, Enum):
    UNINITIALIZED = "uninitialized"
    MAP_READY = "map_ready"
    MARKERS_SYNCED = "markers_synced"


class MarkerLifecycle:
    def __init__(self, surface: MapSurface):
        self.surface = surface
        self.state = MapState.UNINITIALIZED
        self._locations: List[Location] = []

    def on_styles_loaded(self, tile_url: str) -> None:
        if self.state is not MapState.UNINITIALIZED:
            return
        self.surface.set_view(DEFAULT_CENTER[0], DEFAULT_CENTER[1], DEFAULT_ZOOM)
        self.surface.add_tile_layer(tile_url)
        self.state = MapState.MAP_READY
        if self._locations:
            self._sync()

    def on_locations_updated(self, locations: Sequence[Location]) -> None:
        self._locations = list(locations)
        if self.state is not MapState.UNINITIALIZED:
            self._sync()

    def on_viewport_resized(self) -> None:
        if self.state is not MapState.UNINITIALIZED:
            self.surface.invalidate_size()

    def teardown(self) -> None:
        if self.state is not MapState.UNINITIALIZED:
            self.surface.clear_markers()
        self.state = MapState.UNINITIALIZED

    def _sync(self) -> None:
        # previous markers are always removed before the new set goes in
        self.surface.clear_markers()
        for loc in self._locations:
            c = loc.coordinate
            if isinstance(c, Resolved):
                self.surface.add_marker(c.latitude, c.longitude, f"<b>{loc.name}</b><br>{loc.address}")
        self.state = MapState.MARKERS_SYNCED


class StoreLocatorController:
    def __init__(
        self,
        client: LocatorApiClient,
        surface: MapSurface,
        distance_unit: str = "Miles",
        map_style: Optional[str] = None,
        geolocation: Optional[origin_mod.GeolocationSource] = None,
        permissions: Optional[origin_mod.PermissionQuery] = None,
    ):
        self.client = client
        self.unit = DistanceUnit.from_label(distance_unit)
        self.style = resolve_style(map_style) or DEFAULT_STYLE
        self.geolocation = geolocation
        self.permissions = permissions
        self.markers = MarkerLifecycle(surface)

        self.all_locations: List[Location] = []
        self.displayed: List[RankedLocation] = []
        self.origin: Optional[ViewerPosition] = None
        self.selected: Optional[Location] = None
        self.loading = False

        self._list_generation = 0
        self._origin_generation = 0
        self._lock = threading.Lock()

    # ----------------------------
    # Generation guards
    # ----------------------------
    def _begin_list(self) -> int:
        with self._lock:
            self._list_generation += 1
            return self._list_generation

    def _begin_origin(self) -> int:
        with self._lock:
            self._origin_generation += 1
            return self._origin_generation

    def _ranked(self, locations: List[Location]) -> List[RankedLocation]:
        if self.origin is not None:
            return rank(locations, self.origin)
        return unranked(locations)

    def _show(self, ranked: List[RankedLocation]) -> None:
        # caller holds the lock
        self.displayed = ranked
        self.markers.on_locations_updated([r.location for r in ranked])

    def _commit_list(self, gen: int, locations: List[Location]) -> bool:
        with self._lock:
            if gen != self._list_generation:
                log.debug("dropping stale location list", extra={"extra": {"gen": gen, "latest": self._list_generation}})
                return False
            self.all_locations = locations
            self._show(self._ranked(locations))
            return True

    def _commit_origin(self, gen: int, origin: ViewerPosition, fly: bool = False) -> bool:
        with self._lock:
            if gen != self._origin_generation:
                log.debug("dropping stale origin", extra={"extra": {"gen": gen, "latest": self._origin_generation}})
                return False
            self.origin = origin
            if fly:
                self.markers.surface.fly_to(origin.latitude, origin.longitude, ORIGIN_ZOOM)
            else:
                self.markers.surface.set_view(origin.latitude, origin.longitude, ORIGIN_ZOOM)
            self._show(rank(self.all_locations, origin))
            return True

    # ----------------------------
    # Actions
    # ----------------------------
    def start(self) -> None:
        """Map styles are ready: bring the map up and load the locations."""
        self.markers.on_styles_loaded(self.client.tile_url_template(self.style))
        self.load()

    def load(self) -> Optional[str]:
        gen = self._begin_list()
        self.loading = True
        try:
            locs = self.client.fetch_locations()
            todo = [loc for loc in locs if loc.needs_geocoding]
            if todo:
                try:
                    found = self.client.geocode_batch(todo)
                except LocatorError as e:
                    # stores stay listed, just without distance
                    log.warning("batch geocode failed: %s", e.kind)
                    found = {}
                locs = [loc.with_coordinate(found[loc.id]) if loc.id in found else loc for loc in locs]
        except LocatorError as e:
            log.warning("failed to fetch stores: %s", e.kind)
            return "Failed to load locations."
        finally:
            self.loading = False
            self.markers.on_viewport_resized()

        self._commit_list(gen, locs)
        return None

    def search(self, address: str) -> Optional[str]:
        """Rank by a typed address. Returns a user-facing message on failure."""
        if not address or not address.strip():
            return None
        gen = self._begin_origin()
        try:
            pos = origin_mod.from_address(self.client, address)
        except NotFound:
            return "Location not found."
        except LocatorError as e:
            log.warning("geocoding search error: %s", e.kind)
            return "Error searching for location."
        self._commit_origin(gen, pos, fly=True)
        return None

    def use_current_location(self) -> Optional[str]:
        if self.geolocation is None:
            return GeolocationUnavailable().detail
        gen = self._begin_origin()
        try:
            pos = origin_mod.from_device(self.geolocation, self.permissions)
        except LocatorError as e:
            return e.detail
        self._commit_origin(gen, pos)
        return None

    def select(self, location: Location) -> None:
        self.selected = location
        c = location.coordinate
        if isinstance(c, Resolved):
            self.markers.surface.fly_to(c.latitude, c.longitude, SELECT_ZOOM)

    # ----------------------------
    # View
    # ----------------------------
    def rows(self) -> List[DisplayedLocation]:
        return to_display(self.displayed, self.unit)

    @property
    def title(self) -> str:
        return f"{len(self.displayed)} Nearest Locations"
