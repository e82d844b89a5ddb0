from __future__ import annotations

"""
Where is the viewer?

Two paths converge on a ViewerPosition:
  a) device geolocation, behind an explicit permission query
  b) a free-text address resolved through the gateway's geocode route

The browser APIs themselves are outside this package; they are reached
through the small protocols below.
"""

from enum import Enum
from typing import Optional, Protocol

from common.errors import GeolocationDenied, GeolocationUnavailable
from common.logging_setup import get_logger
from common.types import ViewerPosition


log = get_logger(__name__)


class PermissionState(str, Enum):
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"


class PermissionQuery(Protocol):
    def query_geolocation(self) -> str: ...


class GeolocationSource(Protocol):
    is_secure_context: bool

    def supported(self) -> bool: ...

    def current_position(self) -> ViewerPosition: ...


class AddressGeocoder(Protocol):
    def geocode_address(self, address: str): ...


def permission_state(permissions: Optional[PermissionQuery]) -> PermissionState:
    """A failing or missing permission API is treated as `prompt`."""
    if permissions is None:
        return PermissionState.PROMPT
    try:
        return PermissionState(permissions.query_geolocation())
    except Exception as e:  # browser APIs vary; never block on the query itself
        log.warning("geolocation permission query failed: %s", e)
        return PermissionState.PROMPT


def from_device(geolocation: GeolocationSource, permissions: Optional[PermissionQuery] = None) -> ViewerPosition:
    if not getattr(geolocation, "is_secure_context", True):
        raise GeolocationUnavailable(
            "Geolocation is not available on insecure connections. Please use HTTPS or localhost."
        )
    if permission_state(permissions) is PermissionState.DENIED:
        raise GeolocationDenied()
    if not geolocation.supported():
        raise GeolocationUnavailable()
    try:
        return geolocation.current_position()
    except (GeolocationDenied, GeolocationUnavailable):
        raise
    except Exception as e:
        raise GeolocationUnavailable(
            "Could not get your location. Please ensure you've granted permission."
        ) from e


def from_address(geocoder: AddressGeocoder, address: str) -> ViewerPosition:
    """Raises NotFound when the address matches nothing."""
    return ViewerPosition.from_coordinate(geocoder.geocode_address(address.strip()))
