"""
Error taxonomy shared by the gateway and the widget.

Every error carries the HTTP status it maps to and a message that is safe to
show to the embedding page. Token errors are kept distinct for logging and
tests, but all of them render as a plain 401 "Unauthorized".
"""
from __future__ import annotations

from typing import Optional


class LocatorError(Exception):
    """Base class; `status_code` is the HTTP status the server responds with."""

    status_code: int = 500
    public_message: str = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None, *, status_code: Optional[int] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message
        if status_code is not None:
            self.status_code = int(status_code)

    @property
    def kind(self) -> str:
        return type(self).__name__


# -------------------------
# Token errors (401)
# -------------------------
class TokenError(LocatorError):
    status_code = 401
    public_message = "Unauthorized"


class MissingToken(TokenError):
    pass


class InvalidToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


# -------------------------
# Configuration / upstream
# -------------------------
class MissingUpstreamConfig(LocatorError):
    """No map-provider key (or no site record) on file for the site."""

    status_code = 404
    public_message = "Map provider key not configured for this site"


class UpstreamError(LocatorError):
    """
    Provider returned a non-success status, or did not answer at all.
    The upstream status is propagated; network-level failures map to 500.
    """

    status_code = 500
    public_message = "Upstream provider failed"

    def __init__(self, detail: Optional[str] = None, *, status_code: Optional[int] = None):
        super().__init__(detail, status_code=status_code if status_code else 500)


class NotFound(LocatorError):
    status_code = 404
    public_message = "Not found"


class MalformedRequest(LocatorError):
    status_code = 400
    public_message = "Malformed request"


# -------------------------
# Widget-side (single user action only)
# -------------------------
class GeolocationDenied(LocatorError):
    status_code = 403
    public_message = (
        "You have blocked location services. To use this feature, please enable "
        "location permissions in your browser settings."
    )


class GeolocationUnavailable(LocatorError):
    status_code = 503
    public_message = "Geolocation is not supported by your browser."
