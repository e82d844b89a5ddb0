from __future__ import annotations

"""
Request gate + CORS.

Every request goes through `GateMiddleware`:

    OPTIONS            -> 204 with CORS headers, no token checks
    unprotected path   -> handler
    protected path     -> extract token -> verify -> request.state.scope -> handler
                          any failure   -> 401 "Unauthorized"

CORS headers are merged into every response afterwards, error responses
included, so the embedding page can always read them.
"""

import re
from typing import Dict, List, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from common.errors import LocatorError, MissingToken, TokenError
from common.logging_setup import get_logger
from common.types import TokenScope
from common.utils import epoch_now
from gateway import tokens


log = get_logger(__name__)

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With, Accept, Origin"


# -------------------------
# CORS
# -------------------------
def origin_allowed(origin: Optional[str], allowed: List[str]) -> bool:
    """
    Exact match, or `*` fragment match ("https://*.webflow.io" allows any
    origin containing ".webflow.io" under https), plus Webflow's designer
    origins `https://webflow-*.design.webflow.com`.
    """
    if not origin:
        return False
    for a in allowed:
        if "*" in a:
            prefix, _, suffix = a.partition("*")
            if origin.startswith(prefix) and origin.endswith(suffix) and len(origin) > len(prefix) + len(suffix):
                return True
        elif origin == a:
            return True
    return origin.startswith("https://webflow-") and origin.endswith(".design.webflow.com")


def cors_headers(origin: Optional[str], allowed: List[str], max_age: int = 86400) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin if origin_allowed(origin, allowed) else "*",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": str(int(max_age)),
    }


# -------------------------
# Errors -> responses
# -------------------------
def error_response(err: LocatorError) -> JSONResponse:
    """Token errors all look the same to the caller; the kind only goes to the log."""
    if isinstance(err, TokenError):
        return JSONResponse(
            {"error": "unauthorized", "detail": "Unauthorized"},
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return JSONResponse({"error": err.kind, "detail": err.detail}, status_code=err.status_code)


# -------------------------
# Gate
# -------------------------
class Gate:
    """Pure token logic, kept apart from Starlette so it is easy to test."""

    def __init__(self, secret: str, base_path: str = "", clock=epoch_now):
        if not secret:
            raise ValueError("Gate requires a non-empty secret")
        self._secret = secret
        self._clock = clock
        base = re.escape(base_path.rstrip("/"))
        self._protected = re.compile(rf"^{base}/api/(locations|geocode|maps)(/|$)")
        self._tiles = re.compile(rf"^{base}/api/maps/tiles/")

    def is_protected(self, path: str) -> bool:
        return bool(self._protected.match(path))

    def is_tile_route(self, path: str) -> bool:
        return bool(self._tiles.match(path))

    def extract_token(self, path: str, headers: Mapping[str, str], query: Mapping[str, str]) -> Optional[str]:
        auth = headers.get("authorization") or ""
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
            return parts[1]
        # image loads cannot set headers; tiles may carry ?token=
        if self.is_tile_route(path):
            return query.get("token") or None
        return None

    def authorize(self, path: str, headers: Mapping[str, str], query: Mapping[str, str]) -> TokenScope:
        token = self.extract_token(path, headers, query)
        if token is None:
            raise MissingToken("Unauthorized: Missing token")
        return tokens.decode(token, self._secret, now=self._clock()).scope


class GateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, gate: Gate, allowed_origins: List[str], max_age: int = 86400):
        super().__init__(app)
        self.gate = gate
        self.allowed_origins = list(allowed_origins)
        self.max_age = int(max_age)

    async def dispatch(self, request: Request, call_next) -> Response:
        cors = cors_headers(request.headers.get("origin"), self.allowed_origins, self.max_age)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors)

        path = request.url.path
        response: Response
        if self.gate.is_protected(path):
            try:
                request.state.scope = self.gate.authorize(path, request.headers, request.query_params)
            except TokenError as e:
                log.warning(
                    "rejected request: %s",
                    e.kind,
                    extra={"extra": {"path": path, "kind": e.kind, "reason": e.detail}},
                )
                response = error_response(e)
                response.headers.update(cors)
                return response

        try:
            response = await call_next(request)
        except Exception:
            log.exception("unhandled error for %s", path)
            response = JSONResponse({"error": "internal", "detail": "Internal Server Error"}, status_code=500)
        response.headers.update(cors)
        return response
