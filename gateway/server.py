from __future__ import annotations

"""
Store locator gateway (FastAPI).

Composition root: builds the token gate, caches, provider clients and
services from `Settings` and wires the routes. Nothing here is module-level
state, so tests build a fresh app per case.

Run:
    LOCATOR_AUTH_SECRET=... python -m gateway.server --config config/params.yaml
    LOCATOR_AUTH_SECRET=... uvicorn --factory gateway.server:app_from_env
"""

import argparse
import secrets
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

import requests
import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from common.errors import LocatorError, MalformedRequest, MissingToken
from common.logging_setup import get_logger, setup_logging
from common.types import TokenScope
from common.utils import iso_now_ms
from gateway.cache import KeyValueCache, MemoryCache
from gateway.cms import CmsClient
from gateway.config import Settings
from gateway.geocoding import GeocodeBatcher
from gateway.issuer import TokenIssuer
from gateway.locations import LocationService
from gateway.mapbox import MapboxClient
from gateway.middleware import Gate, GateMiddleware, error_response
from gateway.sites import SiteStore, YamlSiteStore
from gateway.tiles import TileProxy


log = get_logger(__name__)


# -------------------------
# Request bodies
# -------------------------
class GenerateTokenBody(BaseModel):
    siteId: str
    collectionId: str


class GeocodeItem(BaseModel):
    # opaque; echoed back exactly as sent
    id: Union[str, int]
    address: str


class GeocodeBatchBody(BaseModel):
    locations: List[GeocodeItem]


# -------------------------
# Wiring
# -------------------------
@dataclass
class Services:
    settings: Settings
    issuer: TokenIssuer
    locations: LocationService
    batcher: GeocodeBatcher
    tiles: TileProxy


def build_services(
    settings: Settings,
    sites: Optional[SiteStore] = None,
    cache: Optional[KeyValueCache] = None,
    mapbox: Optional[MapboxClient] = None,
    cms_factory: Optional[Callable[[str], CmsClient]] = None,
) -> Services:
    sites = sites if sites is not None else YamlSiteStore(settings.sites_file)
    cache = cache if cache is not None else MemoryCache()
    mapbox = mapbox or MapboxClient(settings.mapbox_api_base)
    if cms_factory is None:
        session = requests.Session()

        def cms_factory(access_token: str) -> CmsClient:
            return CmsClient(
                access_token,
                api_base=settings.cms_api_base,
                session=session,
                timeout=settings.cms_timeout_seconds,
                page_size=settings.cms_page_size,
            )

    batcher = GeocodeBatcher(
        mapbox,
        cache=cache,
        timeout=settings.geocode_timeout_seconds,
        max_workers=settings.geocode_max_workers,
        cache_ttl=settings.geocode_ttl_seconds,
    )
    return Services(
        settings=settings,
        issuer=TokenIssuer(settings.auth_secret, sites=sites, default_ttl=settings.token_ttl_seconds),
        locations=LocationService(
            sites,
            cache,
            cms_factory,
            ttl=settings.locations_ttl_seconds,
            batcher=batcher if settings.resolve_coordinates else None,
        ),
        batcher=batcher,
        tiles=TileProxy(
            mapbox,
            timeout=settings.tile_timeout_seconds,
            max_age=settings.tile_max_age_seconds,
            chunk_size=settings.tile_chunk_size,
        ),
    )


def require_scope(request: Request) -> TokenScope:
    """Scope injected by GateMiddleware; handlers never re-read the token."""
    scope = getattr(request.state, "scope", None)
    if scope is None:
        raise MissingToken("Unauthorized: Missing auth token in route.")
    return scope


def create_app(settings: Settings, services: Optional[Services] = None, gate: Optional[Gate] = None) -> FastAPI:
    if not settings.auth_secret:
        raise RuntimeError("auth secret is not configured (set LOCATOR_AUTH_SECRET)")
    svc = services or build_services(settings)
    gate = gate or Gate(settings.auth_secret, base_path=settings.base_path)

    app = FastAPI(title="Store Locator Gateway", version="1.0.0")
    app.state.services = svc
    app.add_middleware(
        GateMiddleware,
        gate=gate,
        allowed_origins=settings.allowed_origins,
        max_age=settings.cors_max_age_seconds,
    )

    @app.exception_handler(LocatorError)
    async def _locator_error(request: Request, exc: LocatorError):
        if exc.status_code >= 500:
            log.warning("%s on %s: %s", exc.kind, request.url.path, exc.detail)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return error_response(MalformedRequest("Invalid request parameters"))

    def operator_guard(x_operator_key: Optional[str] = Header(None)) -> None:
        # stands in for the operator session; only the issuance route uses it
        expected = settings.operator_key
        if not expected or not x_operator_key or not secrets.compare_digest(x_operator_key, expected):
            raise MissingToken("operator authentication required")

    api = APIRouter(prefix=f"{settings.base_path}/api")

    @api.post("/auth/generate-token", dependencies=[Depends(operator_guard)])
    def generate_token(body: GenerateTokenBody):
        token = svc.issuer.issue_for_site(body.siteId.strip(), body.collectionId.strip())
        return {"token": token}

    @api.get("/locations")
    def locations(scope: TokenScope = Depends(require_scope)):
        return JSONResponse(svc.locations.list_items(scope))

    @api.post("/geocode")
    def geocode_batch(body: GeocodeBatchBody = Body(...), scope: TokenScope = Depends(require_scope)):
        if not body.locations:
            raise MalformedRequest("locations are required")
        # first entry wins for a repeated id
        unique: Dict[str, GeocodeItem] = {}
        for i in body.locations:
            unique.setdefault(str(i.id), i)
        found = svc.batcher.geocode_batch([(key, i.address) for key, i in unique.items()], scope)
        geocoded = [
            {"id": i.id, "latitude": found[key].latitude, "longitude": found[key].longitude}
            for key, i in unique.items()
            if key in found
        ]
        return {"geocodedLocations": geocoded}

    @api.get("/geocode")
    def geocode_one(address: Optional[str] = Query(None), scope: TokenScope = Depends(require_scope)):
        if not address or not address.strip():
            raise MalformedRequest("address is required")
        return svc.batcher.lookup(address, scope)

    @api.get("/maps/tiles/{z}/{x}/{y}.png")
    def tile(z: int, x: int, y: int, style: Optional[str] = Query(None), scope: TokenScope = Depends(require_scope)):
        t = svc.tiles.fetch_tile(z, x, y, style, scope)
        return StreamingResponse(t.body, media_type=t.media_type, headers=t.headers)

    app.include_router(api)

    @app.get("/health")
    def health():
        return {"status": "ok", "time": iso_now_ms(), "base_path": settings.base_path}

    return app


def app_from_env() -> FastAPI:
    setup_logging()
    return create_app(Settings.load())


# -------- local dev entrypoint --------
def main() -> None:
    ap = argparse.ArgumentParser(description="Store locator gateway")
    ap.add_argument("--config", default=None, help="YAML config (default: $LOCATOR_CONFIG or config/params.yaml)")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args()

    setup_logging(args.log_level, force=True)
    settings = Settings.load(args.config)
    uvicorn.run(create_app(settings), host=args.host or settings.host, port=args.port or settings.port)


if __name__ == "__main__":
    main()
