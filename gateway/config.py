from __future__ import annotations

"""
Gateway configuration.

Loaded from YAML (default `config/params.yaml`, or $LOCATOR_CONFIG), merged
over built-in defaults, then a handful of secrets/paths are overridden from
the environment so they never have to live in the file.
"""

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


DEFAULT_CONFIG_PATH = "config/params.yaml"

ONE_YEAR_S = 365 * 24 * 3600

DEFAULTS: Dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 8000, "base_path": ""},
    "auth": {"secret": "", "token_ttl_seconds": ONE_YEAR_S, "operator_key": ""},
    "cors": {
        "allowed_origins": [
            "http://localhost:4321",
            "http://localhost:3000",
            "https://webflow.com",
            "https://*.webflow.com",
            "https://*.design.webflow.com",
            "https://*.webflow.io",
            "null",
        ],
        "max_age_seconds": 86400,
    },
    "cache": {"locations_ttl_seconds": 3600, "geocode_ttl_seconds": 30 * 24 * 3600},
    "geocoding": {"timeout_seconds": 5.0, "max_workers": 8},
    "tiles": {"timeout_seconds": 10.0, "max_age_seconds": 86400, "chunk_size": 16384},
    "mapbox": {"api_base": "https://api.mapbox.com"},
    "cms": {"api_base": "https://api.webflow.com/v2", "timeout_seconds": 10.0, "page_size": 100},
    "locations": {"resolve_coordinates": False},
    "sites": {"file": "config/sites.yaml"},
}

ENV_OVERRIDES = {
    "LOCATOR_AUTH_SECRET": ("auth", "secret"),
    "LOCATOR_OPERATOR_KEY": ("auth", "operator_key"),
    "LOCATOR_BASE_PATH": ("server", "base_path"),
    "LOCATOR_SITES_FILE": ("sites", "file"),
}


def _deep_merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Defaults <- YAML file (if present) <- environment."""
    env = os.environ if env is None else env
    path = path or env.get("LOCATOR_CONFIG") or DEFAULT_CONFIG_PATH
    P = copy.deepcopy(DEFAULTS)
    if Path(path).exists():
        with open(path, "r") as f:
            P = _deep_merge(P, yaml.safe_load(f) or {})
    for var, (section, key) in ENV_OVERRIDES.items():
        if env.get(var):
            P.setdefault(section, {})[key] = env[var]
    return P


def _normalize_base_path(p: str) -> str:
    p = (p or "").strip().rstrip("/")
    if p and not p.startswith("/"):
        p = "/" + p
    return p


@dataclass
class Settings:
    auth_secret: str = ""
    operator_key: str = ""
    token_ttl_seconds: int = ONE_YEAR_S
    base_path: str = ""
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULTS["cors"]["allowed_origins"]))
    cors_max_age_seconds: int = 86400
    locations_ttl_seconds: int = 3600
    geocode_ttl_seconds: int = 30 * 24 * 3600
    resolve_coordinates: bool = False
    geocode_timeout_seconds: float = 5.0
    geocode_max_workers: int = 8
    tile_timeout_seconds: float = 10.0
    tile_max_age_seconds: int = 86400
    tile_chunk_size: int = 16384
    mapbox_api_base: str = "https://api.mapbox.com"
    cms_api_base: str = "https://api.webflow.com/v2"
    cms_timeout_seconds: float = 10.0
    cms_page_size: int = 100
    sites_file: str = "config/sites.yaml"

    @classmethod
    def from_dict(cls, P: Dict[str, Any]) -> "Settings":
        P = _deep_merge(DEFAULTS, P)
        return cls(
            auth_secret=str(P["auth"].get("secret") or ""),
            operator_key=str(P["auth"].get("operator_key") or ""),
            token_ttl_seconds=int(P["auth"]["token_ttl_seconds"]),
            base_path=_normalize_base_path(str(P["server"].get("base_path") or "")),
            host=str(P["server"]["host"]),
            port=int(P["server"]["port"]),
            allowed_origins=[str(o) for o in P["cors"]["allowed_origins"]],
            cors_max_age_seconds=int(P["cors"]["max_age_seconds"]),
            locations_ttl_seconds=int(P["cache"]["locations_ttl_seconds"]),
            geocode_ttl_seconds=int(P["cache"]["geocode_ttl_seconds"]),
            resolve_coordinates=bool(P["locations"]["resolve_coordinates"]),
            geocode_timeout_seconds=float(P["geocoding"]["timeout_seconds"]),
            geocode_max_workers=max(1, int(P["geocoding"]["max_workers"])),
            tile_timeout_seconds=float(P["tiles"]["timeout_seconds"]),
            tile_max_age_seconds=int(P["tiles"]["max_age_seconds"]),
            tile_chunk_size=int(P["tiles"]["chunk_size"]),
            mapbox_api_base=str(P["mapbox"]["api_base"]).rstrip("/"),
            cms_api_base=str(P["cms"]["api_base"]).rstrip("/"),
            cms_timeout_seconds=float(P["cms"]["timeout_seconds"]),
            cms_page_size=int(P["cms"]["page_size"]),
            sites_file=str(P["sites"]["file"]),
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        return cls.from_dict(load_config(path))
