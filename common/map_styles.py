"""
Fixed map style table.

The tile proxy only ever puts a value from this table into an upstream URL;
anything else is rejected.
"""
from __future__ import annotations

from typing import Dict, Optional


DEFAULT_STYLE = "streets-v12"

# widget display name -> provider style id
STYLE_BY_NAME: Dict[str, str] = {
    "Streets": "streets-v12",
    "Outdoors": "outdoors-v12",
    "Light": "light-v11",
    "Dark": "dark-v11",
    "Satellite": "satellite-v9",
    "Satellite Streets": "satellite-streets-v12",
}

STYLE_IDS = frozenset(STYLE_BY_NAME.values())


def resolve_style(name: Optional[str]) -> Optional[str]:
    """
    Accept either a display name or a known style id. Empty -> default.
    Returns None for anything unrecognized.
    """
    if name is None or not str(name).strip():
        return DEFAULT_STYLE
    s = str(name).strip()
    if s in STYLE_IDS:
        return s
    return STYLE_BY_NAME.get(s)
