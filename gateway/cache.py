from __future__ import annotations

"""
Key-value cache used by the locations and geocode tiers.

The gateway treats the cache as an external store with atomic get/put; each
key is only ever written by the operation that computed its value, so plain
overwrite is safe and no cross-request locking is needed.

Collection lists are stored in a versioned envelope:
    v1: a bare JSON list of items                (older deployments)
    v2: {"version": 2, "items": [...]}           (current writes)
`{"items": [...]}` without a version is read as v2.
"""

import json
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from common.logging_setup import get_logger


log = get_logger(__name__)


ENVELOPE_VERSION = 2


class KeyValueCache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None: ...


class MemoryCache:
    """
    In-process cache with per-key expiry. Values are stored JSON-encoded so
    reads behave like an external store (callers get a fresh copy).

    Expired keys are dropped when read, and swept from the whole store on a
    write once `sweep_interval` seconds have passed since the last sweep.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 300.0):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._sweep_interval = float(sweep_interval)
        self._next_sweep = clock() + self._sweep_interval

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            hit = self._data.get(key)
            if hit is None:
                return None
            raw, expires_at = hit
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
        return json.loads(raw)

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raw = json.dumps(value)
        now = self._clock()
        expires_at = None if not ttl_seconds else now + float(ttl_seconds)
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            self._data[key] = (raw, expires_at)

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        dead = [k for k, (_, exp) in self._data.items() if exp is not None and now >= exp]
        for k in dead:
            del self._data[k]
        self._next_sweep = now + self._sweep_interval
        if dead:
            log.debug("swept expired cache keys", extra={"extra": {"count": len(dead), "live": len(self._data)}})

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# -------------------------
# Envelope
# -------------------------
def wrap_items(items: List[Any]) -> Dict[str, Any]:
    return {"version": ENVELOPE_VERSION, "items": list(items)}


def unwrap_items(cached: Any) -> Optional[List[Any]]:
    """
    Normalize any supported envelope to the item list.
    Returns None (treat as miss) for unknown shapes.
    """
    if cached is None:
        return None
    if isinstance(cached, list):
        return cached
    if isinstance(cached, dict) and isinstance(cached.get("items"), list):
        version = cached.get("version", ENVELOPE_VERSION)
        if version in (1, ENVELOPE_VERSION):
            return cached["items"]
    return None


def locations_key(collection_id: str) -> str:
    return f"locations:{collection_id}"


def geocode_key(collection_id: str, location_id: str) -> str:
    return f"geocode:{collection_id}:{location_id}"
