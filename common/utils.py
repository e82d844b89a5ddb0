from __future__ import annotations

from datetime import datetime, timezone
import re
import time


_WS = re.compile(r"\s+")


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_now() -> int:
    """Whole seconds since the epoch; the resolution token timestamps use."""
    return int(time.time())


def epoch_to_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def normalize_address(address: str) -> str:
    """Trim, collapse whitespace and case-fold, for dedupe within one batch."""
    return _WS.sub(" ", (address or "").strip()).casefold()
