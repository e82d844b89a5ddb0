from __future__ import annotations

"""
JSON-line logging for the gateway, widget and scripts.

One line per record:
  {"t": 1700000000123, "lvl": "INFO", "name": "gateway.server", "msg": "...", "extra": {...}}

Credentials never reach the output: the formatter scrubs `access_token=` /
`token=` query values, `Bearer` credentials and anything shaped like a
signed token from the message, the `extra` payload and tracebacks.
Call sites that hold a specific secret can also pass it through `redact()`.
"""

import json
import logging
import os
import re
import sys
from typing import Any, Optional, TextIO


MASK = "***"

_SCRUB_PATTERNS = (
    (re.compile(r"(?i)\b((?:access_)?token=)[^&\s\"']+"), r"\1" + MASK),
    (re.compile(r"(?i)\b(bearer\s+)[A-Za-z0-9._~+/=-]+"), r"\1" + MASK),
    # compact JWS: three base64url segments, header starts with '{"'
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), MASK),
)

_SECRET_KEYS = frozenset({"token", "access_token", "authorization", "secret", "mapboxtoken", "map_provider_key"})


def scrub(text: str) -> str:
    for pat, repl in _SCRUB_PATTERNS:
        text = pat.sub(repl, text)
    return text


def _scrub_value(key: str, value: Any) -> Any:
    if key.lower() in _SECRET_KEYS and value:
        return MASK
    if isinstance(value, str):
        return scrub(value)
    if isinstance(value, dict):
        return {k: _scrub_value(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub_value("", v) for v in value]
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(record.created * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": scrub(record.getMessage()),
        }
        # log.info("...", extra={"extra": {...}})
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload["extra"] = _scrub_value("", extra)
        if record.exc_info:
            payload["exc_info"] = scrub(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None, force: bool = False) -> None:
    """
    Configure the root logger once.
    Level: explicit `level`, then $LOG_LEVEL, then INFO.
    `force` replaces an earlier configuration (tests, CLI entrypoints).
    """
    root = logging.getLogger()
    if getattr(root, "_locator_configured", False) and not force:
        return

    lvl = logging.getLevelName((level or os.environ.get("LOG_LEVEL") or "INFO").upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._locator_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)


def redact(text: str, *secrets: Optional[str]) -> str:
    """Mask the given secrets in `text`, then apply the generic scrub."""
    for s in secrets:
        if s:
            text = text.replace(s, MASK)
    return scrub(text)
