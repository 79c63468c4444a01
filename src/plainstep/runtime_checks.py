from __future__ import annotations

import math
import re
from typing import Any

_MISSING_BROWSER_ERROR_HINTS = (
    "executable doesn't exist",
    "executable does not exist",
    "download new browsers",
    "playwright install",
    "could not find browser",
    "failed to launch chromium because executable",
)

_URL_SCHEME_PATTERN = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.-]*://|about:|data:|file:)", re.IGNORECASE)

SUPPORTED_KEYS = (
    "Enter",
    "Tab",
    "Escape",
    "Backspace",
    "Delete",
    "Space",
    "ArrowUp",
    "ArrowDown",
    "ArrowLeft",
    "ArrowRight",
    "Home",
    "End",
    "PageUp",
    "PageDown",
)
_KEYS_BY_LOWER = {key.lower(): key for key in SUPPORTED_KEYS}


def is_missing_browser_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _MISSING_BROWSER_ERROR_HINTS)


def normalize_space(value: Any, limit: int = 200) -> str:
    if value is None:
        return ""
    compact = re.sub(r"\s+", " ", str(value)).strip()
    return compact[:limit] if compact else ""


def normalize_url(raw_url: str) -> str:
    url = raw_url.strip()
    if not url:
        return ""
    if _URL_SCHEME_PATTERN.match(url):
        return url
    return f"https://{url}"


def normalize_key_name(raw_key: str) -> str | None:
    return _KEYS_BY_LOWER.get(raw_key.strip().lower())


def parse_seconds(raw_value: str) -> float | None:
    try:
        seconds = float(raw_value.strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds
