from __future__ import annotations

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

_OVERLAY_INTERCEPTION_HINTS = (
    "intercepts pointer events",
    "element is not receiving pointer events",
    "another element would receive the click",
)


def is_missing_browser_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _MISSING_BROWSER_ERROR_HINTS)


def is_overlay_interception_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _OVERLAY_INTERCEPTION_HINTS)


def error_message(exc: BaseException) -> str:
    lines = [line for line in str(exc).splitlines() if line.strip()]
    return normalize_space(lines[0]) if lines else exc.__class__.__name__


def normalize_space(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()
