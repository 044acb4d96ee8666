from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from .env import read_env

MAX_CSS_LENGTH = 200_000
STYLESHEET_ENV = "QUICKLOOK_STYLESHEET"

DEFAULT_STYLESHEET = """\
:root { color-scheme: light dark; }
body { font: 1rem/1.6 -apple-system, BlinkMacSystemFont, "Segoe UI", system-ui, sans-serif; padding: 24px; margin: 0; }
.chapter { margin: 40px 0; }
img, svg, video, iframe { max-width: 100%; height: auto; }
h1,h2,h3,h4 { line-height: 1.25; }
blockquote { border-inline-start: 3px solid color-mix(in srgb, currentColor 20%, transparent); padding-inline-start: 12px; margin-inline: 0; color: color-mix(in srgb, currentColor 80%, black); }
code, pre { font-family: ui-monospace, SFMono-Regular, Menlo, monospace; }
"""

logger = logging.getLogger("quicklook.css")


def validate_css(raw: str) -> Optional[str]:
    if not raw or not raw.strip():
        return None

    if len(raw) > MAX_CSS_LENGTH:
        return f"CSS is too long (over {MAX_CSS_LENGTH} characters)"
    if "\x00" in raw:
        return "CSS contains a NUL character"
    if "</style" in raw.lower():
        return "CSS must not close the <style> element"

    depth = 0
    in_string: Optional[str] = None
    escape = False
    i = 0
    while i < len(raw):
        ch = raw[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == in_string:
                in_string = None
            i += 1
            continue

        if ch in ("'", '"'):
            in_string = ch
            i += 1
            continue

        if ch == "/" and i + 1 < len(raw) and raw[i + 1] == "*":
            end = raw.find("*/", i + 2)
            if end == -1:
                return "CSS comment is not closed"
            i = end + 2
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                return "CSS braces are unbalanced"

        i += 1

    if in_string:
        return "CSS string is not closed"
    if depth != 0:
        return "CSS braces are unbalanced"
    return None


@lru_cache(maxsize=1)
def preview_stylesheet() -> str:
    """Stylesheet embedded in every composed document, fixed for the process lifetime."""
    override = read_env(STYLESHEET_ENV)
    if not override or not override.strip():
        return DEFAULT_STYLESHEET
    error = validate_css(override)
    if error:
        logger.warning("ignoring %s: %s", STYLESHEET_ENV, error)
        return DEFAULT_STYLESHEET
    return override
