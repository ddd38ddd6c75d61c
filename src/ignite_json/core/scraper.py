from __future__ import annotations

import re


def scrape(chunk: str, pattern: str | re.Pattern[str]) -> str | None:
    """Return the first substring of ``chunk`` matching ``pattern``, if any."""
    if not chunk:
        return None
    match = re.search(pattern, chunk)
    if match is None:
        return None
    return match.group(0)


def marker_pattern(marker: str) -> str:
    """Pattern capturing the whole line that contains ``marker``."""
    return rf"[^\r\n]*{re.escape(marker)}[^\r\n]*"
