"""Prompt-injection screening, query sanitization and source filtering."""

import re
from collections.abc import Iterable
from urllib.parse import urlparse

_QUERY_DISALLOWED = re.compile(r"[^A-Za-z0-9\s\-.]")


def _marker_pattern(marker: str) -> re.Pattern[str]:
    words = marker.strip().lower().split()
    return re.compile(r"(?<!\w)" + r"\s+".join(re.escape(w) for w in words) + r"(?!\w)")


def find_injection_marker(text: str | None, markers: Iterable[str]) -> str | None:
    """Return the first injection marker found in `text`, case-insensitively."""
    if not text:
        return None
    lowered = text.lower()
    for marker in markers:
        if marker.strip() and _marker_pattern(marker).search(lowered):
            return marker
    return None


def sanitize_query(query: str, max_length: int) -> str | None:
    """Strip disallowed characters; None when nothing usable (or too much) remains."""
    cleaned = _QUERY_DISALLOWED.sub("", query).strip()
    if not cleaned or len(cleaned) > max_length:
        return None
    return cleaned


def _hostname(url: str) -> str | None:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    host = parsed.hostname.lower()
    return host[4:] if host.startswith("www.") else host


def is_blacklisted(url: str, blacklisted_domains: Iterable[str]) -> bool:
    """True for blacklisted domains (and their subdomains) and for unparseable URLs."""
    host = _hostname(url)
    if host is None:
        return True
    for domain in blacklisted_domains:
        domain = domain.lower().strip()
        if host == domain or host.endswith("." + domain):
            return True
    return False
