"""URL resolution, validation and blocklist checks.

Everything here is pure: no network access, no logging side effects beyond
debug output, safe to call before any outbound fetch.
"""

import logging
from typing import Iterable, Optional
from urllib.parse import quote, urljoin, urlsplit

from app.vars import BLOCKED_DOMAINS

logger = logging.getLogger("uvicorn.error")

ALLOWED_SCHEMES = {"http", "https"}


def try_resolve_url(reference: str, base: str) -> Optional[str]:
    """Resolve reference against base, or None when either side is malformed."""
    try:
        resolved = urljoin(base, reference)
        # urljoin only validates what it needs; surface bad authorities here
        urlsplit(resolved).port
        return resolved
    except (ValueError, TypeError) as e:
        logger.debug(f"[URL] Could not resolve {reference!r} against {base!r}: {e}")
        return None


def resolve_url(reference: str, base: str) -> str:
    """Resolve a possibly relative reference against base; malformed input comes back unchanged."""
    resolved = try_resolve_url(reference, base)
    return reference if resolved is None else resolved


def is_proxyable(url: str) -> bool:
    """True when url has a scheme the proxy can fetch."""
    try:
        return urlsplit(url).scheme.lower() in ALLOWED_SCHEMES
    except ValueError:
        return False


def is_valid_url(url: Optional[str]) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        # Accessing hostname/port validates the authority (e.g. bad ports, IPv6 brackets)
        hostname = parts.hostname
        parts.port
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_SCHEMES and bool(hostname)


def is_blocked_url(url: str, blocklist: Iterable[str] = BLOCKED_DOMAINS) -> bool:
    try:
        hostname = urlsplit(url).hostname
    except (ValueError, TypeError):
        return False
    if not hostname:
        return False
    return any(domain.lower() in hostname for domain in blocklist if domain)


def base_host(url: str) -> str:
    """scheme://host[:port] of url."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def proxy_url(endpoint: str, absolute_url: str) -> str:
    """Proxy-local URL carrying absolute_url as a single percent-encoded query value."""
    return f"{endpoint}?url={quote(absolute_url, safe='')}"
