from typing import Optional
from urllib.parse import urlsplit, urlunsplit

LOG_URL_LIMIT = 300


def redact_query(url: Optional[str]) -> str:
    """Strip query and fragment values from a URL before it goes into logs.

    Proxied URLs routinely carry session ids or signed tokens in their query
    strings, so only the parameter names are kept.
    """
    if not url:
        return "<empty>"
    try:
        parts = urlsplit(url)
    except ValueError:
        return truncate_for_log(url)
    if not parts.query:
        return truncate_for_log(urlunsplit(parts._replace(fragment="")))
    names = [p.split("=", 1)[0] for p in parts.query.split("&") if p]
    query = "&".join(f"{name}=***" for name in names)
    return truncate_for_log(urlunsplit(parts._replace(query=query, fragment="")))


def truncate_for_log(text: str, limit: int = LOG_URL_LIMIT) -> str:
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...(+{len(text) - limit} chars)"
