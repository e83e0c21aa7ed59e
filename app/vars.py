import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "secure-web-proxy")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

RESOURCE_ENDPOINT = os.getenv("RESOURCE_ENDPOINT", "/api/proxy")
PAGE_ENDPOINT = os.getenv("PAGE_ENDPOINT", "/proxy-page")
PROXY_BRAND = os.getenv("PROXY_BRAND", "SecureProxy")

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "30"))
PROXY_MAX_REDIRECTS = int(os.getenv("PROXY_MAX_REDIRECTS", "5"))
UPSTREAM_USER_AGENT = os.getenv(
    "UPSTREAM_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
UPSTREAM_ACCEPT_LANGUAGE = os.getenv(
    "UPSTREAM_ACCEPT_LANGUAGE", "ko-KR,ko;q=0.8,en-US;q=0.5,en;q=0.3"
)

RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]


def _parse_blocklist(raw: str) -> frozenset:
    entries = set()
    if not raw:
        return frozenset()
    for entry in raw.split(","):
        entry = entry.strip().lower()
        if entry:
            entries.add(entry)
    return frozenset(entries)


# Hostname substrings refused before any outbound fetch
BLOCKED_DOMAINS = _parse_blocklist(
    os.getenv("BLOCKED_DOMAINS", "malware-site.com,dangerous-site.net")
)
