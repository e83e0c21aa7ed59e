import logging
import re

from app.vars import RESOURCE_ENDPOINT

from .urls import proxy_url, try_resolve_url

logger = logging.getLogger("uvicorn.error")

# url( 'x' ) / url("x") / url(x), any casing and inner whitespace
CSS_URL_PATTERN = re.compile(r"""url\s*\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)


def rewrite_css(css: str, base_url: str, endpoint: str = RESOURCE_ENDPOINT) -> str:
    """
    Route every relative url(...) reference in a stylesheet through the proxy.

    data: URIs and values already starting with http are left alone, as is
    everything outside the url(...) tokens. The original quote style is kept.
    """

    def _replace(match: re.Match) -> str:
        quote_char = match.group(1)
        value = match.group(2).strip()
        if not value or value.startswith("data:") or value.startswith("http"):
            return match.group(0)
        absolute_url = try_resolve_url(value, base_url)
        if absolute_url is None:
            return match.group(0)
        return f"url({quote_char}{proxy_url(endpoint, absolute_url)}{quote_char})"

    return CSS_URL_PATTERN.sub(_replace, css)
