import asyncio
import errno
import logging
import socket
from typing import Dict, Mapping, Optional

import httpx
from opentelemetry import trace

from app.utils import redact_query
from app.utils.exception_logging import (
    find_exception_in_chain,
    format_exception_message,
    iter_exception_chain,
    log_exception_with_details,
)
from app.vars import (
    PROXY_MAX_REDIRECTS,
    PROXY_TIMEOUT,
    UPSTREAM_ACCEPT_LANGUAGE,
    UPSTREAM_USER_AGENT,
)

from .errors import (
    FetchError,
    UpstreamNotFoundError,
    UpstreamOtherError,
    UpstreamRefusedError,
    UpstreamTimeoutError,
)
from .models import ProxyRequest, UpstreamResponse

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Browser-like header set sent with every outbound request
DEFAULT_UPSTREAM_HEADERS = {
    "User-Agent": UPSTREAM_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": UPSTREAM_ACCEPT_LANGUAGE,
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Caller-supplied headers that would corrupt the outbound request framing
UNFORWARDABLE_HEADERS = {
    "host",
    "content-length",
    "transfer-encoding",
}

# Always sent with the default value: httpx decodes gzip/deflate without optional packages
PINNED_HEADERS = {
    "accept-encoding",
}

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname provided",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "name resolution",
)
_REFUSED_MARKERS = (
    "connection refused",
    "actively refused",
)


def build_upstream_headers(extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merge caller headers over the default set; caller wins regardless of key casing."""
    headers = dict(DEFAULT_UPSTREAM_HEADERS)
    if not extra:
        return headers
    for name, value in extra.items():
        name_lower = name.lower()
        if name_lower in UNFORWARDABLE_HEADERS or name_lower in PINNED_HEADERS:
            logger.debug(f"[Upstream] Ignoring caller header {name}")
            continue
        for existing in [h for h in headers if h.lower() == name_lower]:
            del headers[existing]
        headers[name] = str(value)
    return headers


def create_upstream_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=True,
        max_redirects=PROXY_MAX_REDIRECTS,
        transport=transport,
    )


def _chain_mentions(exception: BaseException, markers) -> bool:
    for candidate in iter_exception_chain(exception):
        text = str(candidate).lower()
        if any(marker in text for marker in markers):
            return True
    return False


def classify_connect_error(exception: BaseException, url: str) -> FetchError:
    """Map a connection-phase failure onto the fetch error taxonomy."""
    detail = format_exception_message(exception)
    if find_exception_in_chain(exception, socket.gaierror) or _chain_mentions(
        exception, _DNS_FAILURE_MARKERS
    ):
        return UpstreamNotFoundError(url=url, detail=detail)
    refused = find_exception_in_chain(exception, ConnectionRefusedError)
    if refused is None:
        refused = next(
            (
                e
                for e in iter_exception_chain(exception)
                if getattr(e, "errno", None) == errno.ECONNREFUSED
            ),
            None,
        )
    if refused is not None or _chain_mentions(exception, _REFUSED_MARKERS):
        return UpstreamRefusedError(url=url, detail=detail)
    if find_exception_in_chain(exception, TimeoutError):
        return UpstreamTimeoutError(url=url, detail=detail)
    return UpstreamOtherError(url=url, detail=detail)


async def fetch(
    request: ProxyRequest, client: Optional[httpx.AsyncClient] = None
) -> UpstreamResponse:
    """
    Fetch the target URL and return status, headers and the raw body.

    Upstream 4xx/5xx answers are returned like any other response; only
    transport failures raise, as a FetchError subclass. Nothing is retried.
    """
    target_url = request.target_url
    method = (request.method or "GET").upper()
    headers = build_upstream_headers(request.extra_headers)
    log_url = redact_query(target_url)

    with tracer.start_as_current_span("upstream_fetch") as span:
        span.set_attribute("proxy.target_url", log_url)
        span.set_attribute("proxy.method", method)
        logger.debug(f"[Upstream] {method} {log_url}")

        try:
            if client is None:
                async with create_upstream_client() as owned_client:
                    response = await asyncio.wait_for(
                        owned_client.request(method, target_url, headers=headers),
                        timeout=PROXY_TIMEOUT,
                    )
            else:
                response = await asyncio.wait_for(
                    client.request(method, target_url, headers=headers),
                    timeout=PROXY_TIMEOUT,
                )

        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.error(f"[Upstream] Timeout for {log_url}: {e!r}")
            span.set_attribute("proxy.error", UpstreamTimeoutError.kind)
            raise UpstreamTimeoutError(
                url=target_url, detail=format_exception_message(e) or "timed out"
            ) from e

        except (httpx.ConnectError, OSError) as e:
            error = classify_connect_error(e, target_url)
            logger.error(
                f"[Upstream] Failed to connect to {log_url} ({error.kind}): {error.detail}"
            )
            span.set_attribute("proxy.error", error.kind)
            raise error from e

        except Exception as e:
            log_exception_with_details(logger, "[Upstream]", e, url=log_url)
            span.set_attribute("proxy.error", UpstreamOtherError.kind)
            raise UpstreamOtherError(
                url=target_url, detail=format_exception_message(e)
            ) from e

        span.set_attribute("proxy.status_code", response.status_code)
        upstream = UpstreamResponse(
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            body=response.content,
            headers=response.headers,
            final_url=str(response.url),
        )
        logger.debug(
            f"[Upstream] {response.status_code} {log_url} "
            f"({len(upstream.body)} bytes, {upstream.content_type or 'no content-type'})"
        )
        return upstream
