import logging
from dataclasses import replace
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse, Response
from opentelemetry import trace

from app.rate_limit.limiter import enforce_rate_limit
from app.utils import redact_query
from app.utils.traced_requests import traced_request
from app.vars import PAGE_ENDPOINT, RESOURCE_ENDPOINT

from .content_router import HTML_CONTENT_TYPE, classify, route_content
from .errors import BlockedUrlError, FetchError, InvalidUrlError, ProxyError
from .fetcher import fetch
from .models import (
    ContentKind,
    ProxyMode,
    ProxyRequest,
    ProxyRequestBody,
    RewriteContext,
    UpstreamResponse,
)
from .pages import render_error_page
from .urls import base_host, is_blocked_url, is_valid_url

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Proxied content must never be cached and must stay embeddable
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Frame-Options": "ALLOWALL",
}

PAGE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Frame-Options": "ALLOWALL",
}


def validate_target(url: Optional[str]) -> str:
    """Return the cleaned target URL or raise before anything touches the network."""
    if not url or not is_valid_url(url):
        raise InvalidUrlError(url=url)
    target = url.strip()
    if is_blocked_url(target):
        raise BlockedUrlError(url=target)
    return target


def build_rewrite_context(
    upstream: UpstreamResponse, target_url: str, mode: ProxyMode
) -> RewriteContext:
    """Rewrite against the URL the document was finally served from (after redirects)."""
    base_url = upstream.final_url or target_url
    if not is_valid_url(base_url):
        base_url = target_url
    return RewriteContext(base_url=base_url, base_host=base_host(base_url), mode=mode)


def response_headers(base: dict, content_type: str) -> dict:
    """Fresh header set for a proxied body; upstream headers (X-Frame-Options, CSP, ...) are never copied."""
    headers = dict(base)
    headers["Content-Type"] = content_type
    return headers


async def proxy_resource(
    proxy_request: ProxyRequest, client: Optional[httpx.AsyncClient] = None
) -> Response:
    """
    Resource mode: validate, fetch, route by content type and answer with the
    transformed body. Failures come back as {"success": false, "error": ...}.
    """
    with traced_request(
        tracer,
        operation="proxy_resource",
        target_url=proxy_request.target_url,
        mode=ProxyMode.RESOURCE.value,
        start_message=f"[Resource] {proxy_request.method} {redact_query(proxy_request.target_url)}",
    ) as span:
        try:
            target_url = validate_target(proxy_request.target_url)
            proxy_request.target_url = target_url
            upstream = await fetch(proxy_request, client=client)
        except ProxyError as e:
            span.set_attribute("proxy.error", e.kind)
            span.set_attribute("proxy.status_code", e.status_code)
            if not isinstance(e, FetchError):
                logger.warning(
                    f"[Resource] Rejected {redact_query(proxy_request.target_url)}: {e.kind}"
                )
            return JSONResponse(status_code=e.status_code, content=e.to_client_payload())

        context = build_rewrite_context(upstream, target_url, ProxyMode.RESOURCE)
        routed = route_content(upstream, context)
        span.set_attribute("proxy.content_kind", routed.kind.value)
        span.set_attribute("proxy.status_code", upstream.status_code)

        return Response(
            content=routed.body,
            status_code=upstream.status_code,
            headers=response_headers(NO_CACHE_HEADERS, routed.content_type),
        )


def _page_error(error: ProxyError, raw_url: Optional[str]) -> HTMLResponse:
    if isinstance(error, InvalidUrlError):
        if not raw_url:
            content = render_error_page("Error", "A url parameter is required.")
        else:
            content = render_error_page(
                "Invalid URL", "Please enter a valid http(s) URL:", url=raw_url
            )
    elif isinstance(error, BlockedUrlError):
        content = render_error_page(
            "Blocked", "This URL has been blocked.", url=raw_url
        )
    else:
        content = render_error_page(
            "Connection failed",
            "Could not connect to:",
            url=raw_url,
            detail=error.detail or error.message,
            with_hints=True,
        )
    return HTMLResponse(content=content, status_code=error.status_code)


async def proxy_page(
    url: Optional[str], client: Optional[httpx.AsyncClient] = None
) -> Response:
    """
    Page mode: like resource mode, but HTML gets the navigation bar and
    navigation targets that stay in page mode. Errors are rendered as pages.
    """
    with traced_request(
        tracer,
        operation="proxy_page",
        target_url=url,
        mode=ProxyMode.PAGE.value,
        start_message=f"[Page] GET {redact_query(url)}",
    ) as span:
        try:
            target_url = validate_target(url)
            upstream = await fetch(
                ProxyRequest(target_url=target_url, mode=ProxyMode.PAGE), client=client
            )
        except ProxyError as e:
            span.set_attribute("proxy.error", e.kind)
            span.set_attribute("proxy.status_code", e.status_code)
            if not isinstance(e, FetchError):
                logger.warning(f"[Page] Rejected {redact_query(url)}: {e.kind}")
            return _page_error(e, url)

        span.set_attribute("proxy.status_code", upstream.status_code)
        content_type = upstream.content_type or "text/html"

        if classify(content_type) is not ContentKind.HTML:
            span.set_attribute("proxy.content_kind", classify(content_type).value)
            return Response(
                content=upstream.body,
                status_code=upstream.status_code,
                headers={"Content-Type": content_type},
            )

        context = build_rewrite_context(upstream, target_url, ProxyMode.PAGE)
        routed = route_content(replace(upstream, content_type=content_type), context)
        span.set_attribute("proxy.content_kind", routed.kind.value)
        return Response(
            content=routed.body,
            status_code=upstream.status_code,
            headers=response_headers(PAGE_HEADERS, HTML_CONTENT_TYPE),
        )


@router.post(RESOURCE_ENDPOINT, dependencies=[Depends(enforce_rate_limit)])
async def proxy_resource_post(body: ProxyRequestBody):
    """Fetch and rewrite a single resource; target, method and headers come from the JSON body."""
    return await proxy_resource(
        ProxyRequest(
            target_url=body.url,
            method=body.method or "GET",
            extra_headers=dict(body.headers or {}),
        )
    )


@router.get(RESOURCE_ENDPOINT, dependencies=[Depends(enforce_rate_limit)])
async def proxy_resource_get(
    url: Optional[str] = Query(None, description="Absolute http(s) URL to fetch"),
):
    """GET form of the resource endpoint used by rewritten src/href attributes."""
    return await proxy_resource(ProxyRequest(target_url=url))


@router.get(PAGE_ENDPOINT)
async def proxy_page_get(
    url: Optional[str] = Query(None, description="Absolute http(s) URL to browse"),
):
    return await proxy_page(url)
