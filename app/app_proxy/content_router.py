import logging

from .css_rewriter import rewrite_css
from .html_rewriter import rewrite_html
from .models import ContentKind, RewriteContext, RoutedContent, UpstreamResponse

logger = logging.getLogger("uvicorn.error")

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
CSS_CONTENT_TYPE = "text/css; charset=utf-8"
SCRIPT_CONTENT_TYPE = "application/javascript; charset=utf-8"
FALLBACK_CONTENT_TYPE = "application/octet-stream"


def classify(content_type: str) -> ContentKind:
    """Pick the transform from the declared content type only; the body is never sniffed."""
    ct = (content_type or "").lower()
    if "text/html" in ct:
        return ContentKind.HTML
    if "text/css" in ct:
        return ContentKind.CSS
    if "application/javascript" in ct or "text/javascript" in ct:
        return ContentKind.SCRIPT
    return ContentKind.BINARY


def decode_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def route_content(upstream: UpstreamResponse, context: RewriteContext) -> RoutedContent:
    kind = classify(upstream.content_type)
    logger.debug(f"[Router] {upstream.content_type or '<none>'} -> {kind.value}")

    if kind is ContentKind.HTML:
        text = rewrite_html(decode_text(upstream.body), context)
        return RoutedContent(kind, text.encode("utf-8"), HTML_CONTENT_TYPE)

    if kind is ContentKind.CSS:
        text = rewrite_css(decode_text(upstream.body), context.base_url)
        return RoutedContent(kind, text.encode("utf-8"), CSS_CONTENT_TYPE)

    if kind is ContentKind.SCRIPT:
        text = decode_text(upstream.body)
        return RoutedContent(kind, text.encode("utf-8"), SCRIPT_CONTENT_TYPE)

    return RoutedContent(
        kind, upstream.body, upstream.content_type or FALLBACK_CONTENT_TYPE
    )
