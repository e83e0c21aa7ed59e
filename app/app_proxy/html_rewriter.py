"""
Markup rewriting for proxied HTML documents.

The document is parsed into a BeautifulSoup tree, resource-bearing attributes
are rewritten in place to proxy-local URLs, the injected markup for the active
mode is added, and the tree is serialized back with attribute values escaped.
"""

import html
import logging
from typing import Optional

from bs4 import BeautifulSoup, Doctype, Tag
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from app.vars import PAGE_ENDPOINT, RESOURCE_ENDPOINT

from .models import ProxyMode, RewriteContext
from .pages import render_helper_script, render_navigation_bar
from .urls import is_proxyable, proxy_url, try_resolve_url

logger = logging.getLogger("uvicorn.error")

HTML_PARSER = "html.parser"

# (tag, attribute) pairs whose values reference other resources
RESOURCE_ATTRIBUTES = (
    ("a", "href"),
    ("img", "src"),
    ("link", "href"),
    ("script", "src"),
    ("form", "action"),
)

# Tags whose targets are navigations rather than leaf assets
NAVIGATION_TAGS = {"a", "form"}


class AttributeEscapingFormatter(HTMLFormatter):
    """Minimal entity substitution for text, full quote/angle-bracket escaping for attributes."""

    def __init__(self):
        super().__init__(entity_substitution=EntitySubstitution.substitute_xml)

    def attribute_value(self, value):
        return html.escape(value, quote=True)


ATTRIBUTE_ESCAPING_FORMATTER = AttributeEscapingFormatter()


def _is_stylesheet_link(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return any(r.lower() == "stylesheet" for r in rel)


def _endpoint_for(tag_name: str, mode: ProxyMode) -> str:
    if mode is ProxyMode.PAGE and tag_name in NAVIGATION_TAGS:
        return PAGE_ENDPOINT
    return RESOURCE_ENDPOINT


def rewrite_reference(value: Optional[str], context: RewriteContext, endpoint: str) -> Optional[str]:
    """
    Proxy-local replacement for one attribute value, or None to leave it as is.

    Anything that does not resolve to an http(s) URL (javascript:, data:,
    mailto:, ...) is not rewritten. Fragment-only references are kept in
    page mode; in resource mode they are wrapped like any other reference.
    """
    if value is None:
        return None
    reference = value.strip()
    if not reference:
        return None
    if reference.startswith("#") and context.mode is ProxyMode.PAGE:
        return None
    absolute_url = try_resolve_url(reference, context.base_url)
    if absolute_url is None or not is_proxyable(absolute_url):
        return None
    return proxy_url(endpoint, absolute_url)


def _rewrite_attributes(soup: BeautifulSoup, context: RewriteContext) -> int:
    rewritten = 0
    for tag_name, attribute in RESOURCE_ATTRIBUTES:
        endpoint = _endpoint_for(tag_name, context.mode)
        for tag in soup.find_all(tag_name, attrs={attribute: True}):
            if tag_name == "link" and not _is_stylesheet_link(tag):
                continue
            replacement = rewrite_reference(tag.get(attribute), context, endpoint)
            if replacement is None:
                logger.debug(f"[Rewrite] Leaving <{tag_name} {attribute}={tag.get(attribute)!r}> unchanged")
                continue
            tag[attribute] = replacement
            if tag_name == "a" and context.mode is ProxyMode.RESOURCE:
                tag["target"] = "_parent"
            rewritten += 1
    return rewritten


def _ensure_head(soup: BeautifulSoup) -> Tag:
    if soup.head is not None:
        return soup.head
    head = soup.new_tag("head")
    if soup.html is not None:
        soup.html.insert(0, head)
    else:
        soup.insert(0, head)
    return head


def _ensure_body(soup: BeautifulSoup) -> Tag:
    if soup.body is not None:
        return soup.body
    body = soup.new_tag("body")
    parent = soup.html if soup.html is not None else soup
    for node in list(parent.contents):
        if isinstance(node, Doctype) or (isinstance(node, Tag) and node.name == "head"):
            continue
        body.append(node.extract())
    parent.append(body)
    return body


def _insert_base(soup: BeautifulSoup, context: RewriteContext) -> None:
    if soup.find("base") is not None:
        return
    head = _ensure_head(soup)
    head.insert(0, soup.new_tag("base", href=f"{context.base_host}/"))


def _append_helper_script(soup: BeautifulSoup, context: RewriteContext) -> None:
    script = soup.new_tag("script")
    script.string = render_helper_script(context.base_host, context.base_url)
    _ensure_head(soup).append(script)


def _prepend_navigation_bar(soup: BeautifulSoup, context: RewriteContext) -> None:
    body = _ensure_body(soup)
    fragment = BeautifulSoup(render_navigation_bar(context.base_url), HTML_PARSER)
    for index, node in enumerate(list(fragment.contents)):
        body.insert(index, node.extract())


def rewrite_html(markup: str, context: RewriteContext) -> str:
    """Rewrite an HTML document for the given mode and return the serialized result."""
    soup = BeautifulSoup(markup, HTML_PARSER)

    count = _rewrite_attributes(soup, context)
    if context.mode is ProxyMode.RESOURCE:
        _insert_base(soup, context)
        _append_helper_script(soup, context)
    else:
        _prepend_navigation_bar(soup, context)

    logger.debug(f"[Rewrite] {count} references rewritten ({context.mode.value} mode)")
    return soup.decode(formatter=ATTRIBUTE_ESCAPING_FORMATTER)
