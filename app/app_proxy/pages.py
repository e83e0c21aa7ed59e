"""Markup the proxy emits itself: navigation bar, helper script, home and error pages."""

import html
import json
from typing import Optional

from app.vars import PAGE_ENDPOINT, PROXY_BRAND, RESOURCE_ENDPOINT

REMEDIATION_HINTS = (
    "Check that the URL is spelled correctly.",
    "Try adding https:// in front of the address.",
    "The site may be temporarily down. Try again later.",
)


def _js_string(value: str) -> str:
    """JSON-encode value for embedding inside a <script> element."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render_helper_script(base_host: str, base_url: str) -> str:
    """Script body exposing the proxied location and routing window.open through the proxy."""
    return f"""
// proxy helpers
window.PROXY_BASE_URL = {_js_string(base_host)};
window.PROXY_CURRENT_URL = {_js_string(base_url)};

// keep popups inside the proxy
window.open = function(url, name, specs) {{
    if (url) {{
        window.location.href = {_js_string(RESOURCE_ENDPOINT + "?url=")} + encodeURIComponent(url);
    }}
    return null;
}};
"""


def render_navigation_bar(current_url: str) -> str:
    safe_url = html.escape(current_url, quote=True)
    brand = html.escape(PROXY_BRAND)
    return f"""
<div id="proxy-navigation-bar" style="position: fixed; top: 0; left: 0; right: 0; background: linear-gradient(45deg, #667eea, #764ba2); color: white; padding: 10px; z-index: 999999; font-family: Arial; font-size: 14px; box-shadow: 0 2px 10px rgba(0,0,0,0.3);">
    <div style="max-width: 1200px; margin: 0 auto; display: flex; align-items: center; justify-content: space-between;">
        <div>
            &#128737;&#65039; <strong>{brand}</strong> - Currently viewing: <span style="background: rgba(255,255,255,0.2); padding: 2px 8px; border-radius: 4px;">{safe_url}</span>
        </div>
        <div>
            <a href="/" style="color: white; text-decoration: none; background: rgba(255,255,255,0.2); padding: 5px 10px; border-radius: 4px; margin-left: 10px;">Home</a>
            <button onclick="window.location.reload()" style="background: rgba(255,255,255,0.2); border: none; color: white; padding: 5px 10px; border-radius: 4px; margin-left: 10px; cursor: pointer;">Reload</button>
        </div>
    </div>
</div>
<div id="proxy-navigation-spacer" style="height: 50px;"></div>
"""


def render_error_page(
    title: str,
    message: str,
    url: Optional[str] = None,
    detail: Optional[str] = None,
    with_hints: bool = False,
) -> str:
    parts = [f"<h1>{html.escape(title)}</h1>", f"<p>{html.escape(message)}</p>"]
    if url:
        parts.append(f"<p><strong>{html.escape(url)}</strong></p>")
    if detail:
        parts.append(f"<p>Error: {html.escape(detail)}</p>")
    if with_hints:
        hints = "".join(f"<li>{html.escape(h)}</li>" for h in REMEDIATION_HINTS)
        parts.append(f"<p>Things to try:</p><ul>{hints}</ul>")
    parts.append('<p><a href="/">&larr; Back to home</a></p>')
    body = "\n".join(parts)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
{body}
</body>
</html>
"""


def render_home_page() -> str:
    brand = html.escape(PROXY_BRAND)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{brand}</title></head>
<body style="font-family: Arial; max-width: 720px; margin: 60px auto;">
<h1>&#128737;&#65039; {brand}</h1>
<form method="get" action="{html.escape(PAGE_ENDPOINT, quote=True)}">
    <input type="url" name="url" placeholder="https://example.com" required style="width: 70%; padding: 8px;">
    <button type="submit" style="padding: 8px 16px;">Go</button>
</form>
</body>
</html>
"""
