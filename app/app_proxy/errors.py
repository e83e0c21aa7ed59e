from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for failures that end a proxy request with a mapped status."""

    kind = "ProxyError"
    status_code = 500
    default_message = "The website could not be loaded."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        url: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.url = url
        self.detail = detail
        super().__init__(self.message)

    def to_client_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class InvalidUrlError(ProxyError):
    kind = "InvalidUrl"
    status_code = 400
    default_message = "Invalid URL."


class BlockedUrlError(ProxyError):
    kind = "BlockedUrl"
    status_code = 403
    default_message = "This URL has been blocked."


class FetchError(ProxyError):
    """Transport-level failure talking to the upstream server."""


class UpstreamNotFoundError(FetchError):
    kind = "UpstreamNotFound"
    status_code = 404
    default_message = "The website could not be found."


class UpstreamRefusedError(FetchError):
    kind = "UpstreamRefused"
    status_code = 503
    default_message = "Could not connect to the website."


class UpstreamTimeoutError(FetchError):
    kind = "UpstreamTimeout"
    status_code = 408
    default_message = "The request timed out."


class UpstreamOtherError(FetchError):
    kind = "UpstreamOther"
    status_code = 500
    default_message = "The website could not be loaded."
