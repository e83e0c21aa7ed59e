from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import httpx
import pytest

from app.app_proxy import fetcher
from app.rate_limit import rate_limiter


class FakeUpstream:
    """Canned upstream answers keyed by absolute URL, served through httpx.MockTransport."""

    def __init__(self):
        self.responses: Dict[str, Union[httpx.Response, Callable, Exception]] = {}
        self.requests: List[httpx.Request] = []

    @staticmethod
    def key(url) -> str:
        """Canonical form so "http://host" and "http://host/" hit the same entry."""
        parts = urlsplit(str(httpx.URL(str(url))))
        return urlunsplit(parts._replace(path=parts.path or "/"))

    def add(
        self,
        url: str,
        content: bytes = b"",
        status_code: int = 200,
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        response_headers = dict(headers or {})
        if content_type is not None:
            response_headers["content-type"] = content_type
        self.responses[self.key(url)] = httpx.Response(
            status_code, content=content, headers=response_headers
        )

    def fail(self, url: str, error_factory: Callable[[httpx.Request], Exception]):
        self.responses[self.key(url)] = error_factory

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.responses.get(self.key(request.url))
        if answer is None:
            return httpx.Response(404, content=b"not configured", headers={"content-type": "text/plain"})
        if callable(answer):
            raise answer(request)
        return answer

    def client(self) -> httpx.AsyncClient:
        return fetcher.create_upstream_client(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def upstream(monkeypatch):
    """Route every outbound fetch made by the app to a FakeUpstream."""
    fake = FakeUpstream()
    original = fetcher.create_upstream_client
    monkeypatch.setattr(
        fetcher,
        "create_upstream_client",
        lambda transport=None: original(transport=httpx.MockTransport(fake.handler)),
    )
    return fake
