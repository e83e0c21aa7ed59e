"""
Tests for the upstream fetcher.

Upstreams are faked with httpx.MockTransport, so the real client stack
(redirect following, header handling, error mapping) is exercised without
network access.
"""

import asyncio
import socket

import httpx
import pytest

from app.app_proxy import fetcher
from app.app_proxy.errors import (
    FetchError,
    UpstreamNotFoundError,
    UpstreamOtherError,
    UpstreamRefusedError,
    UpstreamTimeoutError,
)
from app.app_proxy.fetcher import (
    DEFAULT_UPSTREAM_HEADERS,
    build_upstream_headers,
    classify_connect_error,
    create_upstream_client,
    fetch,
)
from app.app_proxy.models import ProxyRequest

TARGET = "http://example.com/page"


def _client(handler) -> httpx.AsyncClient:
    return create_upstream_client(transport=httpx.MockTransport(handler))


def _raise_from(outer: Exception, inner: BaseException) -> Exception:
    try:
        raise outer from inner
    except Exception as e:
        return e


class TestBuildUpstreamHeaders:
    def test_defaults_sent(self):
        headers = build_upstream_headers(None)

        assert headers == DEFAULT_UPSTREAM_HEADERS
        for name in (
            "User-Agent",
            "Accept",
            "Accept-Language",
            "Accept-Encoding",
            "DNT",
            "Connection",
            "Upgrade-Insecure-Requests",
        ):
            assert name in headers

    def test_caller_wins_case_insensitively(self):
        headers = build_upstream_headers({"user-agent": "custom/1.0", "X-Extra": "1"})

        assert headers["user-agent"] == "custom/1.0"
        assert "User-Agent" not in headers
        assert headers["X-Extra"] == "1"

    def test_framing_headers_dropped(self):
        headers = build_upstream_headers({"Host": "evil", "Content-Length": "5"})

        assert "Host" not in headers
        assert "Content-Length" not in headers

    def test_accept_encoding_stays_decodable(self):
        headers = build_upstream_headers({"accept-encoding": "br, zstd"})

        assert headers["Accept-Encoding"] == "gzip, deflate"
        assert "accept-encoding" not in headers


class TestFetch:
    @pytest.mark.asyncio
    async def test_returns_status_type_and_raw_bytes(self):
        body = b"\x89PNG\r\n\x1a\n\xff\x00"

        def handler(request):
            return httpx.Response(200, content=body, headers={"content-type": "image/png"})

        async with _client(handler) as client:
            result = await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert result.status_code == 200
        assert result.content_type == "image/png"
        assert result.body == body
        assert result.final_url == TARGET

    @pytest.mark.asyncio
    async def test_sends_method_and_merged_headers(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["headers"] = request.headers
            return httpx.Response(204)

        request = ProxyRequest(
            target_url=TARGET, method="post", extra_headers={"Accept-Language": "en"}
        )
        async with _client(handler) as client:
            await fetch(request, client=client)

        assert seen["method"] == "POST"
        assert seen["headers"]["accept-language"] == "en"
        assert seen["headers"]["dnt"] == "1"
        assert seen["headers"]["upgrade-insecure-requests"] == "1"

    @pytest.mark.asyncio
    async def test_missing_content_type_is_empty(self):
        async with _client(lambda r: httpx.Response(200, content=b"x")) as client:
            result = await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert result.content_type == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [301, 404, 500, 503])
    async def test_error_statuses_are_not_failures(self, status):
        def handler(request):
            return httpx.Response(status, content=b"upstream says no", headers={"content-type": "text/plain"})

        client = create_upstream_client(transport=httpx.MockTransport(handler))
        client.follow_redirects = False
        async with client:
            result = await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert result.status_code == status
        assert result.body == b"upstream says no"

    @pytest.mark.asyncio
    async def test_redirects_followed(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": "/new"})
            return httpx.Response(200, content=b"moved", headers={"content-type": "text/plain"})

        async with _client(handler) as client:
            result = await fetch(ProxyRequest(target_url="http://example.com/old"), client=client)

        assert result.status_code == 200
        assert result.body == b"moved"
        assert result.final_url == "http://example.com/new"

    @pytest.mark.asyncio
    async def test_redirect_cap(self):
        def handler(request):
            hop = int(request.url.params.get("hop", "0"))
            return httpx.Response(302, headers={"location": f"/loop?hop={hop + 1}"})

        async with _client(handler) as client:
            with pytest.raises(UpstreamOtherError):
                await fetch(ProxyRequest(target_url="http://example.com/loop"), client=client)

    @pytest.mark.asyncio
    async def test_dns_failure_maps_to_not_found(self):
        def handler(request):
            raise _raise_from(
                httpx.ConnectError("All connection attempts failed", request=request),
                socket.gaierror(-2, "Name or service not known"),
            )

        async with _client(handler) as client:
            with pytest.raises(UpstreamNotFoundError) as exc_info:
                await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert exc_info.value.status_code == 404
        assert exc_info.value.kind == "UpstreamNotFound"
        assert exc_info.value.url == TARGET

    @pytest.mark.asyncio
    async def test_connection_refused_maps_to_503(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamRefusedError) as exc_info:
                await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_timeout_maps_to_408(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamTimeoutError) as exc_info:
                await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert exc_info.value.status_code == 408
        assert exc_info.value.kind == "UpstreamTimeout"

    @pytest.mark.asyncio
    async def test_wall_clock_deadline(self, monkeypatch):
        monkeypatch.setattr(fetcher, "PROXY_TIMEOUT", 0.05)

        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        async with _client(handler) as client:
            with pytest.raises(UpstreamTimeoutError):
                await fetch(ProxyRequest(target_url=TARGET), client=client)

    @pytest.mark.asyncio
    async def test_other_transport_failure(self):
        def handler(request):
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamOtherError) as exc_info:
                await fetch(ProxyRequest(target_url=TARGET), client=client)

        assert exc_info.value.status_code == 500
        assert "peer closed connection" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_owned_client_used_when_none_given(self, monkeypatch):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=b"ok"))
        monkeypatch.setattr(
            fetcher, "create_upstream_client", lambda: create_upstream_client(transport=transport)
        )

        result = await fetch(ProxyRequest(target_url=TARGET))

        assert result.body == b"ok"


class TestClassifyConnectError:
    def test_gaierror_in_exception_group(self):
        group = ExceptionGroup("attempts", [socket.gaierror(8, "nodename nor servname provided")])
        error = classify_connect_error(_raise_from(OSError("All connection attempts failed"), group), TARGET)
        assert isinstance(error, UpstreamNotFoundError)

    def test_refused_by_type(self):
        error = classify_connect_error(ConnectionRefusedError(111, "refused"), TARGET)
        assert isinstance(error, UpstreamRefusedError)

    def test_unknown_is_other(self):
        error = classify_connect_error(httpx.ConnectError("TLS handshake failed"), TARGET)
        assert isinstance(error, UpstreamOtherError)
        assert isinstance(error, FetchError)

    def test_timeout_error_in_chain(self):
        error = classify_connect_error(_raise_from(httpx.ConnectError("boom"), TimeoutError()), TARGET)
        assert isinstance(error, UpstreamTimeoutError)
