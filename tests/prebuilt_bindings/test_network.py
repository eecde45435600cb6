"""HTTPX client factory and the raw fetch primitive."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from PrebuiltBindings.network import ACCEPT_ENCODING, create_http_client, fetch, http_client
from PrebuiltBindings.network.fetch import ResponseHeaders
from PrebuiltBindings.settings import HttpSettings
from PrebuiltBindings.testing import FakeReleaseServer, ResponseSpec


def test_create_http_client_applies_settings():
    settings = HttpSettings(timeout_connect=3.0, timeout_read=7.0, user_agent="bindings-test/1.0")

    async def _run():
        client = create_http_client(settings)
        try:
            return client.timeout, dict(client.headers), client.follow_redirects
        finally:
            await client.aclose()

    timeout, headers, follow = asyncio.run(_run())

    assert timeout.connect == pytest.approx(3.0)
    assert timeout.read == pytest.approx(7.0)
    assert headers["user-agent"] == "bindings-test/1.0"
    assert headers["accept-encoding"] == ACCEPT_ENCODING
    assert follow is False


def test_http_client_leaves_borrowed_client_open():
    async def _run():
        borrowed = create_http_client()
        async with http_client(client=borrowed) as client:
            assert client is borrowed
        closed = borrowed.is_closed
        await borrowed.aclose()
        return closed

    assert asyncio.run(_run()) is False


def test_http_client_closes_owned_client():
    async def _run():
        async with http_client(HttpSettings()) as client:
            owned = client
        return owned.is_closed

    assert asyncio.run(_run()) is True


def test_fetch_returns_redirects_without_following(server: FakeReleaseServer):
    url = "https://releases.example.test/fast.so"
    server.serve(url, ResponseSpec.redirect("https://cdn.example.test/fast.so", status=307))

    async def _run():
        async with server.client() as client:
            async with fetch(url, client=client) as result:
                return result.status_code, result.headers

    status, headers = asyncio.run(_run())

    assert status == 307
    assert headers.location == "https://cdn.example.test/fast.so"
    assert server.requested_urls == [url]


def test_fetch_yields_raw_body(server: FakeReleaseServer):
    url = "https://releases.example.test/fast.so"
    server.serve(url, ResponseSpec(body=b"\x1f\x8braw", headers={"Content-Encoding": "GZIP"}))

    async def _run():
        async with server.client() as client:
            async with fetch(url, client=client) as result:
                body = b"".join([chunk async for chunk in result.iter_body()])
                return body, result.headers

    body, headers = asyncio.run(_run())

    assert body == b"\x1f\x8braw"
    assert headers.content_encoding == "gzip"


def test_response_headers_normalisation():
    headers = ResponseHeaders.from_headers(
        httpx.Headers({"Content-Type": "application/octet-stream", "Content-Encoding": " Deflate "})
    )

    assert headers.content_type == "application/octet-stream"
    assert headers.content_encoding == "deflate"
    assert headers.location is None
