"""Raw HTTP GET primitive.

:func:`fetch` issues one GET request and hands the response back without
judging it: status classification, redirect following and body decoding all
belong to :mod:`PrebuiltBindings.io.decode`. The only failures raised here are
transport-level ones, wrapped in :class:`~PrebuiltBindings.errors.TransportError`
so callers can tell them apart from HTTP status errors.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

import httpx

from ..errors import TransportError
from .client import ACCEPT_ENCODING

LOGGER = logging.getLogger(__name__)

SUPPORTED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class ResponseHeaders:
    """The response headers the decode pipeline acts on."""

    content_type: Optional[str]
    content_encoding: Optional[str]
    location: Optional[str]

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "ResponseHeaders":
        encoding = headers.get("content-encoding")
        return cls(
            content_type=headers.get("content-type"),
            content_encoding=encoding.strip().lower() if encoding else None,
            location=headers.get("location"),
        )


@dataclass
class FetchResult:
    """Status, headers and undecoded body of one GET response.

    Only valid inside the :func:`fetch` context; the underlying connection is
    released when the context exits.
    """

    url: str
    status_code: int
    reason: str
    headers: ResponseHeaders
    response: httpx.Response

    async def iter_body(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """Yield the raw body bytes, wrapping network failures."""
        try:
            async for chunk in self.response.aiter_raw(chunk_size):
                yield chunk
        except httpx.TransportError as exc:
            raise TransportError(f"Reading '{self.url}' failed: {exc}", url=self.url) from exc

    async def drain(self) -> None:
        """Consume and discard the rest of the body."""
        async for _ in self.iter_body():
            pass

    async def aclose(self) -> None:
        await self.response.aclose()


def _check_scheme(url: str) -> httpx.URL:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise TransportError(f"Invalid URL '{url}': {exc}", url=url) from exc
    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise TransportError(f"Unsupported URL scheme '{parsed.scheme}' in '{url}'", url=url)
    return parsed


@asynccontextmanager
async def fetch(
    url: str,
    *,
    client: httpx.AsyncClient,
    headers: Optional[Mapping[str, str]] = None,
) -> AsyncIterator[FetchResult]:
    """GET ``url`` and yield the response as a :class:`FetchResult`.

    Args:
        url: Absolute ``http``/``https`` URL.
        client: Shared client; automatic redirects must be disabled on it.
        headers: Extra request headers.

    Raises:
        TransportError: On connect, DNS, TLS, timeout or protocol failures,
            or when the URL scheme is unsupported.
    """
    target = _check_scheme(url)
    request_headers = {"Accept-Encoding": ACCEPT_ENCODING}
    if headers:
        request_headers.update(headers)
    request = client.build_request("GET", target, headers=request_headers)
    try:
        response = await client.send(request, stream=True, follow_redirects=False)
    except httpx.TransportError as exc:
        raise TransportError(f"Request to '{url}' failed: {exc}", url=url) from exc

    LOGGER.debug(
        "http-response",
        extra={"url": url, "status": response.status_code, "stage": "fetch"},
    )
    result = FetchResult(
        url=url,
        status_code=response.status_code,
        reason=response.reason_phrase,
        headers=ResponseHeaders.from_headers(response.headers),
        response=response,
    )
    try:
        yield result
    finally:
        await result.aclose()


__all__ = ["FetchResult", "ResponseHeaders", "SUPPORTED_SCHEMES", "fetch"]
