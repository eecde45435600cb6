# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.io.decode",
#   "purpose": "Turn a candidate URL into a decoded artifact file on disk",
#   "sections": [
#     {"id": "stages", "name": "Decode Stages", "anchor": "STG", "kind": "helpers"},
#     {"id": "planning", "name": "Stage Planning", "anchor": "PLN", "kind": "api"},
#     {"id": "materialize", "name": "Materialization", "anchor": "MAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Turn a candidate URL into a decoded artifact file on disk.

:func:`materialize` drives :func:`~PrebuiltBindings.network.fetch.fetch`:

- ``200`` responses are decoded and written to the destination;
- ``301/302/303/307/308`` responses are drained and the ``Location`` target is
  fetched into the same destination, up to ``max_redirects`` hops;
- any other status fails with :class:`~PrebuiltBindings.errors.HttpStatusError`.

Decoding is an ordered composition of streaming stages: first the transport
stage chosen by ``Content-Encoding``, then the container stage chosen by the
candidate URL's file extension. Any failure removes the partially written
destination before the error propagates.
"""

from __future__ import annotations

import logging
import time
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

import aiofiles
import httpx

from ..errors import DecodeError, HttpStatusError, TooManyRedirects
from ..network.fetch import FetchResult, ResponseHeaders, fetch

LOGGER = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_CHUNK_SIZE = 64 * 1024

# --- Decode Stages ------------------------------------------------------------


class DecodeStage:
    """A streaming byte transform. The identity stage passes bytes through."""

    name = "identity"

    def feed(self, chunk: bytes) -> bytes:
        return chunk

    def finish(self) -> bytes:
        return b""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class _ZlibStage(DecodeStage):
    wbits = zlib.MAX_WBITS

    def __init__(self) -> None:
        self._decoder = zlib.decompressobj(self.wbits)

    def feed(self, chunk: bytes) -> bytes:
        try:
            return self._decoder.decompress(chunk)
        except zlib.error as exc:
            raise DecodeError(f"{self.name} stream is corrupt: {exc}") from exc

    def finish(self) -> bytes:
        try:
            tail = self._decoder.flush()
        except zlib.error as exc:
            raise DecodeError(f"{self.name} stream is corrupt: {exc}") from exc
        if not self._decoder.eof:
            raise DecodeError(f"{self.name} stream ended unexpectedly")
        return tail


class InflateStage(_ZlibStage):
    """zlib-wrapped deflate, as sent with ``Content-Encoding: deflate``."""

    name = "inflate"


class GunzipStage(_ZlibStage):
    """gzip decoding; concatenated members are decoded back to back."""

    name = "gunzip"
    wbits = 16 + zlib.MAX_WBITS

    def feed(self, chunk: bytes) -> bytes:
        out: List[bytes] = []
        data = chunk
        while data:
            if self._decoder.eof:
                if not data.strip(b"\x00"):
                    # zero padding after the last member
                    break
                self._decoder = zlib.decompressobj(self.wbits)
            out.append(super().feed(data))
            data = self._decoder.unused_data if self._decoder.eof else b""
        return b"".join(out)


def _transport_stage(headers: ResponseHeaders) -> Optional[DecodeStage]:
    encoding = headers.content_encoding
    if encoding == "gzip" or encoding == "x-gzip":
        return GunzipStage()
    if encoding == "deflate":
        return InflateStage()
    return None


def _container_stage(url: str) -> Optional[DecodeStage]:
    if urlsplit(url).path.endswith(".gz"):
        return GunzipStage()
    return None


# --- Stage Planning -----------------------------------------------------------


@dataclass(frozen=True)
class DecodeContext:
    """The ordered decode stages for one response.

    Attributes:
        stages: Transport stage (if any) followed by container stage (if any).
    """

    stages: Tuple[DecodeStage, ...]

    @classmethod
    def plan(cls, headers: ResponseHeaders, candidate_url: str) -> "DecodeContext":
        """Select stages from ``Content-Encoding`` and the candidate URL path."""
        stages = [
            stage
            for stage in (_transport_stage(headers), _container_stage(candidate_url))
            if stage is not None
        ]
        return cls(stages=tuple(stages))

    @property
    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def feed(self, chunk: bytes) -> bytes:
        for stage in self.stages:
            if not chunk:
                break
            chunk = stage.feed(chunk)
        return chunk

    def finish(self) -> bytes:
        """Flush every stage in order, pushing each tail through the later stages."""
        pending = b""
        for stage in self.stages:
            flushed = stage.feed(pending) if pending else b""
            pending = flushed + stage.finish()
        return pending


async def decode_to_file(
    chunks: AsyncIterator[bytes],
    context: DecodeContext,
    destination: Path,
) -> int:
    """Push ``chunks`` through ``context`` into a freshly created ``destination``.

    Returns:
        Number of decoded bytes written.
    """
    written = 0
    try:
        async with aiofiles.open(destination, "wb") as handle:
            async for chunk in chunks:
                decoded = context.feed(chunk)
                if decoded:
                    await handle.write(decoded)
                    written += len(decoded)
            tail = context.finish()
            if tail:
                await handle.write(tail)
                written += len(tail)
    except OSError as exc:
        raise DecodeError(f"Failed to write '{destination}': {exc}") from exc
    return written


# --- Materialization ----------------------------------------------------------


@dataclass
class MaterializeResult:
    """Outcome of a successful :func:`materialize` call."""

    url: str
    final_url: str
    destination: Path
    bytes_written: int
    stages: Tuple[str, ...]
    hops: List[Tuple[str, int]] = field(default_factory=list)
    elapsed_ms: int = 0


def _redirect_target(result: FetchResult) -> str:
    location = result.headers.location
    if not location:
        raise HttpStatusError(
            f"Redirect response from '{result.url}' (status {result.status_code}) "
            "missing Location header",
            url=result.url,
            status_code=result.status_code,
            reason=result.reason,
        )
    return urljoin(result.url, location)


async def materialize(
    url: str,
    destination: Path,
    *,
    client: httpx.AsyncClient,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> MaterializeResult:
    """Download ``url`` into ``destination``, following redirects and decoding.

    Args:
        url: Candidate URL; its path decides the container stage.
        destination: Artifact path, truncated and rewritten.
        client: AsyncClient with automatic redirects disabled.
        max_redirects: Redirect hops allowed before giving up.
        chunk_size: Raw body read size.

    Raises:
        TransportError: Network failure on any hop.
        HttpStatusError: Non-2xx, non-redirect status or missing ``Location``.
        TooManyRedirects: More than ``max_redirects`` hops.
        DecodeError: Corrupt stream or disk write failure.
    """
    started = time.perf_counter()
    hops: List[Tuple[str, int]] = []
    current = url
    try:
        while True:
            async with fetch(current, client=client) as result:
                hops.append((current, result.status_code))
                status = result.status_code

                if status == 200:
                    context = DecodeContext.plan(result.headers, url)
                    LOGGER.debug(
                        "decoding response",
                        extra={"url": current, "stage": "decode", "status": status},
                    )
                    written = await decode_to_file(
                        result.iter_body(chunk_size), context, destination
                    )
                    return MaterializeResult(
                        url=url,
                        final_url=current,
                        destination=destination,
                        bytes_written=written,
                        stages=context.stage_names,
                        hops=hops,
                        elapsed_ms=int((time.perf_counter() - started) * 1000),
                    )

                if status in REDIRECT_STATUSES:
                    target = _redirect_target(result)
                    await result.drain()
                    if len(hops) > max_redirects:
                        raise TooManyRedirects(max_redirects, [hop for hop, _ in hops])
                    LOGGER.info(
                        "Following %s redirect to %s",
                        status,
                        target,
                        extra={"url": current, "stage": "redirect", "status": status},
                    )
                    current = target
                    continue

                LOGGER.info(
                    "Server responded with %s",
                    status,
                    extra={"url": current, "stage": "fetch", "status": status},
                )
                raise HttpStatusError(
                    f"Request to '{current}' returned HTTP {status} {result.reason}".rstrip(),
                    url=current,
                    status_code=status,
                    reason=result.reason,
                )
    except BaseException:
        if destination.is_file():
            destination.unlink()
        raise


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_REDIRECTS",
    "DecodeContext",
    "DecodeStage",
    "GunzipStage",
    "InflateStage",
    "MaterializeResult",
    "REDIRECT_STATUSES",
    "decode_to_file",
    "materialize",
]
