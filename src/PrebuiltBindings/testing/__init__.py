"""Testing utilities for exercising binding acquisition end-to-end.

Provides a fake release server backed by :class:`httpx.MockTransport`, a
helper that locates a real native module shipped with the running interpreter
(a known-good artifact), and a helper writing a minimal project layout.
"""

from __future__ import annotations

import gzip
import importlib
import importlib.machinery
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union

import httpx

from ..network.client import create_http_client
from ..settings import HttpSettings

__all__ = [
    "FakeReleaseServer",
    "RequestRecord",
    "ResponseSpec",
    "deflate_bytes",
    "find_native_module",
    "gzip_bytes",
    "write_project",
]

_NATIVE_MODULE_CANDIDATES = (
    "array",
    "_csv",
    "_bisect",
    "_random",
    "_heapq",
    "_json",
    "math",
    "_struct",
    "_bz2",
    "_lzma",
    "_sqlite3",
)


def gzip_bytes(data: bytes) -> bytes:
    return gzip.compress(data)


def deflate_bytes(data: bytes) -> bytes:
    """zlib-wrapped deflate, the form servers send for ``Content-Encoding: deflate``."""
    return zlib.compress(data)


def find_native_module() -> Optional[Tuple[str, Path]]:
    """Return ``(module name, file)`` of a stdlib extension module, if any.

    Interpreters that compile these modules in statically have none; callers
    should skip in that case.
    """
    suffixes = tuple(importlib.machinery.EXTENSION_SUFFIXES)
    for name in _NATIVE_MODULE_CANDIDATES:
        try:
            module = importlib.import_module(name)
        except ImportError:
            continue
        origin = getattr(module, "__file__", None)
        if origin and origin.endswith(suffixes):
            return name, Path(origin)
    return None


@dataclass
class ResponseSpec:
    """HTTP response served by :class:`FakeReleaseServer`.

    ``error`` makes the transport raise instead of answering, simulating DNS,
    connect or timeout failures.
    """

    status: int = 200
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    error: Optional[Type[httpx.TransportError]] = None

    @classmethod
    def redirect(cls, location: str, status: int = 302) -> "ResponseSpec":
        return cls(status=status, headers={"Location": location})


@dataclass
class RequestRecord:
    """Captured request."""

    method: str
    url: str
    headers: Mapping[str, str]


class FakeReleaseServer:
    """Serve canned responses keyed by absolute URL.

    Unknown URLs answer ``404``. Every request is recorded in :attr:`requests`,
    including ones that end in a simulated transport error.
    """

    def __init__(self, routes: Optional[Mapping[str, ResponseSpec]] = None) -> None:
        self.routes: Dict[str, ResponseSpec] = dict(routes or {})
        self.requests: List[RequestRecord] = []

    def serve(self, url: str, response: ResponseSpec) -> None:
        self.routes[url] = response

    def serve_chain(self, urls: Sequence[str], final: ResponseSpec, status: int = 302) -> None:
        """Make each URL redirect to the next; the last one answers ``final``."""
        for current, target in zip(urls, urls[1:]):
            self.serve(current, ResponseSpec.redirect(target, status))
        self.serve(urls[-1], final)

    @property
    def requested_urls(self) -> List[str]:
        return [record.url for record in self.requests]

    def _handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(
            RequestRecord(method=request.method, url=url, headers=dict(request.headers))
        )
        spec = self.routes.get(url)
        if spec is None:
            return httpx.Response(404, stream=httpx.ByteStream(b""), request=request)
        if spec.error is not None:
            raise spec.error(f"simulated failure for {url}", request=request)
        return httpx.Response(
            spec.status,
            headers=dict(spec.headers),
            stream=httpx.ByteStream(spec.body),
            request=request,
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handler)

    def client(self, settings: Optional[HttpSettings] = None) -> httpx.AsyncClient:
        """Return a download client wired to this server; the caller closes it."""
        return create_http_client(settings, transport=self.transport())


def write_project(
    root: Path,
    *,
    name: str = "demo",
    version: str = "1.2.3",
    repository: Optional[str] = "octo/demo",
    bindings: Sequence[Mapping[str, Union[str, Sequence[str]]]] = (),
) -> Path:
    """Write a ``pyproject.toml`` declaring ``bindings`` under ``root``."""
    lines = ["[project]", f'name = "{name}"', f'version = "{version}"', ""]
    lines.append("[tool.prebuilt-bindings]")
    if repository is not None:
        lines.append(f'repository = "{repository}"')
    lines.append("")
    for entry in bindings:
        lines.append("[[tool.prebuilt-bindings.bindings]]")
        for key, value in entry.items():
            if isinstance(value, str):
                lines.append(f'{key} = "{value}"')
            else:
                rendered = ", ".join(f'"{item}"' for item in value)
                lines.append(f"{key} = [{rendered}]")
        lines.append("")
    path = root / "pyproject.toml"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path
