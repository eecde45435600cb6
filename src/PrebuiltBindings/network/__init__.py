"""Networking primitives: the shared AsyncClient and the raw GET fetcher."""

from .client import ACCEPT_ENCODING, create_http_client, http_client
from .fetch import FetchResult, ResponseHeaders, fetch

__all__ = [
    "ACCEPT_ENCODING",
    "FetchResult",
    "ResponseHeaders",
    "create_http_client",
    "fetch",
    "http_client",
]
