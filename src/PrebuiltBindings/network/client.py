# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.network.client",
#   "purpose": "HTTPX AsyncClient factory.",
#   "sections": [
#     {"id": "create-http-client", "name": "create_http_client", "anchor": "function-create-http-client", "kind": "function"},
#     {"id": "http-client", "name": "http_client", "anchor": "function-http-client", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX AsyncClient factory.

Key design:
- **Redirects disabled**: the decode pipeline follows redirects itself so it
  can drain, count and log every hop.
- **Raw bodies**: the client never decodes ``Content-Encoding``; callers read
  ``aiter_raw`` and compose their own decode stages.
- **Per-phase timeouts**: a hung connection surfaces as a timeout instead of
  stalling the run.
- **TLS**: certifi bundle unless ``trust_env`` lets ``SSL_CERT_FILE`` override.
"""

import logging
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import certifi
import httpx

from PrebuiltBindings.settings import HttpSettings

logger = logging.getLogger(__name__)

ACCEPT_ENCODING = "gzip, deflate"


def _create_ssl_context() -> ssl.SSLContext:
    """Create SSL context backed by the certifi bundle."""
    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def create_http_client(
    settings: Optional[HttpSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the AsyncClient used for candidate downloads.

    Args:
        settings: Timeouts, limits and identity headers.
        transport: Optional transport override (``httpx.MockTransport`` in tests).

    Returns:
        Configured ``httpx.AsyncClient``; the caller owns and closes it.
    """
    settings = settings or HttpSettings()
    client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(
            connect=settings.timeout_connect,
            read=settings.timeout_read,
            write=settings.timeout_write,
            pool=settings.timeout_pool,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
        headers={"User-Agent": settings.user_agent, "Accept-Encoding": ACCEPT_ENCODING},
        follow_redirects=False,
        trust_env=settings.trust_env,
        verify=_create_ssl_context(),
    )
    logger.debug(
        "HTTPX client created",
        extra={"stage": "client", "max_connections": settings.max_connections},
    )
    return client


@asynccontextmanager
async def http_client(
    settings: Optional[HttpSettings] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` unchanged, or a fresh client closed on exit."""
    if client is not None:
        yield client
        return
    owned = create_http_client(settings)
    try:
        yield owned
    finally:
        await owned.aclose()


__all__ = ["ACCEPT_ENCODING", "create_http_client", "http_client"]
