"""Outbound fetch helpers for font and SVG sources.

Remote sources are fetched with httpx in a single attempt (no retries).
Bundled sources are read from disk with aiofiles. Convert-mode URLs go
through ensure_public_url so user input cannot reach private networks.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Awaitable, Callable
from pathlib import Path
from urllib.parse import urlsplit

import aiofiles
import httpx

from og_card.config import settings
from og_card.errors import BlockedUrlError, FetchFailure

logger = logging.getLogger(__name__)

Resolver = Callable[[str, int], Awaitable[list[str]]]

ALLOWED_SCHEMES = ("http", "https")


async def _system_resolver(host: str, port: int) -> list[str]:
    """Resolve host to a list of IP address strings."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    return [str(info[4][0]) for info in infos]


def is_public_address(address: str) -> bool:
    """Return True when address is globally routable."""
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


async def ensure_public_url(url: str, resolver: Resolver | None = None) -> None:
    """Reject URLs that are not http(s) or that resolve to a non-public address.

    Raises:
        BlockedUrlError: malformed URL, scheme not allowed, host missing, or private address
        FetchFailure: host could not be resolved
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except ValueError as e:
        raise BlockedUrlError(url, f"invalid URL: {e}") from e

    if parts.scheme not in ALLOWED_SCHEMES:
        raise BlockedUrlError(url, f"unsupported scheme {parts.scheme or '(none)'!r}")
    if not host:
        raise BlockedUrlError(url, "missing host")

    port = port or (443 if parts.scheme == "https" else 80)
    try:
        addresses = await (resolver or _system_resolver)(host, port)
    except OSError as e:
        raise FetchFailure(url, cause=f"cannot resolve {host}: {e}", what="SVG") from e

    for address in addresses:
        if not is_public_address(address):
            logger.warning("Blocked fetch to non-public address", extra={"host": host})
            raise BlockedUrlError(url, f"host {host} resolves to a non-public address")


def build_client(
    *,
    timeout: float | None = None,
    guard_private: bool = False,
    resolver: Resolver | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient; with guard_private every hop (redirects too) is checked."""
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if guard_private:

        async def _check_request(request: httpx.Request) -> None:
            await ensure_public_url(str(request.url), resolver)

        event_hooks["request"].append(_check_request)

    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else settings.fetch_timeout,
        follow_redirects=True,
        event_hooks=event_hooks,
        transport=transport,
    )


async def fetch_bytes(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    what: str = "resource",
) -> bytes:
    """GET url and return the body. Non-2xx and transport errors raise FetchFailure."""
    owns_client = client is None
    http = client or build_client()
    try:
        response = await http.get(url)
    except FetchFailure:
        raise
    except httpx.InvalidURL as e:
        raise FetchFailure(url, cause=f"invalid URL: {e}", what=what) from e
    except httpx.HTTPError as e:
        raise FetchFailure(url, cause=str(e) or type(e).__name__, what=what) from e
    finally:
        if owns_client:
            await http.aclose()

    if not response.is_success:
        raise FetchFailure(url, status=response.status_code, what=what)
    logger.debug(f"Fetched {len(response.content)} bytes from {url}")
    return response.content


async def fetch_text(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    what: str = "SVG",
) -> str:
    """GET url and decode the body as text."""
    data = await fetch_bytes(url, client=client, what=what)
    return data.decode("utf-8", errors="replace")


async def read_static_asset(path: Path) -> bytes:
    """Read a bundled asset from disk."""
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except OSError as e:
        raise FetchFailure(str(path), cause=e.strerror or str(e), what="asset") from e
