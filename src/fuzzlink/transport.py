"""HTTP client construction with proxy settings resolved up front.

Proxy environment variables are read once per client build and turned into
explicit httpx mounts; the client itself runs with ``trust_env=False`` so no
lazy per-request proxy lookup takes place.
"""

from __future__ import annotations

import ipaddress
import logging
from urllib.request import getproxies

import httpx

logger = logging.getLogger(__name__)

_PROXIED_SCHEMES = ("http", "https")


def environment_proxies() -> dict[str, str]:
    """Return the proxy settings of the process environment.

    Keys are lower-case schemes (``http``, ``https``, ``all``) plus ``no``
    for the ``NO_PROXY`` host list.
    """
    return {scheme.lower(): url for scheme, url in getproxies().items() if url}


def _normalize_proxy_url(url: str) -> str:
    if "://" not in url:
        return f"http://{url}"
    return url


def _host_patterns(host: str) -> list[str]:
    if "/" in host:
        # CIDR ranges have no httpx mount equivalent
        return []
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        pass
    else:
        if address.version == 6:
            return [f"all://[{address}]"]
        return [f"all://{address}"]
    if host.startswith("."):
        return [f"all://*{host}"]
    return [f"all://{host}", f"all://*.{host}"]


def _no_proxy_patterns(no_proxy: str) -> list[str]:
    patterns: list[str] = []
    for host in no_proxy.split(","):
        host = host.strip()
        if not host:
            continue
        candidates = [host] if "://" in host else _host_patterns(host)
        if not candidates:
            logger.debug("Ignoring unsupported NO_PROXY entry %r", host)
        for pattern in candidates:
            try:
                httpx.URL(pattern)
            except httpx.InvalidURL:
                logger.debug("Ignoring unsupported NO_PROXY entry %r", host)
                continue
            patterns.append(pattern)
    return patterns


def build_proxy_mounts(
    proxies: dict[str, str] | None = None,
) -> dict[str, httpx.AsyncBaseTransport | None]:
    """Build httpx mounts for the given (or environment) proxy settings.

    ``http://`` and ``https://`` are routed through the scheme's proxy, or
    through ``ALL_PROXY`` when no scheme-specific one is set.  Hosts listed
    in ``NO_PROXY`` are mounted to ``None`` (direct connection).  Without any
    proxy configured the result is empty, i.e. every request dials directly.
    """
    if proxies is None:
        proxies = environment_proxies()

    no_proxy = proxies.get("no", "")
    if no_proxy.strip() == "*":
        return {}

    mounts: dict[str, httpx.AsyncBaseTransport | None] = {}
    for scheme in _PROXIED_SCHEMES:
        url = proxies.get(scheme) or proxies.get("all")
        if url:
            mounts[f"{scheme}://"] = httpx.AsyncHTTPTransport(proxy=_normalize_proxy_url(url))
            logger.debug("Using proxy %s for %s requests", url, scheme)

    if mounts:
        for pattern in _no_proxy_patterns(no_proxy):
            mounts[pattern] = None
    return mounts


def build_async_client(
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an ``AsyncClient`` for talking to the fuzzing server.

    Args:
        timeout: Per-operation timeout in seconds (``None`` = no timeout).
        transport: Explicit transport; replaces the proxy mounts.
    """
    if transport is not None:
        return httpx.AsyncClient(transport=transport, timeout=timeout, trust_env=False)
    return httpx.AsyncClient(
        mounts=build_proxy_mounts(),
        timeout=timeout,
        trust_env=False,
    )
