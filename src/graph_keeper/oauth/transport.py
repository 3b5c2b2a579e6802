"""Process-scoped HTTP transport for provider calls.

One ``httpx.AsyncClient`` is built at startup and shared by every exchange.
Each provider host is mounted on its own ``AsyncHTTPTransport`` so idle
connections are pooled and capped per destination host.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import httpx

TransportFactory = Callable[[httpx.Limits], httpx.AsyncBaseTransport]


@dataclass(frozen=True)
class TransportConfig:
    """Timeouts and pooling policy for outbound provider calls."""

    total_timeout: float = 10.0  # whole exchange, seconds
    tls_handshake_timeout: float = 20.0
    read_timeout: float = 20.0
    idle_timeout: float = 20.0
    max_idle_per_host: int = 50

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.read_timeout,
            connect=self.tls_handshake_timeout,
            pool=self.tls_handshake_timeout,
        )

    @property
    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=None,
            max_keepalive_connections=self.max_idle_per_host,
            keepalive_expiry=self.idle_timeout,
        )


def _default_transport(limits: httpx.Limits) -> httpx.AsyncBaseTransport:
    return httpx.AsyncHTTPTransport(limits=limits)


def build_http_client(
    config: TransportConfig,
    hosts: Iterable[str],
    transport_factory: TransportFactory | None = None,
) -> httpx.AsyncClient:
    """Build the shared client with one connection pool per host.

    Args:
        config: Timeout and pooling policy
        hosts: Base URLs (scheme + host) that get a dedicated pool
        transport_factory: Builds a transport from limits (tests pass a
            factory returning ``httpx.MockTransport``)

    Returns:
        Client the caller owns and must close with ``aclose()``
    """
    factory = transport_factory or _default_transport
    mounts = {host.rstrip("/"): factory(config.limits) for host in hosts}
    return httpx.AsyncClient(
        timeout=config.timeout,
        transport=factory(config.limits),
        mounts=mounts,
    )
