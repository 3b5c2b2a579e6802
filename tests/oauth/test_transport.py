"""Tests for the shared HTTP transport."""

import httpx
import pytest

from graph_keeper.oauth import TransportConfig, build_http_client


class TestTransportConfig:
    def test_timeout_uses_handshake_bound_for_connect(self):
        config = TransportConfig(tls_handshake_timeout=7.0, read_timeout=3.0)

        assert config.timeout.connect == 7.0
        assert config.timeout.read == 3.0

    def test_limits_cap_idle_connections(self):
        config = TransportConfig(max_idle_per_host=12, idle_timeout=9.0)

        assert config.limits.max_keepalive_connections == 12
        assert config.limits.keepalive_expiry == 9.0
        assert config.limits.max_connections is None


class TestBuildHttpClient:
    @pytest.mark.asyncio
    async def test_one_pool_per_host(self):
        """Should build a separate transport for each host plus a default."""
        built = []

        def factory(limits):
            built.append(limits)
            return httpx.MockTransport(lambda request: httpx.Response(204))

        config = TransportConfig(max_idle_per_host=3)
        client = build_http_client(config, ["https://a.example", "https://b.example/"], factory)
        try:
            response = await client.get("https://b.example/ping")
        finally:
            await client.aclose()

        assert response.status_code == 204
        assert len(built) == 3
        assert all(limits.max_keepalive_connections == 3 for limits in built)

    @pytest.mark.asyncio
    async def test_default_transport(self):
        client = build_http_client(TransportConfig(), ["https://a.example"])
        try:
            assert client.timeout.connect == 20.0
        finally:
            await client.aclose()
