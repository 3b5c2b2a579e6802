"""Wires settings, HTTP client, store and services together."""

from __future__ import annotations

from .binding import BindingWorkflow
from .config import KeeperSettings, settings as default_settings
from .database import create_tables, make_engine, make_session_factory
from .oauth.client import GraphTokenExchanger
from .oauth.transport import TransportFactory, build_http_client
from .renewal import RenewalScheduler
from .store import SqlCredentialStore
from .worker import RenewalWorker


class KeeperRuntime:
    """Process-scoped collaborators, built once and closed on exit.

    Usage:
        async with KeeperRuntime() as runtime:
            report = await runtime.scheduler.run_cycle()
    """

    def __init__(
        self,
        settings: KeeperSettings | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.settings = settings or default_settings
        transport = self.settings.transport_config()

        self.engine = make_engine(self.settings.database_url, self.settings.echo_sql)
        self.store = SqlCredentialStore(make_session_factory(self.engine))
        self.http = build_http_client(transport, self.settings.provider_hosts, transport_factory)
        self.exchanger = GraphTokenExchanger(
            self.http,
            transport,
            authority_url=self.settings.authority_url,
            graph_url=self.settings.graph_url,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.scope,
        )
        self.binding = BindingWorkflow(
            self.exchanger,
            self.store,
            max_bindings=self.settings.max_bindings_per_principal,
        )
        self.scheduler = RenewalScheduler(
            self.exchanger,
            self.store,
            persist_rotated_on_probe_failure=self.settings.persist_rotated_token_on_probe_failure,
        )

    def worker(self) -> RenewalWorker:
        return RenewalWorker(
            self.scheduler,
            self.settings.renewal_interval_seconds,
            enabled=self.settings.renewal_worker_enabled,
        )

    async def __aenter__(self) -> "KeeperRuntime":
        await create_tables(self.engine)
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.aclose()
        await self.engine.dispose()
