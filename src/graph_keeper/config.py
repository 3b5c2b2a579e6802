"""graph-keeper configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from .oauth.transport import TransportConfig


class KeeperSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///graph_keeper.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Microsoft identity platform / Graph
    authority_url: str = "https://login.microsoftonline.com"
    graph_url: str = "https://graph.microsoft.com"
    redirect_uri: str = "http://localhost/e5sub"
    scope: str = "openid offline_access mail.read user.read"

    # Default OAuth application for the CLI (optional)
    client_id: str | None = None
    client_secret: str | None = None

    # Outbound HTTP policy
    http_total_timeout_seconds: float = 10.0
    http_tls_handshake_timeout_seconds: float = 20.0
    http_read_timeout_seconds: float = 20.0
    http_idle_timeout_seconds: float = 20.0
    http_max_idle_per_host: int = 50

    # 0 = unlimited
    max_bindings_per_principal: int = 5

    renewal_interval_seconds: int = 3600
    renewal_worker_enabled: bool = True
    # Keep the rotated refresh token even when the mailbox probe fails.
    persist_rotated_token_on_probe_failure: bool = False

    model_config = {"env_prefix": "KEEPER_", "env_file": ".env", "extra": "ignore"}

    @property
    def provider_hosts(self) -> list[str]:
        return [self.authority_url, self.graph_url]

    @property
    def default_app_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def transport_config(self) -> TransportConfig:
        return TransportConfig(
            total_timeout=self.http_total_timeout_seconds,
            tls_handshake_timeout=self.http_tls_handshake_timeout_seconds,
            read_timeout=self.http_read_timeout_seconds,
            idle_timeout=self.http_idle_timeout_seconds,
            max_idle_per_host=self.http_max_idle_per_host,
        )


settings = KeeperSettings()
