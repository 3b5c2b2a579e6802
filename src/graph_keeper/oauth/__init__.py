"""OAuth exchanges for Microsoft Graph accounts.

Usage:
    from graph_keeper.oauth import GraphTokenExchanger, TransportConfig, build_http_client

    config = TransportConfig()
    http = build_http_client(config, ["https://login.microsoftonline.com", "https://graph.microsoft.com"])
    exchanger = GraphTokenExchanger(http, config)

    pair = await exchanger.exchange_code(code, client_id, client_secret)
    profile = await exchanger.fetch_profile(pair.access_token)
"""

from .client import GraphTokenExchanger, TokenPair, app_registration_url
from .transport import TransportConfig, build_http_client

__all__ = [
    "GraphTokenExchanger",
    "TokenPair",
    "TransportConfig",
    "app_registration_url",
    "build_http_client",
]
