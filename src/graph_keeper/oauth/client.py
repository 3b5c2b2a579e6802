"""OAuth 2.0 exchanges against the Microsoft identity platform and Graph.

Handles the three calls a binding needs:
1. Exchange an authorization code for an access + refresh token pair
2. Exchange a refresh token for a new pair (the provider rotates it)
3. Fetch a Graph resource with a bearer access token
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from ..errors import KeeperError, ProfileFetchError, ResourceError, TokenError
from .transport import TransportConfig

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_URL = "https://login.microsoftonline.com"
DEFAULT_GRAPH_URL = "https://graph.microsoft.com"
DEFAULT_REDIRECT_URI = "http://localhost/e5sub"
DEFAULT_SCOPE = "openid offline_access mail.read user.read"

TOKEN_PATH = "/common/oauth2/v2.0/token"
AUTHORIZE_PATH = "/common/oauth2/v2.0/authorize"
PROFILE_PATH = "/v1.0/me"
MAILBOX_PATH = "/v1.0/me/messages"


@dataclass
class TokenPair:
    """Tokens returned by a successful exchange."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600  # seconds
    scope: str = ""


def app_registration_url(redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Quick-start link that registers an app with the expected redirect URI."""
    ru = (
        "https://developer.microsoft.com/en-us/graph/quick-start?appID=_appId_"
        "&appName=_appName_&redirectUrl=http://localhost:8000&platform=option-windowsuniversal"
    )
    deeplink = "/quickstart/graphIO?" + urlencode(
        {
            "publicClientSupport": "false",
            "appName": "graph-keeper",
            "redirectUrl": redirect_uri,
            "allowImplicitFlow": "false",
            "ru": ru,
        }
    )
    return "https://apps.dev.microsoft.com/?" + urlencode({"deepLink": deeplink})


class GraphTokenExchanger:
    """Stateless token and resource exchanges over a shared HTTP client.

    Usage:
        http = build_http_client(config, [DEFAULT_AUTHORITY_URL, DEFAULT_GRAPH_URL])
        exchanger = GraphTokenExchanger(http, config)

        pair = await exchanger.exchange_code(code, client_id, client_secret)
        profile = await exchanger.fetch_profile(pair.access_token)

        # Later: the old refresh token is dead once this returns
        pair = await exchanger.exchange_refresh(pair.refresh_token, client_id, client_secret)
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: TransportConfig | None = None,
        authority_url: str = DEFAULT_AUTHORITY_URL,
        graph_url: str = DEFAULT_GRAPH_URL,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        scope: str = DEFAULT_SCOPE,
    ):
        self.http = http
        self.config = config or TransportConfig()
        self.authority_url = authority_url.rstrip("/")
        self.graph_url = graph_url.rstrip("/")
        self.redirect_uri = redirect_uri
        self.scope = scope

    @property
    def token_url(self) -> str:
        return self.authority_url + TOKEN_PATH

    def authorization_url(self, client_id: str) -> str:
        """URL the user opens to grant consent; it redirects back with ``?code=``."""
        params = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": self.scope,
        }
        return f"{self.authority_url}{AUTHORIZE_PATH}?{urlencode(params)}"

    async def _send(
        self,
        error_cls: type[KeeperError],
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request bounded by the total exchange timeout."""
        try:
            return await asyncio.wait_for(
                self.http.request(method, url, **kwargs),
                timeout=self.config.total_timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            raise error_cls(
                f"Request to {url} did not complete: {reason}",
                details={"transient": True, "reason": reason},
            ) from e

    async def _post_token(self, form: dict[str, str]) -> httpx.Response:
        return await self._send(
            TokenError,
            "POST",
            self.token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    async def exchange_code(self, code: str, client_id: str, client_secret: str) -> TokenPair:
        """Exchange an authorization code for a token pair.

        Args:
            code: Authorization code from the redirect URL
            client_id: OAuth application ID
            client_secret: OAuth application secret

        Returns:
            TokenPair with access and refresh tokens

        Raises:
            TokenError: If the response is not a bearer token grant; the raw
                response body is in ``details["body"]``
        """
        response = await self._post_token(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "authorization_code",
                "scope": self.scope,
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )
        data = _json_or_empty(response)
        if data.get("token_type") != "Bearer" or not data.get("refresh_token"):
            raise TokenError(
                f"Code exchange failed: {response.status_code}",
                details={"status": response.status_code, "body": response.text},
            )
        return _parse_token_response(data)

    async def exchange_refresh(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenPair:
        """Exchange a refresh token for a new access token and a rotated refresh token.

        The presented refresh token is invalid once this succeeds; callers must
        persist ``TokenPair.refresh_token``.

        Raises:
            TokenError: With the provider's ``error`` field in ``details["error"]``
        """
        response = await self._post_token(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "refresh_token",
                "scope": self.scope,
                "refresh_token": refresh_token,
                "redirect_uri": self.redirect_uri,
            }
        )
        data = _json_or_empty(response)
        if data.get("token_type") != "Bearer":
            error = str(data.get("error") or "")
            raise TokenError(
                f"Token refresh failed: {error or response.status_code}",
                details={"status": response.status_code, "error": error},
            )
        if not data.get("refresh_token"):
            logger.warning("Refresh response carried no rotated refresh token; keeping current one")
            data = {**data, "refresh_token": refresh_token}
        return _parse_token_response(data)

    async def fetch_resource(self, access_token: str, path: str) -> dict[str, Any]:
        """GET a Graph resource with the access token as bearer credential.

        Raises:
            ResourceError: On network failure, HTTP error status or a non-JSON body
        """
        response = await self._send(
            ResourceError,
            "GET",
            self.graph_url + path,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ResourceError(
                f"GET {path} returned a non-JSON body: {response.status_code}",
                details={"status": response.status_code, "body": response.text[:500]},
            )
        if response.status_code >= 400 or not isinstance(data, dict):
            error = data.get("error") if isinstance(data, dict) else None
            raise ResourceError(
                f"GET {path} failed: {response.status_code}",
                details={"status": response.status_code, "error": error},
            )
        return data

    async def fetch_profile(self, access_token: str) -> dict[str, Any]:
        """Fetch ``/me``; the payload must carry the account's immutable ``id``.

        Raises:
            ProfileFetchError: If the call fails or no ``id`` comes back
        """
        try:
            profile = await self.fetch_resource(access_token, PROFILE_PATH)
        except ResourceError as e:
            raise ProfileFetchError(str(e), details=e.details) from e
        if not profile.get("id"):
            raise ProfileFetchError(
                "Profile response has no account id",
                details={"keys": sorted(profile)},
            )
        return profile

    async def probe_mailbox(self, access_token: str) -> None:
        """List mail to prove the access token still works; the payload is discarded.

        Raises:
            ResourceError: If the listing fails or is not an OData collection
        """
        listing = await self.fetch_resource(access_token, MAILBOX_PATH)
        if not listing.get("@odata.context"):
            raise ResourceError(
                "Mailbox listing is not an OData response",
                details={"error": listing.get("error")},
            )


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _parse_token_response(data: dict[str, Any]) -> TokenPair:
    if not data.get("access_token"):
        logger.warning("Bearer grant carried no access token; resource calls will be rejected")
    return TokenPair(
        access_token=str(data.get("access_token") or ""),
        refresh_token=str(data["refresh_token"]),
        token_type=str(data.get("token_type", "Bearer")),
        expires_in=int(data.get("expires_in") or 3600),
        scope=str(data.get("scope") or ""),
    )
