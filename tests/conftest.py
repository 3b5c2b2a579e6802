"""Shared fixtures for the graph-keeper test suite."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from graph_keeper.binding import BindingWorkflow, subject_digest
from graph_keeper.models import Base
from graph_keeper.oauth import GraphTokenExchanger, TransportConfig, build_http_client
from graph_keeper.renewal import RenewalScheduler
from graph_keeper.store import Binding, SqlCredentialStore

SAMPLE_CHAT_ID = 10001
SAMPLE_CLIENT_ID = "app_client_123"
SAMPLE_CLIENT_SECRET = "app_secret_456"
AUTHORITY_URL = "https://login.microsoftonline.com"
GRAPH_URL = "https://graph.microsoft.com"
FIXED_NOW = 1_700_000_000


# ============================================================================
# Mock Response Data
# ============================================================================

MOCK_TOKEN_RESPONSE = {
    "token_type": "Bearer",
    "scope": "openid offline_access Mail.Read User.Read",
    "expires_in": 3599,
    "access_token": "access_1",
    "refresh_token": "r1",
}

MOCK_PROFILE = {
    "id": "u1",
    "displayName": "Alice",
    "userPrincipalName": "alice@contoso.onmicrosoft.com",
}

MOCK_MAILBOX = {
    "@odata.context": "https://graph.microsoft.com/v1.0/$metadata#users('u1')/messages",
    "value": [],
}

MOCK_INVALID_GRANT = {
    "error": "invalid_grant",
    "error_description": "AADSTS70000: The provided grant has expired.",
}


def token_response(access: str = "access_1", refresh: str = "r1", **extra) -> httpx.Response:
    return httpx.Response(
        200, json={**MOCK_TOKEN_RESPONSE, "access_token": access, "refresh_token": refresh, **extra}
    )


class ProviderStub:
    """Scripted identity provider + Graph API behind ``httpx.MockTransport``.

    Queue responses per endpoint; an exception instance is raised instead of
    returned, which simulates network failures.
    """

    def __init__(self):
        self.token_responses: list = []
        self.resource_responses: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def queue_token(self, *responses) -> None:
        self.token_responses.extend(responses)

    def queue_resource(self, path: str, *responses) -> None:
        self.resource_responses.setdefault(path, []).extend(responses)

    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/token")]

    def resource_requests(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def form(self, request: httpx.Request) -> dict[str, str]:
        return dict(httpx.QueryParams(request.content.decode()))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/token"):
            queue = self.token_responses
        else:
            queue = self.resource_responses.get(request.url.path, [])
        if not queue:
            return httpx.Response(500, json={"error": "unexpected request"})
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_binding(**overrides) -> Binding:
    fields = {
        "chat_id": SAMPLE_CHAT_ID,
        "refresh_token": "stored_refresh",
        "subject_id": subject_digest("u1"),
        "alias": "alice",
        "client_id": SAMPLE_CLIENT_ID,
        "client_secret": SAMPLE_CLIENT_SECRET,
        "last_success_at": FIXED_NOW - 86400,
    }
    fields.update(overrides)
    return Binding(**fields)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def store(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return SqlCredentialStore(session_factory)


@pytest_asyncio.fixture
async def tableless_store():
    """A store whose binding table was never created; every read fails."""
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    yield SqlCredentialStore(async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False))
    await eng.dispose()


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def provider():
    return ProviderStub()


@pytest.fixture
def transport_config():
    return TransportConfig(total_timeout=2.0, tls_handshake_timeout=1.0, read_timeout=1.0)


@pytest_asyncio.fixture
async def http_client(provider, transport_config):
    client = build_http_client(
        transport_config,
        [AUTHORITY_URL, GRAPH_URL],
        transport_factory=lambda limits: httpx.MockTransport(provider),
    )
    yield client
    await client.aclose()


@pytest.fixture
def exchanger(http_client, transport_config):
    return GraphTokenExchanger(http_client, transport_config, authority_url=AUTHORITY_URL, graph_url=GRAPH_URL)


@pytest.fixture
def workflow(exchanger, store):
    return BindingWorkflow(exchanger, store, clock=lambda: FIXED_NOW)


@pytest.fixture
def scheduler(exchanger, store):
    return RenewalScheduler(exchanger, store, clock=lambda: FIXED_NOW)
