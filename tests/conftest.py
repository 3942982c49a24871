import pytest
import httpx
from unittest.mock import AsyncMock

from todoist_mcp.nango_auth import Connection, NangoAuth
from todoist_mcp.todoist_client import TodoistGateway

NANGO_URL = "https://nango.example.com"
TODOIST_URL = "https://api.todoist.com/rest/v2"


class RecordingTransport:
    """
    httpx transport stand-in that records every request in order.

    `routes` maps (method, path) to a callable or a ready httpx.Response;
    unknown routes answer 404.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="not found")
        if callable(handler):
            return handler(request)
        # Fresh copy so a canned response can answer more than once
        return httpx.Response(handler.status_code, headers=handler.headers,
                              content=handler.content)

    @property
    def paths(self):
        return [r.url.path for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def broker_response(access_token="todoist-token", expires_at=None, **extra):
    credentials = {"access_token": access_token, "refresh_token": "refresh-me"}
    if access_token is None:
        credentials.pop("access_token")
    if expires_at is not None:
        credentials["expires_at"] = expires_at
    body = {
        "connection_id": "conn-123",
        "provider_config_key": "todoist",
        "credentials": credentials,
    }
    body.update(extra)
    return httpx.Response(200, json=body)


@pytest.fixture
def connection():
    return Connection(
        connection_id="conn-123",
        integration_id="todoist",
        base_url=NANGO_URL,
        secret_key="nango-secret",
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def nango_auth(connection, transport):
    """NangoAuth talking to the recording transport."""
    return NangoAuth(connection, http_client=transport.client())


@pytest.fixture
def mock_api():
    """Stand-in for the long-lived TodoistAPIAsync client."""
    return AsyncMock()


@pytest.fixture
def mock_auth():
    auth = AsyncMock(spec=NangoAuth)
    auth.refresh_if_needed.return_value = "fresh-token"
    return auth


@pytest.fixture
def gateway(mock_api, mock_auth, transport):
    return TodoistGateway(mock_api, mock_auth, api_url=TODOIST_URL,
                          http_client=transport.client())


@pytest.fixture(name="broker_response")
def broker_response_fixture():
    return broker_response
