import asyncio
import json

import pytest

from musiclink.config.settings import ClientSettings, DeveloperApplication
from musiclink.errors import TransportError
from musiclink.spotify.manager import TokenManager
from musiclink.spotify.store import CredentialStore, MemoryTokenBackend
from musiclink.spotify.transport import ApiResponse, Transport

TOKEN_RECORD = {
    "access_token": "abc",
    "expires_in": 3600,
    "refresh_token": "r1",
    "token_type": "Bearer",
}


def json_response(data, status=200):
    return ApiResponse(status_code=status, body=json.dumps(data).encode())


class FakeTransport(Transport):
    """Records requests; answers with ``handler(request)`` (ApiResponse or exception)."""

    def __init__(self, handler=None):
        self.handler = handler or (lambda request: json_response({}))
        self.requests = []

    async def send(self, request):
        self.requests.append(request)
        await asyncio.sleep(0)
        result = self.handler(request)
        if isinstance(result, Exception):
            raise result
        return result

    def token_requests(self):
        return [r for r in self.requests if r.url.endswith("/api/token")]


def token_endpoint(exchange=None, refresh=None):
    """Handler for the token endpoint plus an API fallback."""

    def handler(request):
        if request.url.endswith("/api/token"):
            if request.data.get("grant_type") == "authorization_code":
                return exchange if exchange is not None else json_response(
                    {"access_token": "A", "expires_in": 3600, "refresh_token": "R", "token_type": "Bearer"}
                )
            return refresh if refresh is not None else json_response(
                {"access_token": "fresh", "token_type": "Bearer", "expires_in": 3600}
            )
        return json_response({})

    return handler


@pytest.fixture
def settings():
    return ClientSettings(
        api_base_url="https://api.example.com/v1",
        accounts_base_url="https://accounts.example.com",
    )


@pytest.fixture
def application():
    return DeveloperApplication(client_id="cid", client_secret="csec", redirect_uri="http://localhost/cb")


@pytest.fixture
def backend():
    return MemoryTokenBackend(TOKEN_RECORD)


@pytest.fixture
def transport():
    return FakeTransport(token_endpoint())


@pytest.fixture
def manager(application, backend, transport, settings):
    store = CredentialStore(application, backend=backend)
    return TokenManager(store, transport, settings, open_url=lambda url: None)


def expire(token):
    token.issued_at -= token.expires_in + 1


def transport_down(request):
    return TransportError("connection refused")
