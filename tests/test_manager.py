import asyncio
import base64
import time

import pytest

from musiclink.errors import TokenPersistenceError
from musiclink.spotify.manager import PersistencePolicy, TokenManager, TokenState
from musiclink.spotify.outcome import FailureReason, Success
from musiclink.spotify.store import CredentialStore, MemoryTokenBackend
from musiclink.spotify.transport import RequestsTransport

from conftest import TOKEN_RECORD, FakeTransport, expire, json_response, token_endpoint, transport_down


class FailingBackend(MemoryTokenBackend):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    def save(self, token):
        if self.failures:
            self.failures -= 1
            raise TokenPersistenceError("disk full")
        super().save(token)


def recorder():
    calls = []

    async def operation(token):
        calls.append(token.access_token)
        return Success(token.access_token)

    return calls, operation


def test_loads_valid_token_at_startup(manager):
    assert manager.has_token
    assert manager.state is TokenState.VALID
    assert manager.token.access_token == "abc"


def test_ignores_incomplete_persisted_token(application, transport, settings):
    store = CredentialStore(application, backend=MemoryTokenBackend({"access_token": "abc"}))
    manager = TokenManager(store, transport, settings)
    assert manager.token is None
    assert manager.state is TokenState.NO_TOKEN


@pytest.mark.asyncio
async def test_gate_runs_operation_once_without_network(manager, transport):
    calls, operation = recorder()

    outcome = await manager.with_valid_token(operation)

    assert outcome == Success("abc")
    assert calls == ["abc"]
    assert transport.requests == []


@pytest.mark.asyncio
async def test_gate_refreshes_expired_token_first(manager, transport, backend):
    expire(manager.token)
    assert manager.state is TokenState.EXPIRED
    calls, operation = recorder()

    outcome = await manager.with_valid_token(operation)

    assert outcome.ok
    assert calls == ["fresh"]
    assert len(transport.token_requests()) == 1
    assert backend.writes == 1
    assert backend.record["access_token"] == "fresh"
    assert backend.record["refresh_token"] == "r1"
    assert manager.state is TokenState.VALID


@pytest.mark.asyncio
async def test_gate_skips_operation_when_refresh_fails(application, backend, settings):
    transport = FakeTransport(token_endpoint(refresh=json_response({"error": "invalid_grant"}, status=400)))
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)
    expire(manager.token)
    calls, operation = recorder()

    outcome = await manager.with_valid_token(operation)

    assert not outcome.ok
    assert outcome.reason is FailureReason.REFRESH_FAILED
    assert outcome.status == 400
    assert calls == []
    assert manager.token.access_token == "abc"
    assert manager.token.is_expired()
    assert backend.writes == 0


@pytest.mark.asyncio
async def test_gate_without_token_is_a_noop(application, transport, settings):
    manager = TokenManager(CredentialStore(application, backend=MemoryTokenBackend()), transport, settings)
    calls, operation = recorder()

    outcome = await manager.with_valid_token(operation)

    assert outcome.reason is FailureReason.NO_TOKEN
    assert calls == []
    assert transport.requests == []


@pytest.mark.asyncio
async def test_gate_without_application_is_a_noop(backend, transport, settings):
    manager = TokenManager(CredentialStore(backend=backend), transport, settings)
    calls, operation = recorder()

    outcome = await manager.with_valid_token(operation)

    assert outcome.reason is FailureReason.NO_APPLICATION
    assert calls == []
    assert transport.requests == []


@pytest.mark.asyncio
async def test_exchange_code_stores_and_persists_token(application, transport, settings):
    backend = MemoryTokenBackend()
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)

    outcome = await manager.exchange_code("XYZ")

    assert outcome.ok
    assert outcome.value.is_valid
    assert manager.token is outcome.value
    assert backend.writes == 1
    assert backend.record == {"access_token": "A", "expires_in": 3600, "refresh_token": "R", "token_type": "Bearer"}

    request = transport.requests[0]
    assert request.url == "https://accounts.example.com/api/token"
    assert request.data == {
        "client_id": "cid",
        "client_secret": "csec",
        "grant_type": "authorization_code",
        "code": "XYZ",
        "redirect_uri": "http://localhost/cb",
    }


@pytest.mark.asyncio
async def test_exchange_failure_leaves_token_untouched(manager, backend):
    manager.transport = FakeTransport(transport_down)
    previous = manager.token

    outcome = await manager.exchange_code("XYZ")

    assert outcome.reason is FailureReason.TRANSPORT
    assert manager.token is previous
    assert backend.writes == 0


@pytest.mark.asyncio
async def test_exchange_rejects_incomplete_token(application, settings):
    transport = FakeTransport(token_endpoint(exchange=json_response({"access_token": "A"})))
    manager = TokenManager(CredentialStore(application, backend=MemoryTokenBackend()), transport, settings)

    outcome = await manager.exchange_code("XYZ")

    assert outcome.reason is FailureReason.DECODE
    assert manager.token is None


@pytest.mark.asyncio
async def test_exchange_without_application(backend, transport, settings):
    manager = TokenManager(CredentialStore(backend=backend), transport, settings)
    outcome = await manager.exchange_code("XYZ")
    assert outcome.reason is FailureReason.NO_APPLICATION
    assert transport.requests == []


@pytest.mark.asyncio
async def test_refresh_uses_basic_auth(manager, transport):
    outcome = await manager.refresh()

    assert outcome.ok
    request = transport.requests[0]
    expected = base64.b64encode(b"cid:csec").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.data == {"grant_type": "refresh_token", "refresh_token": "r1"}


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_type_and_lifetime(manager):
    token = manager.token
    before = (token.refresh_token, token.token_type, token.expires_in)

    await manager.refresh()

    assert manager.token is token
    assert token.access_token == "fresh"
    assert (token.refresh_token, token.token_type, token.expires_in) == before


@pytest.mark.asyncio
async def test_refresh_without_access_token_in_response(application, backend, settings):
    transport = FakeTransport(token_endpoint(refresh=json_response({"token_type": "Bearer"})))
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)

    outcome = await manager.refresh()

    assert outcome.reason is FailureReason.REFRESH_FAILED
    assert manager.token.access_token == "abc"


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_request(manager, transport):
    expire(manager.token)
    calls, operation = recorder()

    results = await asyncio.gather(*(manager.with_valid_token(operation) for _ in range(3)))

    assert all(r.ok for r in results)
    assert calls == ["fresh"] * 3
    assert len(transport.token_requests()) == 1


@pytest.mark.asyncio
async def test_concurrent_refreshes_race_without_single_flight(application, backend, settings):
    transport = FakeTransport(token_endpoint())
    manager = TokenManager(
        CredentialStore(application, backend=backend),
        transport,
        settings,
        single_flight_refresh=False,
    )
    expire(manager.token)
    calls, operation = recorder()

    await asyncio.gather(*(manager.with_valid_token(operation) for _ in range(3)))

    assert len(calls) == 3
    assert len(transport.token_requests()) == 3


@pytest.mark.asyncio
async def test_best_effort_persistence_swallows_errors(application, transport, settings):
    backend = FailingBackend(failures=5)
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)

    outcome = await manager.exchange_code("XYZ")

    assert outcome.ok
    assert manager.token.access_token == "A"
    assert backend.record is None


@pytest.mark.asyncio
async def test_strict_persistence_retries_then_succeeds(application, transport, settings):
    backend = FailingBackend(failures=2)
    manager = TokenManager(
        CredentialStore(application, backend=backend),
        transport,
        settings,
        persistence=PersistencePolicy.STRICT,
        persist_retries=2,
    )

    outcome = await manager.exchange_code("XYZ")

    assert outcome.ok
    assert backend.writes == 1


@pytest.mark.asyncio
async def test_strict_persistence_propagates(application, transport, settings):
    backend = FailingBackend(failures=10)
    manager = TokenManager(
        CredentialStore(application, backend=backend),
        transport,
        settings,
        persistence=PersistencePolicy.STRICT,
        persist_retries=1,
    )

    with pytest.raises(TokenPersistenceError):
        await manager.exchange_code("XYZ")
    assert backend.failures == 8


def test_set_token_installs_and_persists(application, transport, settings):
    backend = MemoryTokenBackend()
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)

    manager.set_token("manual", 3600, "r", "Bearer")

    assert manager.has_token
    assert backend.record["access_token"] == "manual"


def test_authorize_opens_consent_page(application, backend, transport, settings):
    opened = []
    manager = TokenManager(
        CredentialStore(application, backend=backend), transport, settings, open_url=opened.append
    )

    outcome = manager.authorize()

    assert outcome.ok
    assert opened == [outcome.value]
    url = outcome.value
    assert url.startswith("https://accounts.example.com/authorize?")
    assert "response_type=code" in url
    assert "client_id=cid" in url
    assert "scope=user-read-private+user-read-email+user-library-modify+user-library-read" in url
    assert transport.requests == []


def test_authorize_without_application(backend, transport, settings):
    opened = []
    manager = TokenManager(CredentialStore(backend=backend), transport, settings, open_url=opened.append)
    assert manager.authorize().reason is FailureReason.NO_APPLICATION
    assert opened == []


class SlowBackend(MemoryTokenBackend):
    def save(self, token):
        time.sleep(0.3)
        super().save(token)


async def ticking(gaps, stop):
    last = time.monotonic()
    while not stop.is_set():
        await asyncio.sleep(0.01)
        current = time.monotonic()
        gaps.append(current - last)
        last = current


@pytest.mark.asyncio
async def test_persisting_does_not_block_the_event_loop(application, transport, settings):
    backend = SlowBackend()
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)
    gaps, stop = [], asyncio.Event()
    ticker = asyncio.ensure_future(ticking(gaps, stop))

    outcome = await manager.exchange_code("XYZ")
    stop.set()
    await ticker

    assert outcome.ok
    assert backend.writes == 1
    assert max(gaps) < 0.2


@pytest.mark.asyncio
async def test_refresh_persists_off_the_event_loop(application, transport, settings):
    backend = SlowBackend(TOKEN_RECORD)
    manager = TokenManager(CredentialStore(application, backend=backend), transport, settings)
    gaps, stop = [], asyncio.Event()
    ticker = asyncio.ensure_future(ticking(gaps, stop))

    outcome = await manager.refresh()
    stop.set()
    await ticker

    assert outcome.ok
    assert backend.record["access_token"] == "fresh"
    assert max(gaps) < 0.2


def test_close_releases_own_transport(application, backend, settings, monkeypatch):
    manager = TokenManager(CredentialStore(application, backend=backend), settings=settings)
    assert isinstance(manager.transport, RequestsTransport)
    closed = []
    monkeypatch.setattr(manager.transport.session, "close", lambda: closed.append(True))

    manager.close()

    assert closed == [True]


def test_close_leaves_injected_transport_open(manager, transport, monkeypatch):
    closed = []
    monkeypatch.setattr(transport, "close", lambda: closed.append(True))
    manager.close()
    assert closed == []


@pytest.mark.asyncio
async def test_manager_as_context_manager_closes(application, backend, settings, monkeypatch):
    manager = TokenManager(CredentialStore(application, backend=backend), settings=settings)
    closed = []
    monkeypatch.setattr(manager.transport, "close", lambda: closed.append(True))

    async with manager as entered:
        assert entered is manager

    assert closed == [True]
