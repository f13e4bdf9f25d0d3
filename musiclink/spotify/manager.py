import asyncio
import logging
import webbrowser
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from musiclink.config.settings import ClientSettings, DeveloperApplication
from musiclink.errors import TokenPersistenceError, TransportError

from . import builder
from .outcome import Failure, FailureReason, Outcome, Success
from .store import CredentialStore
from .token import Token
from .transport import ApiRequest, RequestsTransport, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

TokenOperation = Callable[[Token], Awaitable[Outcome[T]]]


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"


class PersistencePolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    STRICT = "strict"


class TokenManager:
    """Owns the token for one user session and gates every authenticated call.

    The token is loaded from the credential store at construction (kept only
    if valid), replaced by ``exchange_code``/``set_token`` and mutated in place
    by ``refresh``. Every mutation is written back to the store according to
    the persistence policy: ``BEST_EFFORT`` logs and swallows write errors,
    ``STRICT`` retries ``persist_retries`` times and then raises
    ``TokenPersistenceError``.

    With ``single_flight_refresh`` concurrent callers that find the token
    expired wait on one shared refresh instead of each issuing their own.
    """

    def __init__(
        self,
        store: CredentialStore,
        transport: Optional[Transport] = None,
        settings: Optional[ClientSettings] = None,
        *,
        open_url: Callable[[str], object] = webbrowser.open,
        persistence: PersistencePolicy = PersistencePolicy.BEST_EFFORT,
        persist_retries: int = 2,
        single_flight_refresh: bool = True,
    ):
        self.store = store
        self.settings = settings or ClientSettings()
        self._owns_transport = transport is None
        self.transport = transport or RequestsTransport(timeout=self.settings.timeout)
        self.open_url = open_url
        self.persistence = persistence
        self.persist_retries = persist_retries
        self.single_flight_refresh = single_flight_refresh

        self._refresh_task: Optional["asyncio.Task[Outcome[Token]]"] = None
        self._refreshing = 0

        token = store.load_token()
        self.token: Optional[Token] = token if token is not None and token.is_valid else None
        if token is not None and self.token is None:
            logger.warning("Ignoring incomplete persisted token")

    def close(self) -> None:
        """Close the transport if this manager created it."""
        if self._owns_transport:
            self.transport.close()

    async def __aenter__(self) -> "TokenManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    @property
    def application(self) -> Optional[DeveloperApplication]:
        return self.store.application

    @property
    def has_token(self) -> bool:
        return self.token is not None and self.token.is_valid

    @property
    def state(self) -> TokenState:
        if self.token is None:
            return TokenState.NO_TOKEN
        if self._refreshing:
            return TokenState.REFRESHING
        if self.token.is_expired():
            return TokenState.EXPIRED
        return TokenState.VALID

    # Persistence

    def _persist_attempts(self) -> int:
        if self.persistence is PersistencePolicy.BEST_EFFORT:
            return 1
        return 1 + self.persist_retries

    def _persist_failed(self, exc: TokenPersistenceError, attempt: int, attempts: int) -> None:
        if self.persistence is PersistencePolicy.BEST_EFFORT:
            logger.warning("Token not persisted: %s", exc)
            return
        if attempt == attempts:
            raise exc
        logger.warning("Token persistence attempt %d/%d failed: %s", attempt, attempts, exc)

    def _persist(self, token: Token) -> None:
        attempts = self._persist_attempts()
        for attempt in range(1, attempts + 1):
            try:
                self.store.save_token(token)
                return
            except TokenPersistenceError as exc:
                self._persist_failed(exc, attempt, attempts)

    async def _persist_async(self, token: Token) -> None:
        """``_persist`` with the backend write run off the event loop."""
        attempts = self._persist_attempts()
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(self.store.save_token, token)
                return
            except TokenPersistenceError as exc:
                self._persist_failed(exc, attempt, attempts)

    def set_token(self, access_token: str, expires_in: int, refresh_token: str, token_type: str) -> Token:
        token = Token(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token,
            token_type=token_type,
        )
        self.token = token
        logger.debug("Token set:\n%s", token.describe())
        self._persist(token)
        return token

    # Token endpoint

    async def _post_token(self, request: ApiRequest) -> Outcome[dict]:
        try:
            response = await self.transport.send(request)
        except TransportError as exc:
            return Failure(FailureReason.TRANSPORT, str(exc))

        if not response.ok:
            return Failure(FailureReason.HTTP_STATUS, "token endpoint rejected the request", response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            return Failure(FailureReason.DECODE, f"token response was not JSON: {exc}")

        if not isinstance(payload, dict):
            return Failure(FailureReason.DECODE, "token response was not an object")
        return Success(payload)

    # Authorization

    def authorization_url(self) -> Outcome[str]:
        if self.application is None:
            return Failure(FailureReason.NO_APPLICATION)
        return Success(builder.authorization_url(self.settings, self.application))

    def authorize(self) -> Outcome[str]:
        """Open the provider's consent page; the user brings back the ``code``."""
        outcome = self.authorization_url()
        if outcome.ok:
            self.open_url(outcome.value)
        return outcome

    async def exchange_code(self, code: str) -> Outcome[Token]:
        application = self.application
        if application is None:
            return Failure(FailureReason.NO_APPLICATION)

        outcome = await self._post_token(builder.code_exchange_request(self.settings, application, code))
        if not outcome.ok:
            logger.warning("Authorization code exchange failed: %s", outcome)
            return outcome

        token = Token.from_response(outcome.value)
        if not token.is_valid:
            logger.warning("Authorization code exchange returned an incomplete token")
            return Failure(FailureReason.DECODE, "incomplete token in response")

        self.token = token
        logger.debug("Token received:\n%s", token.describe())
        await self._persist_async(token)
        return Success(token)

    # Refresh

    async def _do_refresh(self) -> Outcome[Token]:
        application = self.application
        token = self.token
        if application is None:
            return Failure(FailureReason.NO_APPLICATION)
        if token is None:
            return Failure(FailureReason.NO_TOKEN)

        self._refreshing += 1
        try:
            outcome = await self._post_token(
                builder.refresh_request(self.settings, application, token.refresh_token)
            )
        finally:
            self._refreshing -= 1

        if not outcome.ok:
            logger.warning("Token refresh failed: %s", outcome)
            return Failure(FailureReason.REFRESH_FAILED, str(outcome), outcome.status)

        access_token = outcome.value.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            logger.warning("Token refresh returned no access token")
            return Failure(FailureReason.REFRESH_FAILED, "no access_token in refresh response")

        # A token replaced by exchange_code while the refresh was in flight is left alone.
        if self.token is token:
            token.apply_refresh(access_token)
            logger.debug("Token refreshed:\n%s", token.describe())
            await self._persist_async(token)
        return Success(self.token)

    async def refresh(self) -> Outcome[Token]:
        if not self.single_flight_refresh:
            return await self._do_refresh()

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    # Gated execution

    async def with_valid_token(self, operation: TokenOperation) -> Outcome[T]:
        """Run ``operation`` with a token that is not known to be expired.

        Without an application or a token nothing is sent and the operation
        is not called. An expired token is refreshed first; if the refresh
        fails the operation is not called and the refresh failure is returned.
        """
        if self.application is None:
            return Failure(FailureReason.NO_APPLICATION)
        if self.token is None:
            return Failure(FailureReason.NO_TOKEN)

        if self.token.is_expired():
            refreshed = await self.refresh()
            if not refreshed.ok:
                return refreshed
            return await operation(refreshed.value)

        return await operation(self.token)
