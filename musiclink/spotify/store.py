import json
import logging
import os
from typing import Any, Dict, Optional

import keyring
from keyring.errors import KeyringError

from musiclink.config.settings import (
    ClientSettings,
    DeveloperApplication,
    application_from_env,
    load_application,
)
from musiclink.errors import TokenPersistenceError

from .token import Token

logger = logging.getLogger(__name__)

TOKEN_PREFERENCE_KEY = "spotifyToken"


class TokenBackend:
    """Where a token record is durably kept.

    ``load`` never raises: absence or corruption yields ``None``.
    ``save`` raises ``TokenPersistenceError``; callers decide whether to swallow it.
    """

    def load(self) -> Optional[Token]:
        raise NotImplementedError

    def save(self, token: Token) -> None:
        raise NotImplementedError


class FileTokenBackend(TokenBackend):
    """Token record embedded in a JSON document that may hold other keys."""

    def __init__(self, path: str):
        self.path = path

    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Cannot read token document %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Token document %s is not a JSON object", self.path)
            return None
        return data

    def load(self) -> Optional[Token]:
        data = self._read_document()
        if data is None:
            return None
        return Token.from_record(data)

    def _document_for_update(self) -> Dict[str, Any]:
        """Current document to patch; an unreadable one is never overwritten."""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise TokenPersistenceError(f"Cannot read token document {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TokenPersistenceError(f"Token document {self.path} is not a JSON object")
        return data

    def save(self, token: Token) -> None:
        document = self._document_for_update()
        document.update(token.to_record())

        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise TokenPersistenceError(f"Cannot write token to {self.path}: {exc}") from exc


class KeyringTokenBackend(TokenBackend):
    """Token record kept as a single JSON string in the OS keyring."""

    def __init__(self, service: str, key: str = TOKEN_PREFERENCE_KEY):
        self.service = service
        self.key = key

    def load(self) -> Optional[Token]:
        try:
            raw = keyring.get_password(self.service, self.key)
        except KeyringError as exc:
            logger.warning("Keyring unavailable for %s: %s", self.service, exc)
            return None
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("Corrupt token entry in keyring %s/%s", self.service, self.key)
            return None
        if not isinstance(record, dict):
            return None
        return Token.from_record(record)

    def save(self, token: Token) -> None:
        try:
            keyring.set_password(self.service, self.key, json.dumps(token.to_record()))
        except KeyringError as exc:
            raise TokenPersistenceError(f"Cannot write token to keyring {self.service}: {exc}") from exc


class MemoryTokenBackend(TokenBackend):
    def __init__(self, record: Optional[Dict[str, Any]] = None):
        self.record = dict(record) if record else None
        self.writes = 0

    def load(self) -> Optional[Token]:
        if self.record is None:
            return None
        return Token.from_record(self.record)

    def save(self, token: Token) -> None:
        self.record = token.to_record()
        self.writes += 1


class CredentialStore:
    """Application credentials plus the backend holding the token record.

    The backend is chosen by what is supplied: an explicit ``backend`` wins,
    a ``token_path`` selects the JSON file, anything else uses the keyring.
    """

    def __init__(
        self,
        application: Optional[DeveloperApplication] = None,
        *,
        application_path: Optional[str] = None,
        fallback_path: Optional[str] = None,
        token_path: Optional[str] = None,
        backend: Optional[TokenBackend] = None,
        keyring_service: str = ClientSettings.keyring_service,
    ):
        if application is None and application_path:
            application = load_application(application_path)
            if application is None and fallback_path:
                application = load_application(fallback_path)
        self.application = application

        if backend is None:
            if token_path:
                backend = FileTokenBackend(token_path)
            else:
                backend = KeyringTokenBackend(keyring_service)
        self.backend = backend

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        application: Optional[DeveloperApplication] = None,
    ) -> "CredentialStore":
        store = cls(
            application,
            application_path=settings.application_path,
            fallback_path=settings.application_fallback_path,
            token_path=settings.token_path,
            keyring_service=settings.keyring_service,
        )
        if store.application is None:
            store.application = application_from_env()
        return store

    def load_token(self) -> Optional[Token]:
        return self.backend.load()

    def save_token(self, token: Token) -> None:
        self.backend.save(token)
