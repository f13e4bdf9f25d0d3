import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .scopes import Scope

logger = logging.getLogger(__name__)

DEFAULT_SCOPES: Tuple[Scope, ...] = (
    Scope.READ_PRIVATE,
    Scope.READ_EMAIL,
    Scope.LIBRARY_MODIFY,
    Scope.LIBRARY_READ,
)


@dataclass(frozen=True)
class DeveloperApplication:
    client_id: str
    client_secret: str
    redirect_uri: str

    @classmethod
    def from_json(cls, item: Mapping[str, Any]) -> "DeveloperApplication":
        return cls(
            client_id=str(item.get("client_id") or ""),
            client_secret=str(item.get("client_secret") or ""),
            redirect_uri=str(item.get("redirect_uri") or ""),
        )


@dataclass(frozen=True)
class ClientSettings:
    api_base_url: str = "https://api.spotify.com/v1"
    accounts_base_url: str = "https://accounts.spotify.com"
    scopes: Tuple[Scope, ...] = DEFAULT_SCOPES
    timeout: int = 15
    token_path: Optional[str] = None
    application_path: Optional[str] = None
    application_fallback_path: Optional[str] = None
    keyring_service: str = "musiclink"
    callback_host: str = "127.0.0.1"
    callback_port: int = 8888


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _scopes_env(name: str, default: Tuple[Scope, ...]) -> Tuple[Scope, ...]:
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return default
    scopes = []
    for value in raw.split():
        try:
            scopes.append(Scope(value))
        except ValueError:
            raise RuntimeError(f"{name} holds an unknown scope {value!r}") from None
    return tuple(scopes)


def load_settings() -> ClientSettings:
    load_dotenv()

    return ClientSettings(
        api_base_url=os.getenv("MUSICLINK_API_BASE_URL", ClientSettings.api_base_url).rstrip("/"),
        accounts_base_url=os.getenv(
            "MUSICLINK_ACCOUNTS_BASE_URL", ClientSettings.accounts_base_url
        ).rstrip("/"),
        scopes=_scopes_env("MUSICLINK_SCOPES", DEFAULT_SCOPES),
        timeout=_int_env("MUSICLINK_TIMEOUT", ClientSettings.timeout),
        token_path=os.getenv("MUSICLINK_TOKEN_PATH") or None,
        application_path=os.getenv("MUSICLINK_APPLICATION_PATH") or None,
        application_fallback_path=os.getenv("MUSICLINK_APPLICATION_FALLBACK_PATH") or None,
        keyring_service=os.getenv("MUSICLINK_KEYRING_SERVICE", ClientSettings.keyring_service),
        callback_host=os.getenv("MUSICLINK_CALLBACK_HOST", ClientSettings.callback_host),
        callback_port=_int_env("MUSICLINK_CALLBACK_PORT", ClientSettings.callback_port),
    )


def application_from_env() -> Optional[DeveloperApplication]:
    """Application credentials from SPOTIFY_* variables, or None if any is unset."""
    load_dotenv()

    client_id = os.getenv("SPOTIFY_CLIENT_ID")
    client_secret = os.getenv("SPOTIFY_CLIENT_SECRET")
    redirect_uri = os.getenv("SPOTIFY_REDIRECT_URI")

    if not client_id or not client_secret or not redirect_uri:
        return None

    return DeveloperApplication(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
    )


def load_application(path: Optional[str]) -> Optional[DeveloperApplication]:
    """Read application credentials from a JSON document; None when unreadable."""
    if not path:
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            item = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Cannot read application credentials from %s: %s", path, exc)
        return None

    if not isinstance(item, dict):
        logger.warning("Application credentials in %s are not a JSON object", path)
        return None

    return DeveloperApplication.from_json(item)
