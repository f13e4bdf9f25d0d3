from .client import CatalogClient
from .manager import PersistencePolicy, TokenManager, TokenState
from .models import Album, Artist, Playlist, Track
from .oauth_server import start_callback_server
from .outcome import Failure, FailureReason, Outcome, Success
from .store import (
    CredentialStore,
    FileTokenBackend,
    KeyringTokenBackend,
    MemoryTokenBackend,
)
from .token import Token
from .transport import ApiRequest, ApiResponse, RequestsTransport, Transport

__all__ = [
    "CatalogClient",
    "PersistencePolicy",
    "TokenManager",
    "TokenState",
    "Album",
    "Artist",
    "Playlist",
    "Track",
    "start_callback_server",
    "Failure",
    "FailureReason",
    "Outcome",
    "Success",
    "CredentialStore",
    "FileTokenBackend",
    "KeyringTokenBackend",
    "MemoryTokenBackend",
    "Token",
    "ApiRequest",
    "ApiResponse",
    "RequestsTransport",
    "Transport",
]
