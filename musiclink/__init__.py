from musiclink.config import ClientSettings, DeveloperApplication, load_settings
from musiclink.spotify import CatalogClient, CredentialStore, TokenManager

__all__ = [
    "ClientSettings",
    "DeveloperApplication",
    "load_settings",
    "CatalogClient",
    "CredentialStore",
    "TokenManager",
]
