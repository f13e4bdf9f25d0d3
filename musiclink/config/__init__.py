from .scopes import Scope
from .settings import (
    DEFAULT_SCOPES,
    ClientSettings,
    DeveloperApplication,
    application_from_env,
    load_application,
    load_settings,
)

__all__ = [
    "DEFAULT_SCOPES",
    "Scope",
    "ClientSettings",
    "DeveloperApplication",
    "application_from_env",
    "load_application",
    "load_settings",
]
