from enum import Enum

from musiclink.config.scopes import Scope

__all__ = [
    "Scope",
    "GrantType",
    "ResponseType",
    "AuthorizationType",
    "HttpMethod",
    "ItemType",
    "Param",
]


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


class ResponseType(str, Enum):
    CODE = "code"


class AuthorizationType(str, Enum):
    BASIC = "Basic"
    BEARER = "Bearer"

    def header(self, credentials: str) -> str:
        return f"{self.value} {credentials}"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class ItemType(str, Enum):
    TRACK = "track"
    ALBUM = "album"
    ARTIST = "artist"
    PLAYLIST = "playlist"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


class Param:
    QUERY = "q"
    TYPE = "type"
    CLIENT_ID = "client_id"
    CLIENT_SECRET = "client_secret"
    RESPONSE_TYPE = "response_type"
    REDIRECT_URI = "redirect_uri"
    SCOPE = "scope"
    GRANT_TYPE = "grant_type"
    CODE = "code"
    REFRESH_TOKEN = "refresh_token"
    IDS = "ids"
