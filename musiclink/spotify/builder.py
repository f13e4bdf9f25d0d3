"""Provider-specific URLs, parameters and headers for every request category."""

import base64
from typing import Dict, Iterable, Optional, Union
from urllib.parse import urlencode

from musiclink.config.settings import ClientSettings, DeveloperApplication

from .constants import (
    AuthorizationType,
    GrantType,
    HttpMethod,
    ItemType,
    Param,
    ResponseType,
    Scope,
)
from .transport import ApiRequest

TrackIds = Union[str, Iterable[str]]


def track_ids(ids: TrackIds) -> str:
    if isinstance(ids, str):
        return ids.strip()
    return ",".join(str(i).strip() for i in ids if str(i).strip())


def bearer_header(access_token: str) -> Dict[str, str]:
    return {"Authorization": AuthorizationType.BEARER.header(access_token)}


def basic_auth_header(application: DeveloperApplication) -> Dict[str, str]:
    s = f"{application.client_id}:{application.client_secret}"
    token = base64.b64encode(s.encode()).decode()
    return {"Authorization": AuthorizationType.BASIC.header(token)}


# Search and lookup

def search_request(
    settings: ClientSettings, item_type: ItemType, keyword: str, access_token: str
) -> ApiRequest:
    return ApiRequest(
        method=HttpMethod.GET,
        url=f"{settings.api_base_url}/search",
        params={Param.QUERY: keyword, Param.TYPE: item_type.value},
        headers=bearer_header(access_token),
    )


def item_url(
    settings: ClientSettings,
    item_type: ItemType,
    item_id: str,
    playlist_owner_id: Optional[str] = None,
) -> str:
    if item_type is ItemType.PLAYLIST:
        if not playlist_owner_id:
            raise ValueError("playlist lookup requires the owner's user id")
        return f"{settings.api_base_url}/users/{playlist_owner_id}/playlists/{item_id}"
    return f"{settings.api_base_url}/{item_type.plural}/{item_id}"


def item_request(
    settings: ClientSettings,
    item_type: ItemType,
    item_id: str,
    access_token: str,
    playlist_owner_id: Optional[str] = None,
) -> ApiRequest:
    return ApiRequest(
        method=HttpMethod.GET,
        url=item_url(settings, item_type, item_id, playlist_owner_id),
        headers=bearer_header(access_token),
    )


# User's library

def library_url(settings: ClientSettings, item_type: ItemType) -> str:
    return f"{settings.api_base_url}/me/{item_type.plural}"


def library_request(settings: ClientSettings, item_type: ItemType, access_token: str) -> ApiRequest:
    return ApiRequest(
        method=HttpMethod.GET,
        url=library_url(settings, item_type),
        headers=bearer_header(access_token),
    )


def _tracks_request(method: HttpMethod, url: str, ids: TrackIds, access_token: str) -> ApiRequest:
    return ApiRequest(
        method=method,
        url=url,
        params={Param.IDS: track_ids(ids)},
        headers=bearer_header(access_token),
    )


def save_tracks_request(settings: ClientSettings, ids: TrackIds, access_token: str) -> ApiRequest:
    return _tracks_request(
        HttpMethod.PUT, library_url(settings, ItemType.TRACK), ids, access_token
    )


def delete_tracks_request(settings: ClientSettings, ids: TrackIds, access_token: str) -> ApiRequest:
    return _tracks_request(
        HttpMethod.DELETE, library_url(settings, ItemType.TRACK), ids, access_token
    )


def contains_tracks_request(settings: ClientSettings, ids: TrackIds, access_token: str) -> ApiRequest:
    return _tracks_request(
        HttpMethod.GET,
        f"{library_url(settings, ItemType.TRACK)}/contains",
        ids,
        access_token,
    )


# Authorization

def authorization_url(settings: ClientSettings, application: DeveloperApplication) -> str:
    params = {
        Param.CLIENT_ID: application.client_id,
        Param.RESPONSE_TYPE: ResponseType.CODE.value,
        Param.REDIRECT_URI: application.redirect_uri,
        Param.SCOPE: Scope.join(settings.scopes),
    }
    return f"{settings.accounts_base_url}/authorize?{urlencode(params)}"


def token_url(settings: ClientSettings) -> str:
    return f"{settings.accounts_base_url}/api/token"


def code_exchange_request(
    settings: ClientSettings, application: DeveloperApplication, code: str
) -> ApiRequest:
    return ApiRequest(
        method=HttpMethod.POST,
        url=token_url(settings),
        data={
            Param.CLIENT_ID: application.client_id,
            Param.CLIENT_SECRET: application.client_secret,
            Param.GRANT_TYPE: GrantType.AUTHORIZATION_CODE.value,
            Param.CODE: code,
            Param.REDIRECT_URI: application.redirect_uri,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )


def refresh_request(
    settings: ClientSettings, application: DeveloperApplication, refresh_token: str
) -> ApiRequest:
    return ApiRequest(
        method=HttpMethod.POST,
        url=token_url(settings),
        data={
            Param.GRANT_TYPE: GrantType.REFRESH_TOKEN.value,
            Param.REFRESH_TOKEN: refresh_token,
        },
        headers={
            **basic_auth_header(application),
            "Content-Type": "application/x-www-form-urlencoded",
        },
    )
